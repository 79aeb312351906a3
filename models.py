from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, field_validator

class FeatureGrant(BaseModel):
    feature: str
    featureDescription: Optional[str] = None

class ProductGrant(BaseModel):
    product: str
    productDescription: Optional[str] = None
    features: List[FeatureGrant] = []

ValidFor = List[ProductGrant]

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Naive timestamps (from the authority or SQLite) are UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

class _ExpiryModel(BaseModel):
    expiry: Optional[datetime] = None

    @field_validator("expiry")
    @classmethod
    def _expiry_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

# Operation results

class KeyValidation(_ExpiryModel):
    isValid: bool
    leaseLimit: Optional[int] = None
    leasesUse: Optional[int] = None
    validFor: Optional[ValidFor] = None

class LeaseResult(_ExpiryModel):
    success: bool
    errorCode: Optional[str] = None
    lease: Optional[str] = None
    validFor: Optional[ValidFor] = None

class LeaseValidation(_ExpiryModel):
    isValid: bool
    errorCode: Optional[str] = None
    validFor: Optional[ValidFor] = None

class ReleaseResult(BaseModel):
    success: bool
    errorCode: Optional[str] = None

class CheckResult(BaseModel):
    success: bool
    errorCode: Optional[str] = None
    validFor: Optional[ValidFor] = None

class LeaseClaims(BaseModel):
    """Claims embedded in a signed lease token."""
    exp: datetime
    validFor: Optional[ValidFor] = None

# API request / response bodies

class LeaseRequest(BaseModel):
    expiry: Optional[int] = None  # seconds

class LeaseStatusResponse(_ExpiryModel):
    hasLease: bool
    licenseKey: Optional[str] = None
    validFor: Optional[ValidFor] = None
    updatedAt: Optional[datetime] = None

    @field_validator("updatedAt")
    @classmethod
    def _updated_at_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

class HealthCheckResponse(BaseModel):
    status: str
    service: str
    version: str
    clientId: Optional[str] = None
    offlineCheckEnabled: bool = False
