import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Depends, HTTPException
from sqlalchemy.orm import Session

from config import settings
from database import get_db, init_db
from lease_manager import OfflineValidationUnavailable
from license_client import LicenseClient, lease_lock, start_periodic_check, stop_periodic_check
from models import (
    CheckResult,
    HealthCheckResponse,
    KeyValidation,
    LeaseRequest,
    LeaseResult,
    LeaseStatusResponse,
    LeaseValidation,
    ReleaseResult,
)

log = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    init_db()
    start_periodic_check()
    log.info(f"{settings.INSTALLATION_NAME} started against {settings.LICENSING_ENDPOINT}")
    yield
    stop_periodic_check()

app = FastAPI(
    title="Lease Client Service",
    description="Local lease management against a remote licensing authority",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

async def _call_authority(call):
    """
    Run a lease operation, mapping authority faults to HTTP errors.
    """
    try:
        return await call()
    except OfflineValidationUnavailable as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (httpx.HTTPError, ValueError) as e:
        raise HTTPException(status_code=502, detail=f"Licensing authority error: {e}")

def _expiry(request: Optional[LeaseRequest]) -> Optional[int]:
    return request.expiry if request else None

# API Endpoints
@app.get("/api/key/validate", response_model=KeyValidation)
async def validate_key(db: Session = Depends(get_db)):
    """
    Check the configured license key with the licensing authority.
    A rejected key is reported as isValid=false.
    """
    client = LicenseClient(db)
    return await _call_authority(client.validate_key)

@app.post("/api/lease/obtain", response_model=LeaseResult)
async def obtain_lease(request: Optional[LeaseRequest] = None, db: Session = Depends(get_db)):
    async with lease_lock:
        client = LicenseClient(db)
        return await _call_authority(lambda: client.obtain_lease(_expiry(request)))

@app.get("/api/lease/validate", response_model=LeaseValidation)
async def validate_lease(db: Session = Depends(get_db)):
    async with lease_lock:
        client = LicenseClient(db)
        return await _call_authority(client.validate_lease)

@app.get("/api/lease/validate/offline", response_model=LeaseValidation)
async def validate_lease_offline(db: Session = Depends(get_db)):
    """
    Verify the cached lease by its signature only. Needs a signing key.
    """
    client = LicenseClient(db)
    try:
        return client.validate_lease_offline()
    except OfflineValidationUnavailable as e:
        raise HTTPException(status_code=409, detail=str(e))

@app.post("/api/lease/renew", response_model=LeaseResult)
async def renew_lease(request: Optional[LeaseRequest] = None, db: Session = Depends(get_db)):
    async with lease_lock:
        client = LicenseClient(db)
        return await _call_authority(lambda: client.renew_lease(_expiry(request)))

@app.post("/api/lease/release", response_model=ReleaseResult)
async def release_lease(db: Session = Depends(get_db)):
    """
    Return the lease to the pool. The local lease is dropped even if the
    authority reports a failure.
    """
    async with lease_lock:
        client = LicenseClient(db)
        return await _call_authority(client.release_lease)

@app.post("/api/lease/check", response_model=CheckResult)
async def check_lease(db: Session = Depends(get_db)):
    """
    Make sure a usable lease is held.

    Validates the current lease (offline if the authority is unreachable and
    offline checks are allowed), obtains a new one if needed and renews it
    ahead of expiry.
    """
    async with lease_lock:
        client = LicenseClient(db)
        return await _call_authority(client.check)

@app.get("/api/lease/status", response_model=LeaseStatusResponse)
async def get_lease_status(db: Session = Depends(get_db)):
    client = LicenseClient(db)
    return client.get_lease_status()

@app.get("/health", response_model=HealthCheckResponse)
async def health_check(db: Session = Depends(get_db)):
    client = LicenseClient(db)
    return HealthCheckResponse(
        status="healthy",
        service="lease-client",
        version=settings.APP_VERSION,
        clientId=client.client_id,
        offlineCheckEnabled=client.manager.offline_check_enabled,
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
