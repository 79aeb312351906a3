"""
Lease lifecycle for a single license key.

A LeaseManager negotiates, validates, renews and releases one time-bounded
lease against the licensing authority, and can fall back to verifying the
lease's signature offline when the authority cannot be reached.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from authority_client import LicenseAuthorityClient
from models import CheckResult, KeyValidation, LeaseResult, LeaseValidation, ReleaseResult
from outcomes import Fault, Outcome, Rejected
from signature import LeaseSignatureError, SignatureVerifier

log = logging.getLogger(__name__)

OFFLINE_VALIDATION_FAILED = "offline-validation-failed"
NO_LEASE = "NO_LEASE"

DEFAULT_LEASE_EXPIRY = 3600
DEFAULT_RENEW_TIMEOUT = 1800

class LeaseManagerError(Exception):
    """Base exception for lease manager misuse."""
    pass

class OfflineValidationUnavailable(LeaseManagerError):
    """Raised when offline validation is requested without a signing key."""
    pass

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class LeaseManager:
    """
    Client session bound to one license key and at most one active lease.

    Calls on one instance must not overlap: check(), renew_lease() and
    release_lease() all replace ``current_lease`` without any locking, so a
    caller has to await each call before starting the next one.
    """

    def __init__(
        self,
        authority: LicenseAuthorityClient,
        license_key: Optional[str] = None,
        lease_expiry: int = DEFAULT_LEASE_EXPIRY,
        signature_verifier: Optional[SignatureVerifier] = None,
        client_id: Optional[str] = None,
        allow_offline_check: bool = False,
        renew_timeout: int = DEFAULT_RENEW_TIMEOUT,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.authority = authority
        self.default_lease_expiry = lease_expiry
        self.signature_verifier = signature_verifier
        self.client_id = client_id
        self.allow_offline_check = allow_offline_check
        self.renew_timeout = renew_timeout
        self._now = now

        self.license_key: Optional[str] = None
        self.current_lease: Optional[str] = None
        # expiry of current_lease as last reported, None when unknown
        self.current_expiry: Optional[datetime] = None
        if license_key:
            self.set_license_key(license_key)

    @classmethod
    def from_endpoint(
        cls,
        licensing_endpoint: str,
        signing_key: Optional[str] = None,
        timeout: float = 30,
        **options,
    ) -> "LeaseManager":
        """
        Build a manager talking to ``licensing_endpoint``.

        Passing the authority's public ``signing_key`` enables offline validation.
        """
        verifier = SignatureVerifier(signing_key) if signing_key else None
        return cls(
            LicenseAuthorityClient(licensing_endpoint, timeout=timeout),
            signature_verifier=verifier,
            **options,
        )

    def set_license_key(self, license_key: str):
        self.license_key = license_key

    @property
    def offline_check_enabled(self) -> bool:
        return self.allow_offline_check and self.signature_verifier is not None

    async def validate_key(self) -> KeyValidation:
        """
        Check whether the license key is valid.

        A rejected key is a normal negative result, not an error.
        """
        outcome = await self.authority.validate_key(self.license_key)
        if isinstance(outcome, Rejected):
            return KeyValidation(isValid=False)
        if isinstance(outcome, Fault):
            outcome.reraise()
        return KeyValidation.model_validate(outcome.payload)

    async def obtain_lease(self, expiry: Optional[int] = None) -> LeaseResult:
        """
        Request a new lease lasting ``expiry`` seconds (session default if omitted)
        and keep it as the current lease.
        """
        expiry = expiry or self.default_lease_expiry
        outcome = await self.authority.obtain_lease(self.license_key, expiry, self.client_id)
        result = self._lease_result(outcome)
        if result.success and result.lease:
            self.current_lease = result.lease
            self.current_expiry = result.expiry
            log.info(f"Obtained lease expiring at {result.expiry}")
        return result

    async def validate_lease(self) -> LeaseValidation:
        """
        Validate the current lease with the authority. Never changes the lease.
        """
        return self._lease_validation(await self._validate_lease_outcome())

    def validate_lease_offline(self) -> LeaseValidation:
        """
        Validate the current lease by its signature, without contacting the authority.

        Requires a signing key to have been configured; raises
        OfflineValidationUnavailable otherwise.
        """
        if self.signature_verifier is None:
            raise OfflineValidationUnavailable("No signing key configured for offline lease validation")
        if not self.current_lease:
            return LeaseValidation(isValid=False, errorCode=OFFLINE_VALIDATION_FAILED)

        try:
            claims = self.signature_verifier.verify(self.current_lease)
        except LeaseSignatureError as e:
            log.info(f"Offline lease validation failed: {e}")
            return LeaseValidation(isValid=False, errorCode=OFFLINE_VALIDATION_FAILED)

        return LeaseValidation(isValid=True, expiry=claims.exp, validFor=claims.validFor)

    async def renew_lease(self, expiry: Optional[int] = None) -> LeaseResult:
        """
        Exchange the current lease for a new one. The authority voids the old lease.
        """
        if not self.current_lease:
            return LeaseResult(success=False, errorCode=NO_LEASE)

        expiry = expiry or self.default_lease_expiry
        outcome = await self.authority.renew_lease(self.current_lease, expiry)
        result = self._lease_result(outcome)
        if result.success and result.lease:
            self.current_lease = result.lease
            self.current_expiry = result.expiry
            log.info(f"Renewed lease, now expiring at {result.expiry}")
        return result

    async def release_lease(self) -> ReleaseResult:
        """
        Give the current lease back to the pool.

        The local lease is forgotten whatever the authority answers.
        """
        if not self.current_lease:
            return ReleaseResult(success=False, errorCode=NO_LEASE)

        try:
            outcome = await self.authority.release_lease(self.current_lease)
        finally:
            self.current_lease = None
            self.current_expiry = None

        if isinstance(outcome, Rejected):
            return ReleaseResult(success=False, errorCode=outcome.error_code)
        if isinstance(outcome, Fault):
            outcome.reraise()
        log.info("Released lease")
        return ReleaseResult.model_validate(outcome.payload)

    async def check(self) -> CheckResult:
        """
        Make sure a usable lease is held.

        1. Validate the current lease online
        2. Validate it offline if the authority gave no definitive answer
        3. Obtain a new lease if it is not valid
        4. Renew it if it expires within ``renew_timeout`` seconds
        """
        outcome = await self._validate_lease_outcome()
        if isinstance(outcome, Fault):
            # Authority unreachable: no error code, so offline may answer instead.
            if not self.offline_check_enabled:
                outcome.reraise()
            log.warning(f"Licensing authority unreachable ({outcome.cause}), validating lease offline")
            state: Union[LeaseValidation, LeaseResult] = self.validate_lease_offline()
        else:
            state = self._lease_validation(outcome)
            if not state.isValid and not state.errorCode and self.offline_check_enabled:
                log.warning("Lease validation inconclusive, validating lease offline")
                state = self.validate_lease_offline()

        if not state.isValid:
            state = await self.obtain_lease()
            if not state.success:
                return CheckResult(success=False, errorCode=state.errorCode)

        if self._needs_renewal(state.expiry):
            renewed = await self.renew_lease()
            if not renewed.success:
                return CheckResult(success=False, errorCode=renewed.errorCode)
            # renew responses carry no validFor, fetch it for the new lease
            state = await self.validate_lease()
            if not state.isValid:
                return CheckResult(success=False, errorCode=state.errorCode)

        self.current_expiry = state.expiry
        return CheckResult(success=True, validFor=state.validFor)

    def _needs_renewal(self, expiry: Optional[datetime]) -> bool:
        """
        True when the lease expires within ``renew_timeout`` seconds.

        A lease without a known expiry is always renewed, so an authority that
        omits ``expiry`` causes a renew on every check().
        """
        if expiry is None:
            log.warning("Lease expiry unknown, renewing")
            return True
        return expiry <= self._now() + timedelta(seconds=self.renew_timeout)

    async def _validate_lease_outcome(self) -> Outcome:
        if not self.current_lease:
            return Rejected(error_code=NO_LEASE)
        return await self.authority.validate_lease(self.current_lease)

    @staticmethod
    def _lease_validation(outcome: Outcome) -> LeaseValidation:
        if isinstance(outcome, Rejected):
            return LeaseValidation(isValid=False, errorCode=outcome.error_code)
        if isinstance(outcome, Fault):
            outcome.reraise()
        return LeaseValidation.model_validate(outcome.payload)

    @staticmethod
    def _lease_result(outcome: Outcome) -> LeaseResult:
        if isinstance(outcome, Rejected):
            return LeaseResult(success=False, errorCode=outcome.error_code)
        if isinstance(outcome, Fault):
            outcome.reraise()
        return LeaseResult.model_validate(outcome.payload)
