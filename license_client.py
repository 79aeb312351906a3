import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.orm import Session

from config import settings
from database import LeaseCheckAttempt, LocalLeaseCache, SessionLocal, SystemConfig
from hardware_fingerprint import default_client_id
from lease_manager import LeaseManager
from models import (
    CheckResult,
    KeyValidation,
    LeaseResult,
    LeaseStatusResponse,
    LeaseValidation,
    ProductGrant,
    ReleaseResult,
    as_utc,
)

log = logging.getLogger(__name__)

T = TypeVar("T")

# LeaseManager calls must not overlap; every caller in this process takes this lock.
lease_lock = asyncio.Lock()

scheduler = AsyncIOScheduler()

class LicenseClient:
    """
    Lease manager bound to the local cache.

    Restores the cached lease on construction, and persists the lease and an
    attempt record after every operation.
    """

    def __init__(self, db: Session, manager: Optional[LeaseManager] = None):
        self.db = db
        self.installation_id = self._get_or_create_installation_id()
        self.client_id = settings.CLIENT_ID or default_client_id(self.installation_id)
        self.manager = manager or self._build_manager()
        self._restore_lease()

    def _build_manager(self) -> LeaseManager:
        return LeaseManager.from_endpoint(
            settings.LICENSING_ENDPOINT,
            signing_key=settings.signing_key_pem(),
            timeout=settings.LICENSE_API_TIMEOUT,
            license_key=settings.LICENSE_KEY,
            lease_expiry=settings.LEASE_EXPIRY,
            client_id=self.client_id,
            allow_offline_check=settings.ALLOW_OFFLINE_CHECK,
            renew_timeout=settings.RENEW_TIMEOUT,
        )

    def _get_or_create_installation_id(self) -> str:
        """Get or generate unique installation ID."""
        config = self.db.query(SystemConfig).filter(
            SystemConfig.key == "installation_id"
        ).first()

        if config:
            return config.value

        new_id = str(uuid.uuid4())
        self.db.add(SystemConfig(key="installation_id", value=new_id))
        self.db.commit()

        return new_id

    async def validate_key(self) -> KeyValidation:
        return await self._run("validate_key", self.manager.validate_key)

    async def obtain_lease(self, expiry: Optional[int] = None) -> LeaseResult:
        result = await self._run("obtain", lambda: self.manager.obtain_lease(expiry))
        if result.success:
            self._store_lease(result.expiry, result.validFor)
        return result

    async def validate_lease(self) -> LeaseValidation:
        result = await self._run("validate", self.manager.validate_lease)
        if result.isValid:
            self._store_lease(result.expiry, result.validFor)
        return result

    def validate_lease_offline(self) -> LeaseValidation:
        result = self.manager.validate_lease_offline()
        self._log_attempt("validate_offline", "success" if result.isValid else "rejected", result.errorCode)
        return result

    async def renew_lease(self, expiry: Optional[int] = None) -> LeaseResult:
        result = await self._run("renew", lambda: self.manager.renew_lease(expiry))
        if result.success:
            self._store_lease(result.expiry, result.validFor)
        return result

    async def release_lease(self) -> ReleaseResult:
        try:
            return await self._run("release", self.manager.release_lease)
        finally:
            # The manager forgets the lease even when the release call fails.
            self._store_lease()

    async def check(self) -> CheckResult:
        try:
            result = await self._run("check", self.manager.check)
        finally:
            self._store_lease()
        if result.success:
            self._store_lease(self.manager.current_expiry, result.validFor)
        return result

    def get_lease_status(self) -> LeaseStatusResponse:
        """
        Current lease as known locally, without contacting the authority.
        """
        cached = self._get_cached_lease()
        if not cached:
            return LeaseStatusResponse(hasLease=False, licenseKey=self.manager.license_key)

        return LeaseStatusResponse(
            hasLease=True,
            licenseKey=cached.license_key,
            expiry=cached.expiry,
            validFor=cached.valid_for,
            updatedAt=cached.updated_at,
        )

    async def _run(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await call()
        except Exception as e:
            log.error(f"Lease {operation} failed: {e}")
            self._log_attempt(operation, "failed", error_message=str(e))
            raise

        ok = getattr(result, "success", getattr(result, "isValid", False))
        error_code = getattr(result, "errorCode", None)
        if not ok:
            log.warning(f"Lease {operation} unsuccessful: {error_code}")
        self._log_attempt(operation, "success" if ok else "rejected", error_code)
        return result

    def _restore_lease(self):
        cached = self._get_cached_lease()
        if cached:
            self.manager.current_lease = cached.lease
            self.manager.current_expiry = as_utc(cached.expiry)

    def _get_cached_lease(self) -> Optional[LocalLeaseCache]:
        if not self.manager.license_key:
            return None
        return self.db.query(LocalLeaseCache).filter(
            LocalLeaseCache.license_key == self.manager.license_key
        ).first()

    def _store_lease(self, expiry=None, valid_for: Optional[List[ProductGrant]] = None):
        """
        Mirror the manager's current lease into the local cache.
        """
        if not self.manager.license_key:
            return

        cached = self._get_cached_lease()
        lease = self.manager.current_lease

        if lease is None:
            if cached:
                self.db.delete(cached)
                self.db.commit()
            return

        valid_for_data: Optional[List[Any]] = None
        if valid_for is not None:
            valid_for_data = [grant.model_dump() for grant in valid_for]

        if cached is None:
            cached = LocalLeaseCache(license_key=self.manager.license_key, lease=lease)
            self.db.add(cached)
        elif cached.lease != lease:
            # expiry and grants of the previous lease no longer apply
            cached.lease = lease
            cached.expiry = None
            cached.valid_for = None

        if expiry is not None:
            cached.expiry = expiry
        if valid_for_data is not None:
            cached.valid_for = valid_for_data

        self.db.commit()

    def _log_attempt(
        self,
        operation: str,
        result: str,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ):
        self.db.add(LeaseCheckAttempt(
            license_key=self.manager.license_key,
            operation=operation,
            result=result,
            error_code=error_code,
            error_message=error_message,
            client_id=self.client_id,
        ))
        self.db.commit()

async def periodic_check():
    """
    Scheduled check() keeping the lease valid and renewed in the background.
    """
    db = SessionLocal()
    try:
        async with lease_lock:
            result = await LicenseClient(db).check()
        if result.success:
            log.info("Periodic lease check succeeded")
        else:
            log.warning(f"Periodic lease check failed: {result.errorCode}")
    except Exception:
        # Next run tries again; the failure is already recorded as an attempt.
        log.exception("Periodic lease check raised")
    finally:
        db.close()

def start_periodic_check(interval_minutes: int = settings.CHECK_INTERVAL_MINUTES):
    """
    Start the periodic check scheduler. An interval of 0 disables it.
    """
    if interval_minutes <= 0 or scheduler.running:
        return
    scheduler.add_job(
        periodic_check,
        'interval',
        minutes=interval_minutes,
        id='lease_check',
        max_instances=1,
        replace_existing=True,
    )
    scheduler.start()

def stop_periodic_check():
    if scheduler.running:
        scheduler.shutdown(wait=False)
