from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Licensing Authority
    LICENSING_ENDPOINT: str = "http://localhost:3040/licensing"
    LICENSE_API_TIMEOUT: int = 30

    # License / Lease
    LICENSE_KEY: Optional[str] = None
    LEASE_EXPIRY: int = 3600  # seconds
    RENEW_TIMEOUT: int = 1800  # renew when less than this many seconds are left
    CLIENT_ID: Optional[str] = None  # falls back to the hardware fingerprint

    # Offline Validation
    SIGNING_KEY: Optional[str] = None  # PEM encoded public key
    SIGNING_KEY_FILE: Optional[str] = None
    ALLOW_OFFLINE_CHECK: bool = False

    # Installation Info
    INSTALLATION_NAME: str = "Lease Client Service"
    APP_VERSION: str = "1.0.0"

    # Database
    DATABASE_URL: str = "sqlite:///./lease_cache.db"

    # Periodic Check (0 disables the scheduler)
    CHECK_INTERVAL_MINUTES: int = 15

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

    @field_validator("SIGNING_KEY_FILE")
    @classmethod
    def _signing_key_file_exists(cls, value: Optional[str]) -> Optional[str]:
        if value and not Path(value).is_file():
            raise ValueError(f"Signing key file not found: {value}")
        return value

    def signing_key_pem(self) -> Optional[str]:
        """Public signing key, inline value first, then the key file."""
        if self.SIGNING_KEY:
            return self.SIGNING_KEY
        if self.SIGNING_KEY_FILE:
            return Path(self.SIGNING_KEY_FILE).read_text()
        return None

settings = Settings()
