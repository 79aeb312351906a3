"""Shared fixtures for the lease client tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from authority_client import LicenseAuthorityClient
from database import init_db

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

VALID_FOR = [
    {
        "product": "editor",
        "productDescription": "Editor Pro",
        "features": [{"feature": "export", "featureDescription": "PDF export"}],
    }
]


def _generate_rsa_keypair():
    """Return (private_pem, public_pem) for a fresh RSA key."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture(scope="session")
def rsa_keys():
    return _generate_rsa_keypair()


@pytest.fixture(scope="session")
def other_rsa_keys():
    return _generate_rsa_keypair()


@pytest.fixture
def make_token(rsa_keys):
    """Sign a lease token with the test private key."""
    private_pem, _ = rsa_keys

    def _make(expires_in=timedelta(hours=1), valid_for=VALID_FOR, **claims):
        payload = {"exp": datetime.now(timezone.utc) + expires_in, **claims}
        if valid_for is not None:
            payload["validFor"] = valid_for
        return jwt.encode(payload, private_pem, algorithm="RS256")

    return _make


@pytest.fixture
def authority():
    """Licensing authority double; every operation is an AsyncMock."""
    return MagicMock(spec=LicenseAuthorityClient)


@pytest.fixture
def db_session():
    """In-memory SQLite session with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
