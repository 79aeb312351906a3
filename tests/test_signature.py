"""Tests for offline lease token verification."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from models import LeaseClaims
from signature import LeaseSignatureError, SignatureVerifier


@pytest.mark.unit
class TestSignatureVerifier:
    def test_valid_token_returns_claims(self, rsa_keys, make_token):
        _, public_pem = rsa_keys
        token = make_token(expires_in=timedelta(minutes=30))

        claims = SignatureVerifier(public_pem).verify(token)

        assert isinstance(claims, LeaseClaims)
        assert claims.exp.tzinfo is not None
        assert claims.exp > datetime.now(timezone.utc)
        assert claims.validFor[0].product == "editor"
        assert claims.validFor[0].features[0].feature == "export"

    def test_token_without_valid_for(self, rsa_keys, make_token):
        _, public_pem = rsa_keys

        claims = SignatureVerifier(public_pem).verify(make_token(valid_for=None))

        assert claims.validFor is None

    def test_expired_token_fails(self, rsa_keys, make_token):
        _, public_pem = rsa_keys
        token = make_token(expires_in=timedelta(minutes=-5))

        with pytest.raises(LeaseSignatureError):
            SignatureVerifier(public_pem).verify(token)

    def test_token_signed_by_other_key_fails(self, rsa_keys, other_rsa_keys):
        _, public_pem = rsa_keys
        other_private, _ = other_rsa_keys
        token = jwt.encode(
            {"exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            other_private,
            algorithm="RS256",
        )

        with pytest.raises(LeaseSignatureError):
            SignatureVerifier(public_pem).verify(token)

    def test_token_without_expiry_fails(self, rsa_keys):
        private_pem, public_pem = rsa_keys
        token = jwt.encode({"validFor": []}, private_pem, algorithm="RS256")

        with pytest.raises(LeaseSignatureError):
            SignatureVerifier(public_pem).verify(token)

    def test_symmetric_token_is_not_accepted(self, rsa_keys):
        _, public_pem = rsa_keys
        token = jwt.encode(
            {"exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "shared-secret",
            algorithm="HS256",
        )

        with pytest.raises(LeaseSignatureError):
            SignatureVerifier(public_pem).verify(token)

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    def test_malformed_token_fails(self, rsa_keys, token):
        _, public_pem = rsa_keys

        with pytest.raises(LeaseSignatureError):
            SignatureVerifier(public_pem).verify(token)
