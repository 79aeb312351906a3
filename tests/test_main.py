"""Tests for the local HTTP API."""

from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from database import get_db
from lease_manager import LeaseManager
from license_client import LicenseClient
from main import app
from outcomes import Fault, Ok, Rejected

from conftest import NOW, VALID_FOR

FAR_EXPIRY = (NOW + timedelta(days=7)).isoformat()


@pytest.fixture
def api(db_session, authority, monkeypatch):
    def build_manager(self):
        return LeaseManager(authority, license_key="lic2_alt", client_id=self.client_id, now=lambda: NOW)

    monkeypatch.setattr(LicenseClient, "_build_manager", build_manager)
    app.dependency_overrides[get_db] = lambda: db_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.mark.integration
class TestLeaseApi:
    def test_check_obtains_lease(self, api, authority):
        authority.obtain_lease.return_value = Ok({
            "success": True, "lease": "L1", "expiry": FAR_EXPIRY, "validFor": VALID_FOR,
        })

        response = api.post("/api/lease/check")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["validFor"][0]["product"] == "editor"
        assert api.get("/api/lease/status").json()["hasLease"] is True

    def test_rejected_key(self, api, authority):
        authority.validate_key.return_value = Rejected(error_code="KEY_NOT_FOUND", status_code=404)

        response = api.get("/api/key/validate")

        assert response.status_code == 200
        assert response.json()["isValid"] is False

    def test_obtain_with_requested_expiry(self, api, authority):
        authority.obtain_lease.return_value = Ok({"success": True, "lease": "L1", "expiry": FAR_EXPIRY})

        response = api.post("/api/lease/obtain", json={"expiry": 120})

        assert response.json()["lease"] == "L1"
        assert authority.obtain_lease.await_args.args[1] == 120

    def test_authority_fault_is_bad_gateway(self, api, authority):
        authority.obtain_lease.return_value = Fault(httpx.ConnectError("connection refused"))

        response = api.post("/api/lease/check")

        assert response.status_code == 502

    def test_offline_validation_without_key_is_conflict(self, api):
        response = api.get("/api/lease/validate/offline")

        assert response.status_code == 409

    def test_release_without_lease(self, api, authority):
        response = api.post("/api/lease/release")

        assert response.json() == {"success": False, "errorCode": "NO_LEASE"}
        authority.release_lease.assert_not_awaited()

    def test_health(self, api):
        body = api.get("/health").json()

        assert body["status"] == "healthy"
        assert body["offlineCheckEnabled"] is False
        assert body["clientId"]
