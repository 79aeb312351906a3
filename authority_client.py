"""Client for the remote licensing authority.

Performs the five key/lease calls against the licensing endpoint and
classifies every response into a tagged outcome (see ``outcomes``). It never
raises for transport or server problems; those come back as ``Fault`` so the
caller decides whether to propagate them.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from outcomes import Fault, Ok, Outcome, Rejected, is_rejection_status

log = logging.getLogger(__name__)

class LicenseAuthorityClient:
    def __init__(
        self,
        endpoint: str,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def validate_key(self, key: Optional[str]) -> Outcome:
        return await self._call("GET", "/key/validate", params={"key": key})

    async def obtain_lease(self, key: Optional[str], expiry: int, client_id: Optional[str]) -> Outcome:
        return await self._call(
            "POST",
            "/lease/obtain",
            json={"key": key, "expiry": expiry, "clientId": client_id},
        )

    async def validate_lease(self, lease: str) -> Outcome:
        return await self._call("GET", "/lease/validate", params={"lease": lease})

    async def renew_lease(self, lease: str, expiry: int) -> Outcome:
        return await self._call("POST", "/lease/renew", json={"lease": lease, "expiry": expiry})

    async def release_lease(self, lease: str) -> Outcome:
        return await self._call("POST", "/lease/release", json={"lease": lease})

    async def _call(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Outcome:
        url = f"{self.endpoint}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=params, json=json)
        except httpx.HTTPError as e:
            log.warning(f"{method} {path} could not reach licensing authority: {e}")
            return Fault(e)

        if is_rejection_status(response.status_code):
            error_code = self._error_code(response)
            log.info(f"{method} {path} rejected with {response.status_code} ({error_code})")
            return Rejected(error_code=error_code, status_code=response.status_code)

        try:
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            log.warning(f"{method} {path} failed: {e}")
            return Fault(e)

        if not isinstance(payload, dict):
            return Fault(ValueError(f"Unexpected response body from {path}: {payload!r}"))

        return Ok(payload)

    @staticmethod
    def _error_code(response: httpx.Response) -> Optional[str]:
        """
        Extract the errorCode from a rejection body, if there is one.
        """
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            return body.get("errorCode")
        return None
