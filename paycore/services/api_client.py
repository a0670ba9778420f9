"""Async HTTP client for the pricing/payments backend.

Wraps ``httpx.AsyncClient`` with the configured base URL, request timeout
and the bearer credential from an injected ``CredentialSession``.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from paycore.core.config import settings
from paycore.core.exceptions import NetworkError, SessionExpiredError
from paycore.core.session import CredentialSession

logger = logging.getLogger(__name__)


class BackendClient:
    def __init__(
        self,
        session: CredentialSession,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session = session
        self._http = httpx.AsyncClient(
            base_url=(base_url or settings.API_BASE_URL).rstrip("/"),
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def auth_headers(self) -> dict[str, str]:
        token = self.session.get_credential()
        if not token:
            raise SessionExpiredError("Please login to continue.")
        return {"Authorization": f"Bearer {token}"}

    async def request(
        self,
        method: str,
        path: str,
        *,
        auth: bool = True,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send a request; transport failures surface as ``NetworkError``.

        Status codes are left to the caller, except that an authenticated
        401 clears the stored credential before returning.
        """
        headers = self.auth_headers() if auth else {}
        try:
            response = await self._http.request(method, path, json=json, params=params, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(str(exc)) from exc
        if auth and response.status_code == 401:
            logger.info("%s %s rejected credential; clearing session", method, path)
            self.session.clear_credential()
        return response

    @staticmethod
    def json_body(response: httpx.Response) -> dict[str, Any] | None:
        """Parsed JSON object, or None when the body is not a JSON object."""
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None
