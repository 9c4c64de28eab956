"""HTTP client for the remote onboarding session store.

The engine talks to the session store only through the SessionStore
protocol; OnboardingAPIClient is the httpx implementation of it.

Contract:
- All methods are async (httpx.AsyncClient)
- Failed requests raise SessionStoreError (status 0 for transport errors)
- Failing to start the payment-account flow raises AccountLinkError
- Responses are returned as parsed JSON; the reconciler does the typing
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Protocol

import httpx

from app.config import settings
from app.wizard.errors import AccountLinkError, SessionStoreError


class SessionStore(Protocol):
    async def start_session(self, token: str) -> dict[str, Any]: ...

    async def get_session(self, session_id: str, token: str) -> dict[str, Any]: ...

    async def save_step(
        self,
        session_id: str,
        token: str,
        step: str,
        payload: dict[str, Any],
        idempotency_key: str,
        current_step: str | None = None,
    ) -> dict[str, Any]: ...

    async def connect_account(self, session_id: str, token: str) -> str: ...

    async def account_status(self, session_id: str, token: str) -> bool: ...

    async def launch(self, session_id: str, token: str) -> dict[str, Any]: ...


def _error_detail(response: httpx.Response) -> str:
    """Pull the message out of a `{"error": {...}}` or `{"detail": ...}` body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if "detail" in body:
            return str(body["detail"])
    return response.reason_phrase


class OnboardingAPIClient:
    """Session store client over HTTP."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.onboarding_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _ensure_client(self):
        async with self._lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    transport=self._transport,
                )
        try:
            yield self._client
        except httpx.HTTPStatusError as e:
            raise SessionStoreError(e.response.status_code, _error_detail(e.response)) from e
        except httpx.RequestError as e:
            raise SessionStoreError(0, f"Request failed: {e}") from e

    async def close(self) -> None:
        async with self._lock:
            if self._client:
                await self._client.aclose()
                self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        async with self._ensure_client() as client:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
            if response.status_code == 204:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise SessionStoreError(response.status_code, "Response was not valid JSON") from e

    # -----------------------------------------------------------------
    # Sessions
    # -----------------------------------------------------------------

    async def start_session(self, token: str) -> dict[str, Any]:
        """POST /session/start"""
        return await self._request("POST", "/session/start", json={"token": token})

    async def get_session(self, session_id: str, token: str) -> dict[str, Any]:
        """GET /session/{id}"""
        return await self._request("GET", f"/session/{session_id}", params={"token": token})

    async def save_step(
        self,
        session_id: str,
        token: str,
        step: str,
        payload: dict[str, Any],
        idempotency_key: str,
        current_step: str | None = None,
    ) -> dict[str, Any]:
        """PATCH /session/{id}/step

        `current_step` is where the wizard will resume; the server stores it
        instead of its own branch-unaware guess.
        """
        body = {
            "token": token,
            "step": step,
            "payload": payload,
            "idempotencyKey": idempotency_key,
        }
        if current_step:
            body["currentStep"] = current_step
        return await self._request(
            "PATCH",
            f"/session/{session_id}/step",
            json=body,
            headers={"Idempotency-Key": idempotency_key},
        )

    async def launch(self, session_id: str, token: str) -> dict[str, Any]:
        """POST /session/{id}/launch"""
        return await self._request("POST", f"/session/{session_id}/launch", json={"token": token})

    # -----------------------------------------------------------------
    # Payment account link
    # -----------------------------------------------------------------

    async def connect_account(self, session_id: str, token: str) -> str:
        """POST /session/{id}/stripe/connect → hosted onboarding URL."""
        try:
            body = await self._request(
                "POST", f"/session/{session_id}/stripe/connect", json={"token": token}
            )
        except SessionStoreError as e:
            raise AccountLinkError(e.detail) from e
        url = body.get("onboardingUrl") if isinstance(body, dict) else None
        if not isinstance(url, str) or not url:
            raise AccountLinkError("Payment provider did not return an onboarding link")
        return url

    async def account_status(self, session_id: str, token: str) -> bool:
        """GET /session/{id}/stripe/status"""
        body = await self._request(
            "GET", f"/session/{session_id}/stripe/status", params={"token": token}
        )
        return isinstance(body, dict) and body.get("connected") is True
