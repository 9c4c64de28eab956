"""Stripe Connect adapter — hosted onboarding for a campground's payout account.

Three calls against the Stripe REST API:

  POST /v1/accounts          create an Express account for the campground
  POST /v1/account_links     hosted onboarding URL (type=account_onboarding)
  GET  /v1/accounts/{id}     charges_enabled → connected

Stripe takes form-encoded bodies and a bearer secret key.  Every failure,
including a missing key, surfaces as AccountLinkUnavailableError (502).
"""

import logging

import httpx

from app.config import settings
from app.middleware.exceptions import AccountLinkUnavailableError

logger = logging.getLogger(__name__)


class PaymentGateway:
    def __init__(
        self,
        secret_key: str | None = None,
        api_base: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self.api_base = (api_base or settings.stripe_api_base).rstrip("/")
        self._transport = transport

    async def _request(self, method: str, path: str, data: dict | None = None) -> dict:
        if not self.secret_key:
            raise AccountLinkUnavailableError("Payments are not configured")

        async with httpx.AsyncClient(
            base_url=self.api_base,
            timeout=settings.http_timeout_seconds,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(
                    method,
                    path,
                    data=data,
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                message = _stripe_message(e.response)
                logger.warning(f"Stripe {method} {path} failed: {e.response.status_code} {message}")
                raise AccountLinkUnavailableError(message) from e
            except httpx.RequestError as e:
                logger.warning(f"Stripe {method} {path} unreachable: {e}")
                raise AccountLinkUnavailableError("Payment provider is unreachable") from e

    async def create_account(self, email: str | None, campground_name: str) -> str:
        data = {
            "type": "express",
            "business_profile[name]": campground_name,
            "capabilities[card_payments][requested]": "true",
            "capabilities[transfers][requested]": "true",
        }
        if email:
            data["email"] = email
        body = await self._request("POST", "/v1/accounts", data)
        return _required(body, "id")

    async def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        body = await self._request("POST", "/v1/account_links", {
            "account": account_id,
            "refresh_url": refresh_url,
            "return_url": return_url,
            "type": "account_onboarding",
        })
        return _required(body, "url")

    async def account_connected(self, account_id: str) -> bool:
        body = await self._request("GET", f"/v1/accounts/{account_id}")
        return bool(body.get("charges_enabled"))


def _required(body: dict, field: str) -> str:
    value = body.get(field) if isinstance(body, dict) else None
    if not isinstance(value, str) or not value:
        raise AccountLinkUnavailableError(f"Payment provider response had no {field}")
    return value


def _stripe_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return "Payment provider rejected the request"


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency; tests override it with a fake."""
    return PaymentGateway()
