from __future__ import annotations

from typing import Any

import httpx
import structlog

from entitlement_engine.core.config import get_settings
from entitlement_engine.core.errors import ConfigurationError, GatewayError
from entitlement_engine.economy.payments.types import CheckoutSession

logger = structlog.get_logger(__name__)

CHECKOUT_SESSIONS_PATH = "/checkout/sessions"
CHECKOUT_MODES = {"PAYMENT", "SUBSCRIPTION", "SETUP"}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


class PaymentGatewayClient:
    def __init__(self, *, api_base: str, api_key: str, timeout_seconds: float = 10.0) -> None:
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls) -> PaymentGatewayClient:
        settings = get_settings()
        return cls(
            api_base=settings.payment_gateway_api_base,
            api_key=settings.payment_gateway_api_key,
            timeout_seconds=settings.payment_gateway_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key.strip())

    def _headers(self) -> dict[str, str]:
        if not self.is_configured:
            raise ConfigurationError("PAYMENT_GATEWAY_API_KEY is not set")
        return {
            "Authorization": f"Bearer {self.api_key.strip()}",
            "Content-Type": "application/json",
        }

    async def create_checkout_session(
        self,
        *,
        product_id: str,
        success_url: str,
        cancel_url: str,
        transaction_id: str,
        customer_email: str | None = None,
        customer_name: str | None = None,
        mode: str = "PAYMENT",
    ) -> CheckoutSession:
        if mode not in CHECKOUT_MODES:
            raise ValueError(f"unsupported checkout mode: {mode!r}")

        headers = self._headers()
        body: dict[str, Any] = {
            "productId": product_id,
            "successUrl": success_url,
            "cancelUrl": cancel_url,
            "mode": mode,
            "metadata": {"transactionId": transaction_id},
        }
        if customer_email:
            body["customerEmail"] = customer_email
        if customer_name:
            body["customerName"] = customer_name

        url = f"{self.api_base}{CHECKOUT_SESSIONS_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning(
                "payment_gateway_request_failed",
                transaction_id=transaction_id,
                error_type=type(exc).__name__,
            )
            raise GatewayError(f"payment gateway unreachable: {type(exc).__name__}") from exc

        if not response.is_success:
            message = _error_message(response)
            logger.warning(
                "payment_gateway_rejected_checkout",
                transaction_id=transaction_id,
                status_code=response.status_code,
                message=message,
            )
            raise GatewayError(f"payment gateway error: {message}")

        try:
            payload = response.json()
            session = CheckoutSession(
                id=str(payload["id"]),
                url=str(payload["url"]),
                expires_at=payload.get("expires_at"),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise GatewayError("payment gateway returned an unreadable checkout session") from exc

        logger.info(
            "payment_gateway_checkout_created",
            transaction_id=transaction_id,
            checkout_session_id=session.id,
        )
        return session
