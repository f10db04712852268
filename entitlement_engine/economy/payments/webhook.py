"""Inbound payment-gateway notifications.

Deliveries are at-least-once and may arrive duplicated or out of order. A
transaction settles at most once: the recent-event cache filters repeats cheaply
and the conditional pending -> completed update is the durable guard.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import structlog

from entitlement_engine.core.config import get_settings
from entitlement_engine.core.errors import AuthenticityError, ConfigurationError, ValidationError
from entitlement_engine.core.time import utc_now
from entitlement_engine.db.models.purchases import Purchase
from entitlement_engine.db.repo.purchases_repo import PurchasesRepo
from entitlement_engine.db.repo.transactions_repo import TransactionsRepo
from entitlement_engine.db.session import SessionLocal
from entitlement_engine.economy.payments.event_cache import EventCache, build_event_cache
from entitlement_engine.economy.payments.types import WebhookAck, WebhookEvent

logger = structlog.get_logger(__name__)

COMPLETION_EVENT_TYPES = frozenset({"checkout.completed", "order.paid"})


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, *, secret: str | None = None) -> None:
    resolved_secret = get_settings().payment_gateway_webhook_secret if secret is None else secret
    if not resolved_secret:
        raise ConfigurationError("PAYMENT_GATEWAY_WEBHOOK_SECRET is not set")
    if not signature:
        raise AuthenticityError("missing webhook signature")

    expected = compute_signature(raw_body, resolved_secret)
    if not hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8")):
        raise AuthenticityError("webhook signature mismatch")


def parse_event(raw_body: bytes) -> WebhookEvent:
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError) as exc:
        raise ValidationError("webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("webhook body must be a JSON object")

    event_id = payload.get("id")
    event_type = payload.get("type")
    if not isinstance(event_id, str) or not event_id or not isinstance(event_type, str):
        raise ValidationError("webhook event requires string id and type")

    data = payload.get("data")
    timestamp = payload.get("timestamp")
    return WebhookEvent(
        id=event_id,
        type=event_type,
        data=data if isinstance(data, dict) else {},
        timestamp=str(timestamp) if timestamp is not None else None,
    )


def _parse_transaction_id(raw_value: object) -> UUID | None:
    if raw_value is None:
        return None
    try:
        return UUID(str(raw_value))
    except ValueError:
        return None


async def complete_transaction(event: WebhookEvent, *, now_utc: datetime | None = None) -> Purchase | None:
    """Settles the transaction an event refers to; None when there is nothing to do."""
    now_utc = now_utc or utc_now()
    data: dict[str, Any] = event.data
    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    checkout_session_id = data.get("checkout_session_id")
    payment_id = data.get("payment_id")

    async with SessionLocal.begin() as session:
        transaction_id = _parse_transaction_id(metadata.get("transactionId"))
        if transaction_id is None and isinstance(checkout_session_id, str) and checkout_session_id:
            by_session = await TransactionsRepo.get_by_checkout_session_id(session, checkout_session_id)
            transaction_id = by_session.id if by_session is not None else None
        if transaction_id is None:
            logger.warning(
                "payment_webhook_transaction_unresolved",
                event_id=event.id,
                event_type=event.type,
            )
            return None

        transaction = await TransactionsRepo.get_by_id(session, transaction_id)
        if transaction is None:
            logger.warning(
                "payment_webhook_transaction_not_found",
                event_id=event.id,
                transaction_id=str(transaction_id),
            )
            return None

        settled = await TransactionsRepo.mark_completed_if_pending(
            session,
            transaction_id=transaction.id,
            gateway_payment_id=str(payment_id) if payment_id is not None else None,
            raw_gateway_payload=data,
            now_utc=now_utc,
        )
        if not settled:
            logger.info(
                "payment_webhook_transaction_already_completed",
                event_id=event.id,
                transaction_id=str(transaction.id),
            )
            return None

        purchase = await PurchasesRepo.create(
            session,
            purchase=Purchase(
                id=uuid4(),
                actor_id=transaction.actor_id,
                game_id=transaction.game_id,
                chapter_id=transaction.chapter_id,
                purchase_type="online_payment",
                amount=transaction.amount,
                currency=transaction.currency,
                status="completed",
                source_transaction_id=transaction.id,
                created_at=now_utc,
                completed_at=now_utc,
            ),
        )

    logger.info(
        "payment_transaction_completed",
        event_id=event.id,
        event_type=event.type,
        transaction_id=str(transaction_id),
        purchase_id=str(purchase.id),
        actor_id=purchase.actor_id,
    )
    return purchase


class WebhookProcessor:
    def __init__(
        self,
        *,
        event_cache: EventCache | None = None,
        processing_timeout_seconds: float | None = None,
    ) -> None:
        settings = get_settings()
        self.event_cache = event_cache if event_cache is not None else build_event_cache()
        self.processing_timeout_seconds = (
            processing_timeout_seconds
            if processing_timeout_seconds is not None
            else settings.payment_webhook_processing_timeout_seconds
        )

    async def dispatch(self, event: WebhookEvent) -> None:
        if event.type not in COMPLETION_EVENT_TYPES:
            logger.info("payment_webhook_event_ignored", event_id=event.id, event_type=event.type)
            return
        await complete_transaction(event)

    async def handle(self, raw_body: bytes, signature: str | None) -> WebhookAck:
        """Raises only for a bad signature; any later failure is logged and acked."""
        verify_signature(raw_body, signature)

        try:
            event = parse_event(raw_body)
        except ValidationError:
            logger.warning("payment_webhook_malformed_event", body_size=len(raw_body))
            return WebhookAck()

        if not await self.event_cache.add_if_absent(event.id):
            logger.info("payment_webhook_duplicate_event", event_id=event.id, event_type=event.type)
            return WebhookAck(duplicate=True)

        try:
            await asyncio.wait_for(self.dispatch(event), timeout=self.processing_timeout_seconds)
        except Exception:
            logger.exception(
                "payment_webhook_processing_failed",
                event_id=event.id,
                event_type=event.type,
            )
            await self.event_cache.discard(event.id)
        return WebhookAck()


_webhook_processor: WebhookProcessor | None = None


def get_webhook_processor() -> WebhookProcessor:
    global _webhook_processor
    if _webhook_processor is None:
        _webhook_processor = WebhookProcessor()
    return _webhook_processor
