from __future__ import annotations

import asyncio
import json

import pytest
from sqlalchemy import func, select

from entitlement_engine.db.models.payment_transactions import PaymentTransaction
from entitlement_engine.db.models.purchases import Purchase
from entitlement_engine.db.session import SessionLocal
from entitlement_engine.economy.payments.event_cache import InMemoryEventCache
from entitlement_engine.economy.payments.webhook import WebhookProcessor, compute_signature
from tests.factories import create_game, create_pending_transaction


def _signed(event_id: str, transaction_id: str) -> tuple[bytes, str]:
    body = json.dumps(
        {
            "id": event_id,
            "type": "checkout.completed",
            "data": {"payment_id": f"pay_{event_id}", "metadata": {"transactionId": transaction_id}},
        }
    ).encode("utf-8")
    return body, compute_signature(body, "whsec_test_secret")


@pytest.mark.asyncio
async def test_parallel_deliveries_settle_transaction_once() -> None:
    seeded = await create_game(SessionLocal)
    transaction = await create_pending_transaction(SessionLocal, game=seeded.game)
    processors = [
        WebhookProcessor(event_cache=InMemoryEventCache(max_size=10), processing_timeout_seconds=10.0)
        for _ in range(5)
    ]

    acks = await asyncio.gather(
        *(
            processor.handle(*_signed(f"evt_{index}", str(transaction.id)))
            for index, processor in enumerate(processors)
        )
    )

    assert all(ack.received for ack in acks)
    async with SessionLocal() as session:
        purchases = await session.scalar(
            select(func.count()).select_from(Purchase).where(Purchase.source_transaction_id == transaction.id)
        )
        stored = await session.get(PaymentTransaction, transaction.id)
    assert purchases == 1
    assert stored is not None
    assert stored.status == "completed"
