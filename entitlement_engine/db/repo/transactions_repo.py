from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.db.models.payment_transactions import PaymentTransaction


class TransactionsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        transaction: PaymentTransaction,
    ) -> PaymentTransaction:
        session.add(transaction)
        await session.flush()
        return transaction

    @staticmethod
    async def get_by_id(session: AsyncSession, transaction_id: UUID) -> PaymentTransaction | None:
        return await session.get(PaymentTransaction, transaction_id)

    @staticmethod
    async def get_by_checkout_session_id(
        session: AsyncSession,
        checkout_session_id: str,
    ) -> PaymentTransaction | None:
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.gateway_checkout_session_id == checkout_session_id)
            .order_by(PaymentTransaction.created_at.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def attach_checkout_session(
        session: AsyncSession,
        *,
        transaction_id: UUID,
        checkout_session_id: str,
        now_utc: datetime,
    ) -> None:
        stmt = (
            update(PaymentTransaction)
            .where(PaymentTransaction.id == transaction_id)
            .values(gateway_checkout_session_id=checkout_session_id, updated_at=now_utc)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    @staticmethod
    async def record_error(
        session: AsyncSession,
        *,
        transaction_id: UUID,
        error_message: str,
        now_utc: datetime,
    ) -> None:
        stmt = (
            update(PaymentTransaction)
            .where(PaymentTransaction.id == transaction_id)
            .values(error_message=error_message[:1000], updated_at=now_utc)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    @staticmethod
    async def mark_completed_if_pending(
        session: AsyncSession,
        *,
        transaction_id: UUID,
        gateway_payment_id: str | None,
        raw_gateway_payload: dict[str, object],
        now_utc: datetime,
    ) -> bool:
        """Settles a pending transaction; False when it was already completed."""
        stmt = (
            update(PaymentTransaction)
            .where(
                PaymentTransaction.id == transaction_id,
                PaymentTransaction.status == "pending",
            )
            .values(
                status="completed",
                gateway_payment_id=gateway_payment_id,
                raw_gateway_payload=raw_gateway_payload,
                completed_at=now_utc,
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1
