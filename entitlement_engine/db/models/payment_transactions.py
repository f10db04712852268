from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from entitlement_engine.db.models.base import Base


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','completed')",
            name="ck_payment_transactions_status",
        ),
        CheckConstraint("amount >= 0", name="ck_payment_transactions_amount_non_negative"),
        Index("idx_payment_transactions_actor", "actor_id"),
        Index("idx_payment_transactions_checkout_session", "gateway_checkout_session_id"),
        Index("idx_payment_transactions_status", "status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    game_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("games.id"), nullable=False)
    chapter_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("game_chapters.id"), nullable=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, server_default=text("'TWD'"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'pending'"))
    gateway_checkout_session_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    raw_gateway_payload: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
