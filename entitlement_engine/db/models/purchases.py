from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from entitlement_engine.db.models.base import Base


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        CheckConstraint(
            "purchase_type IN ('redeem_code','cash_payment','online_payment','in_game_points')",
            name="ck_purchases_purchase_type",
        ),
        CheckConstraint(
            "status IN ('pending','completed','failed','refunded')",
            name="ck_purchases_status",
        ),
        CheckConstraint("amount >= 0", name="ck_purchases_amount_non_negative"),
        Index("idx_purchases_actor", "actor_id"),
        Index("idx_purchases_game", "game_id"),
        Index("idx_purchases_actor_game_status", "actor_id", "game_id", "status"),
        Index("idx_purchases_status", "status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    game_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    chapter_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("game_chapters.id", ondelete="CASCADE"), nullable=True
    )
    purchase_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    currency: Mapped[str] = mapped_column(String(10), nullable=False, server_default=text("'TWD'"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'pending'"))
    source_code_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("redeem_codes.id"), nullable=True
    )
    source_transaction_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("payment_transactions.id"),
        unique=True,
        nullable=True,
    )
    granted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
