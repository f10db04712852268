from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from entitlement_engine.db.models.base import Base


class Game(Base):
    __tablename__ = "games"
    __table_args__ = (
        CheckConstraint(
            "pricing_type IN ('free','one_time','per_chapter')",
            name="ck_games_pricing_type",
        ),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_games_price_non_negative"),
        Index("idx_games_tenant", "tenant_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    pricing_type: Mapped[str] = mapped_column(String(16), nullable=False, default="free")
    price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="TWD")
    payment_product_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class GameChapter(Base):
    __tablename__ = "game_chapters"
    __table_args__ = (
        CheckConstraint(
            "unlock_type IN ('free','complete_previous','score_threshold','paid')",
            name="ck_game_chapters_unlock_type",
        ),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_game_chapters_price_non_negative"),
        Index("idx_game_chapters_order", "game_id", "chapter_order"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    game_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    chapter_order: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    unlock_type: Mapped[str] = mapped_column(String(20), nullable=False, default="complete_previous")
    price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_product_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
