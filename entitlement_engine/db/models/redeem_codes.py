from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from entitlement_engine.db.models.base import Base


class RedeemCode(Base):
    __tablename__ = "redeem_codes"
    __table_args__ = (
        CheckConstraint("scope IN ('game','chapter')", name="ck_redeem_codes_scope"),
        CheckConstraint(
            "(scope = 'game' AND chapter_id IS NULL) OR (scope = 'chapter' AND chapter_id IS NOT NULL)",
            name="ck_redeem_codes_scope_chapter_consistency",
        ),
        CheckConstraint(
            "status IN ('active','used','expired','disabled')",
            name="ck_redeem_codes_status",
        ),
        CheckConstraint("max_uses >= 1", name="ck_redeem_codes_max_uses_positive"),
        CheckConstraint("used_count >= 0", name="ck_redeem_codes_used_count_non_negative"),
        CheckConstraint("used_count <= max_uses", name="ck_redeem_codes_used_count_le_max"),
        CheckConstraint(
            "(status = 'used' AND used_count = max_uses) OR (status <> 'used' AND used_count < max_uses)",
            name="ck_redeem_codes_used_status_consistency",
        ),
        Index("idx_redeem_codes_game", "game_id"),
        Index("idx_redeem_codes_tenant", "tenant_id"),
        Index("idx_redeem_codes_status", "status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    game_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    chapter_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("game_chapters.id", ondelete="CASCADE"), nullable=True
    )
    scope: Mapped[str] = mapped_column(String(16), nullable=False)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'active'"))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    label: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
