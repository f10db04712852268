from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from entitlement_engine.db.models.base import Base


class RedeemCodeUse(Base):
    __tablename__ = "redeem_code_uses"
    __table_args__ = (
        UniqueConstraint("code_id", "actor_id", name="uq_redeem_code_uses_code_actor"),
        Index("idx_redeem_code_uses_code", "code_id"),
        Index("idx_redeem_code_uses_actor", "actor_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    code_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("redeem_codes.id"), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
