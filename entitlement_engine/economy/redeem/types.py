from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

MAX_USES_LIMIT = 10000


@dataclass(slots=True)
class RedeemResult:
    code_id: UUID
    purchase_id: UUID
    scope: str
    game_id: UUID
    chapter_id: UUID | None = None


class RedeemCodePatch(BaseModel):
    status: Literal["active", "used", "expired", "disabled"] | None = None
    max_uses: int | None = Field(default=None, ge=1, le=MAX_USES_LIMIT)
    expires_at: datetime | None = None
    label: str | None = Field(default=None, max_length=200)
