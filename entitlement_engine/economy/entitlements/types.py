from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID


@dataclass(slots=True)
class ChapterAccess:
    chapter_id: UUID
    order: int
    title: str
    has_access: bool
    price: int | None = None


@dataclass(slots=True)
class Entitlement:
    has_access: bool
    pricing_type: str
    purchase_type: str | None = None
    price: int | None = None
    currency: str | None = None
    chapters: list[ChapterAccess] | None = field(default=None)
