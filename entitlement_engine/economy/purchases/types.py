from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID


@dataclass(slots=True)
class PurchaseRefundResult:
    purchase_id: UUID
    status: str
    idempotent_replay: bool


@dataclass(slots=True)
class GameSalesSummary:
    game_id: UUID
    title: str
    revenue: int
    purchase_count: int
    total_codes: int = 0
    active_codes: int = 0
    code_use_count: int = 0


@dataclass(slots=True)
class SalesSummary:
    tenant_id: str
    total_revenue: int
    monthly_revenue: int
    games: list[GameSalesSummary] = field(default_factory=list)
