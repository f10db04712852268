from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from entitlement_engine.economy.redeem.codes import MAX_BATCH_SIZE
from entitlement_engine.economy.redeem.types import MAX_USES_LIMIT


class RedeemRequest(BaseModel):
    actor_id: str = Field(min_length=1, max_length=128)
    code: str = Field(min_length=1, max_length=64)


class RedeemResponse(BaseModel):
    scope: str
    game_id: UUID
    chapter_id: UUID | None = None
    purchase_id: UUID


class ChapterAccessResponse(BaseModel):
    chapter_id: UUID
    order: int
    title: str
    has_access: bool
    price: int | None = None


class AccessResponse(BaseModel):
    has_access: bool
    pricing_type: str
    purchase_type: str | None = None
    price: int | None = None
    currency: str | None = None
    chapters: list[ChapterAccessResponse] | None = None


class PurchaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: str
    game_id: UUID
    chapter_id: UUID | None = None
    purchase_type: str
    amount: int
    currency: str
    status: str
    source_code_id: UUID | None = None
    source_transaction_id: UUID | None = None
    granted_by: str | None = None
    note: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
    refunded_at: datetime | None = None


class PurchaseListResponse(BaseModel):
    purchases: list[PurchaseResponse]


class CheckoutRequest(BaseModel):
    actor_id: str = Field(min_length=1, max_length=128)
    chapter_id: UUID | None = None
    success_url: str = Field(min_length=1, max_length=2048)
    cancel_url: str = Field(min_length=1, max_length=2048)
    customer_email: str | None = Field(default=None, max_length=320)
    customer_name: str | None = Field(default=None, max_length=200)


class CheckoutResponse(BaseModel):
    transaction_id: UUID
    checkout_url: str
    checkout_session_id: str


class RedeemCodeCreateRequest(BaseModel):
    scope: Literal["game", "chapter"]
    chapter_id: UUID | None = None
    max_uses: int = Field(default=1, ge=1, le=MAX_USES_LIMIT)
    expires_at: datetime | None = None
    label: str | None = Field(default=None, max_length=200)
    created_by: str | None = Field(default=None, max_length=64)


class RedeemCodeBatchRequest(RedeemCodeCreateRequest):
    count: int = Field(ge=1, le=MAX_BATCH_SIZE)


class RedeemCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    tenant_id: str
    game_id: UUID
    chapter_id: UUID | None = None
    scope: str
    max_uses: int
    used_count: int
    status: str
    expires_at: datetime | None = None
    label: str | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime


class RedeemCodeListResponse(BaseModel):
    count: int
    codes: list[RedeemCodeResponse]


class RedeemCodeUseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code_id: UUID
    actor_id: str
    used_at: datetime


class RedeemCodeUseListResponse(BaseModel):
    uses: list[RedeemCodeUseResponse]


class GrantAccessRequest(BaseModel):
    actor_id: str = Field(min_length=1, max_length=128)
    chapter_id: UUID | None = None
    amount: int = Field(default=0, ge=0)
    note: str | None = Field(default=None, max_length=500)
    granted_by: str | None = Field(default=None, max_length=64)


class RefundResponse(BaseModel):
    purchase_id: UUID
    status: str
    idempotent_replay: bool


class GameSalesResponse(BaseModel):
    game_id: UUID
    title: str
    revenue: int
    purchase_count: int
    total_codes: int
    active_codes: int
    code_use_count: int


class SalesSummaryResponse(BaseModel):
    tenant_id: str
    total_revenue: int
    monthly_revenue: int
    games: list[GameSalesResponse]


class TenantSettingsResponse(BaseModel):
    tenant_id: str
    has_ai_api_key: bool
    ai_api_key_masked: str | None = None
    enable_ai: bool
    enable_payment: bool
    welcome_message: str | None = None
    updated_at: datetime | None = None
