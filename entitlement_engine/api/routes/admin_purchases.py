from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Request, status

from entitlement_engine.core.errors import EngineError
from entitlement_engine.core.time import utc_now
from entitlement_engine.db.session import SessionLocal
from entitlement_engine.economy.purchases.service import PurchaseService

from .internal_helpers import _assert_internal_access, as_http_error
from .internal_models import (
    GameSalesResponse,
    GrantAccessRequest,
    PurchaseListResponse,
    PurchaseResponse,
    RefundResponse,
    SalesSummaryResponse,
)

router = APIRouter(prefix="/internal/admin", tags=["internal", "admin", "purchases"])


@router.post(
    "/games/{game_id}/grant-access",
    response_model=PurchaseResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_access(game_id: UUID, payload: GrantAccessRequest, request: Request) -> PurchaseResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            purchase = await PurchaseService.grant_cash_access(
                session,
                actor_id=payload.actor_id,
                game_id=game_id,
                chapter_id=payload.chapter_id,
                amount=payload.amount,
                note=payload.note,
                granted_by=payload.granted_by,
                now_utc=utc_now(),
            )
            return PurchaseResponse.model_validate(purchase)
    except EngineError as exc:
        raise as_http_error(exc) from exc


@router.get("/games/{game_id}/purchases", response_model=PurchaseListResponse)
async def list_game_purchases(game_id: UUID, request: Request) -> PurchaseListResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            purchases = await PurchaseService.list_game_purchases(session, game_id=game_id)
            return PurchaseListResponse(
                purchases=[PurchaseResponse.model_validate(purchase) for purchase in purchases]
            )
    except EngineError as exc:
        raise as_http_error(exc) from exc


@router.post("/purchases/{purchase_id}/refund", response_model=RefundResponse)
async def refund_purchase(purchase_id: UUID, request: Request) -> RefundResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            result = await PurchaseService.refund_purchase(
                session,
                purchase_id=purchase_id,
                now_utc=utc_now(),
            )
    except EngineError as exc:
        raise as_http_error(exc) from exc

    return RefundResponse(
        purchase_id=result.purchase_id,
        status=result.status,
        idempotent_replay=result.idempotent_replay,
    )


@router.get("/tenants/{tenant_id}/sales-summary", response_model=SalesSummaryResponse)
async def get_sales_summary(tenant_id: str, request: Request) -> SalesSummaryResponse:
    _assert_internal_access(request)

    async with SessionLocal.begin() as session:
        summary = await PurchaseService.get_sales_summary(
            session,
            tenant_id=tenant_id,
            now_utc=utc_now(),
        )

    return SalesSummaryResponse(
        tenant_id=summary.tenant_id,
        total_revenue=summary.total_revenue,
        monthly_revenue=summary.monthly_revenue,
        games=[
            GameSalesResponse(
                game_id=game.game_id,
                title=game.title,
                revenue=game.revenue,
                purchase_count=game.purchase_count,
                total_codes=game.total_codes,
                active_codes=game.active_codes,
                code_use_count=game.code_use_count,
            )
            for game in summary.games
        ],
    )
