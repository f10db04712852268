from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Request

from entitlement_engine.core.errors import EngineError
from entitlement_engine.core.time import utc_now
from entitlement_engine.db.session import SessionLocal
from entitlement_engine.economy.entitlements.service import EntitlementService
from entitlement_engine.economy.payments.checkout import start_checkout
from entitlement_engine.economy.purchases.service import PurchaseService
from entitlement_engine.economy.redeem.service import RedeemService

from .internal_helpers import _assert_internal_access, as_http_error
from .internal_models import (
    AccessResponse,
    ChapterAccessResponse,
    CheckoutRequest,
    CheckoutResponse,
    PurchaseListResponse,
    PurchaseResponse,
    RedeemRequest,
    RedeemResponse,
)

router = APIRouter(prefix="/internal/player", tags=["internal", "player"])


@router.post("/redeem", response_model=RedeemResponse)
async def redeem_code(payload: RedeemRequest, request: Request) -> RedeemResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            result = await RedeemService.redeem(
                session,
                actor_id=payload.actor_id,
                code=payload.code,
                now_utc=utc_now(),
            )
    except EngineError as exc:
        raise as_http_error(exc) from exc

    return RedeemResponse(
        scope=result.scope,
        game_id=result.game_id,
        chapter_id=result.chapter_id,
        purchase_id=result.purchase_id,
    )


@router.get("/games/{game_id}/access", response_model=AccessResponse)
async def get_game_access(
    game_id: UUID,
    request: Request,
    actor_id: str = Query(min_length=1, max_length=128),
) -> AccessResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            entitlement = await EntitlementService.get_entitlement(
                session,
                actor_id=actor_id,
                game_id=game_id,
            )
    except EngineError as exc:
        raise as_http_error(exc) from exc

    chapters = None
    if entitlement.chapters is not None:
        chapters = [
            ChapterAccessResponse(
                chapter_id=chapter.chapter_id,
                order=chapter.order,
                title=chapter.title,
                has_access=chapter.has_access,
                price=chapter.price,
            )
            for chapter in entitlement.chapters
        ]
    return AccessResponse(
        has_access=entitlement.has_access,
        pricing_type=entitlement.pricing_type,
        purchase_type=entitlement.purchase_type,
        price=entitlement.price,
        currency=entitlement.currency,
        chapters=chapters,
    )


@router.get("/purchases", response_model=PurchaseListResponse)
async def list_my_purchases(
    request: Request,
    actor_id: str = Query(min_length=1, max_length=128),
) -> PurchaseListResponse:
    _assert_internal_access(request)

    async with SessionLocal.begin() as session:
        purchases = await PurchaseService.list_actor_purchases(session, actor_id=actor_id)
        return PurchaseListResponse(
            purchases=[PurchaseResponse.model_validate(purchase) for purchase in purchases]
        )


@router.post("/games/{game_id}/checkout", response_model=CheckoutResponse)
async def create_checkout(
    game_id: UUID,
    payload: CheckoutRequest,
    request: Request,
) -> CheckoutResponse:
    _assert_internal_access(request)

    try:
        result = await start_checkout(
            actor_id=payload.actor_id,
            game_id=game_id,
            chapter_id=payload.chapter_id,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
            customer_email=payload.customer_email,
            customer_name=payload.customer_name,
        )
    except EngineError as exc:
        raise as_http_error(exc) from exc

    return CheckoutResponse(
        transaction_id=result.transaction_id,
        checkout_url=result.checkout_url,
        checkout_session_id=result.checkout_session_id,
    )
