from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Request, Response, status

from entitlement_engine.core.errors import EngineError
from entitlement_engine.core.time import utc_now
from entitlement_engine.db.session import SessionLocal
from entitlement_engine.economy.redeem.admin import RedeemCodeAdminService
from entitlement_engine.economy.redeem.types import RedeemCodePatch

from .internal_helpers import _assert_internal_access, as_http_error
from .internal_models import (
    RedeemCodeBatchRequest,
    RedeemCodeCreateRequest,
    RedeemCodeListResponse,
    RedeemCodeResponse,
    RedeemCodeUseListResponse,
    RedeemCodeUseResponse,
)

router = APIRouter(prefix="/internal/admin", tags=["internal", "admin", "redeem-codes"])


async def _create_codes(
    *,
    game_id: UUID,
    payload: RedeemCodeCreateRequest,
    count: int,
) -> RedeemCodeListResponse:
    try:
        async with SessionLocal.begin() as session:
            codes = await RedeemCodeAdminService.create_codes(
                session,
                game_id=game_id,
                scope=payload.scope,
                count=count,
                chapter_id=payload.chapter_id,
                max_uses=payload.max_uses,
                expires_at=payload.expires_at,
                label=payload.label,
                created_by=payload.created_by,
                now_utc=utc_now(),
            )
            items = [RedeemCodeResponse.model_validate(code) for code in codes]
    except EngineError as exc:
        raise as_http_error(exc) from exc
    return RedeemCodeListResponse(count=len(items), codes=items)


@router.get("/games/{game_id}/redeem-codes", response_model=RedeemCodeListResponse)
async def list_redeem_codes(game_id: UUID, request: Request) -> RedeemCodeListResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            codes = await RedeemCodeAdminService.list_codes(session, game_id=game_id)
            items = [RedeemCodeResponse.model_validate(code) for code in codes]
    except EngineError as exc:
        raise as_http_error(exc) from exc
    return RedeemCodeListResponse(count=len(items), codes=items)


@router.post(
    "/games/{game_id}/redeem-codes",
    response_model=RedeemCodeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_redeem_code(
    game_id: UUID,
    payload: RedeemCodeCreateRequest,
    request: Request,
) -> RedeemCodeResponse:
    _assert_internal_access(request)
    created = await _create_codes(game_id=game_id, payload=payload, count=1)
    return created.codes[0]


@router.post(
    "/games/{game_id}/redeem-codes/batch",
    response_model=RedeemCodeListResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_redeem_code_batch(
    game_id: UUID,
    payload: RedeemCodeBatchRequest,
    request: Request,
) -> RedeemCodeListResponse:
    _assert_internal_access(request)
    return await _create_codes(game_id=game_id, payload=payload, count=payload.count)


@router.patch("/redeem-codes/{code_id}", response_model=RedeemCodeResponse)
async def update_redeem_code(
    code_id: UUID,
    payload: RedeemCodePatch,
    request: Request,
) -> RedeemCodeResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            redeem_code = await RedeemCodeAdminService.update_code(
                session,
                code_id=code_id,
                patch=payload,
                now_utc=utc_now(),
            )
            return RedeemCodeResponse.model_validate(redeem_code)
    except EngineError as exc:
        raise as_http_error(exc) from exc


@router.delete("/redeem-codes/{code_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_redeem_code(code_id: UUID, request: Request) -> Response:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            await RedeemCodeAdminService.delete_code(session, code_id=code_id)
    except EngineError as exc:
        raise as_http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/redeem-codes/{code_id}/uses", response_model=RedeemCodeUseListResponse)
async def list_redeem_code_uses(code_id: UUID, request: Request) -> RedeemCodeUseListResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            uses = await RedeemCodeAdminService.list_uses(session, code_id=code_id)
            return RedeemCodeUseListResponse(
                uses=[RedeemCodeUseResponse.model_validate(code_use) for code_use in uses]
            )
    except EngineError as exc:
        raise as_http_error(exc) from exc
