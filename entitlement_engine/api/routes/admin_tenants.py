from __future__ import annotations

from fastapi import APIRouter, Request

from entitlement_engine.core.errors import EngineError
from entitlement_engine.core.time import utc_now
from entitlement_engine.db.session import SessionLocal
from entitlement_engine.economy.tenants.service import TenantSettingsService
from entitlement_engine.economy.tenants.types import TenantSettingsPatch, TenantSettingsView

from .internal_helpers import _assert_internal_access, as_http_error
from .internal_models import TenantSettingsResponse

router = APIRouter(prefix="/internal/admin", tags=["internal", "admin", "tenants"])


def _as_response(view: TenantSettingsView) -> TenantSettingsResponse:
    return TenantSettingsResponse(
        tenant_id=view.tenant_id,
        has_ai_api_key=view.has_ai_api_key,
        ai_api_key_masked=view.ai_api_key_masked,
        enable_ai=view.enable_ai,
        enable_payment=view.enable_payment,
        welcome_message=view.welcome_message,
        updated_at=view.updated_at,
    )


@router.get("/tenants/{tenant_id}/settings", response_model=TenantSettingsResponse)
async def get_tenant_settings(tenant_id: str, request: Request) -> TenantSettingsResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            view = await TenantSettingsService.get_settings(session, tenant_id=tenant_id)
    except EngineError as exc:
        raise as_http_error(exc) from exc
    return _as_response(view)


@router.patch("/tenants/{tenant_id}/settings", response_model=TenantSettingsResponse)
async def update_tenant_settings(
    tenant_id: str,
    payload: TenantSettingsPatch,
    request: Request,
) -> TenantSettingsResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            view = await TenantSettingsService.update_settings(
                session,
                tenant_id=tenant_id,
                patch=payload,
                now_utc=utc_now(),
            )
    except EngineError as exc:
        raise as_http_error(exc) from exc
    return _as_response(view)
