from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.core.crypto import decrypt_secret, encrypt_secret, mask_secret
from entitlement_engine.core.errors import FeatureDisabledError, GameNotFoundError
from entitlement_engine.core.time import utc_now
from entitlement_engine.db.models.tenant_settings import TenantSettings
from entitlement_engine.db.repo.games_repo import GamesRepo
from entitlement_engine.db.repo.tenant_settings_repo import TenantSettingsRepo
from entitlement_engine.economy.tenants.types import TenantSettingsPatch, TenantSettingsView

logger = structlog.get_logger(__name__)

AI_API_KEY_FIELD = "ai_api_key"


def _as_view(tenant_id: str, row: TenantSettings | None) -> TenantSettingsView:
    stored = dict(row.settings or {}) if row is not None else {}
    encrypted_key = stored.get(AI_API_KEY_FIELD)
    masked = mask_secret(decrypt_secret(str(encrypted_key))) if encrypted_key else None
    welcome_message = stored.get("welcome_message")
    return TenantSettingsView(
        tenant_id=tenant_id,
        has_ai_api_key=bool(encrypted_key),
        ai_api_key_masked=masked,
        enable_ai=stored.get("enable_ai") is not False,
        enable_payment=stored.get("enable_payment") is not False,
        welcome_message=str(welcome_message) if welcome_message is not None else None,
        updated_at=row.updated_at if row is not None else None,
    )


class TenantSettingsService:
    @staticmethod
    async def get_settings(session: AsyncSession, *, tenant_id: str) -> TenantSettingsView:
        row = await TenantSettingsRepo.get(session, tenant_id)
        return _as_view(tenant_id, row)

    @staticmethod
    async def update_settings(
        session: AsyncSession,
        *,
        tenant_id: str,
        patch: TenantSettingsPatch,
        now_utc: datetime | None = None,
    ) -> TenantSettingsView:
        now_utc = now_utc or utc_now()
        row = await TenantSettingsRepo.get_for_update(session, tenant_id)
        if row is None:
            row = await TenantSettingsRepo.create(
                session,
                tenant_settings=TenantSettings(tenant_id=tenant_id, settings={}, updated_at=now_utc),
            )

        changes = patch.model_dump(exclude_unset=True)
        merged = dict(row.settings or {})
        if AI_API_KEY_FIELD in changes:
            plaintext = (changes.pop(AI_API_KEY_FIELD) or "").strip()
            if plaintext:
                merged[AI_API_KEY_FIELD] = encrypt_secret(plaintext)
            else:
                merged.pop(AI_API_KEY_FIELD, None)
        merged.update(changes)

        # JSON columns only persist on reassignment.
        row.settings = merged
        row.updated_at = now_utc
        await session.flush()

        logger.info(
            "tenant_settings_updated",
            tenant_id=tenant_id,
            fields=sorted(patch.model_fields_set),
        )
        return _as_view(tenant_id, row)

    @staticmethod
    async def get_tenant_api_key(session: AsyncSession, *, tenant_id: str) -> str | None:
        """Returns the decrypted AI key, or None when the tenant has none stored."""
        row = await TenantSettingsRepo.get(session, tenant_id)
        stored = dict(row.settings or {}) if row is not None else {}
        if stored.get("enable_ai") is False:
            raise FeatureDisabledError("AI is disabled for this tenant")
        encrypted_key = stored.get(AI_API_KEY_FIELD)
        if not encrypted_key:
            return None
        return decrypt_secret(str(encrypted_key))

    @staticmethod
    async def get_game_api_key(session: AsyncSession, *, game_id: UUID) -> str | None:
        game = await GamesRepo.get_by_id(session, game_id)
        if game is None:
            raise GameNotFoundError
        if not game.tenant_id:
            return None
        return await TenantSettingsService.get_tenant_api_key(session, tenant_id=game.tenant_id)

    @staticmethod
    async def is_payment_enabled(session: AsyncSession, *, tenant_id: str | None) -> bool:
        if not tenant_id:
            return True
        row = await TenantSettingsRepo.get(session, tenant_id)
        if row is None:
            return True
        return (row.settings or {}).get("enable_payment") is not False
