from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.db.models.tenant_settings import TenantSettings


class TenantSettingsRepo:
    @staticmethod
    async def get(session: AsyncSession, tenant_id: str) -> TenantSettings | None:
        return await session.get(TenantSettings, tenant_id)

    @staticmethod
    async def get_for_update(session: AsyncSession, tenant_id: str) -> TenantSettings | None:
        stmt = select(TenantSettings).where(TenantSettings.tenant_id == tenant_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, tenant_settings: TenantSettings) -> TenantSettings:
        session.add(tenant_settings)
        await session.flush()
        return tenant_settings
