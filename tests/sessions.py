from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entitlement_engine.api.routes import (
    admin_purchases,
    admin_redeem_codes,
    admin_tenants,
    player,
)
from entitlement_engine.economy.payments import checkout, webhook

SESSION_LOCAL_MODULES = (player, admin_redeem_codes, admin_purchases, admin_tenants, checkout, webhook)


def patch_session_local(
    monkeypatch: pytest.MonkeyPatch,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    for module in SESSION_LOCAL_MODULES:
        monkeypatch.setattr(module, "SessionLocal", session_factory)
