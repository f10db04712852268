from __future__ import annotations

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("FIELD_SETTINGS_ENCRYPTION_KEY", "a1" * 32)
os.environ.setdefault("PAYMENT_GATEWAY_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("PAYMENT_GATEWAY_API_KEY", "sk_test_gateway")
os.environ.setdefault("INTERNAL_API_TOKEN", "internal-secret")
os.environ.setdefault("INTERNAL_API_ALLOWLIST", "127.0.0.1/32")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from entitlement_engine.db import models  # noqa: E402,F401
from entitlement_engine.db.models.base import Base  # noqa: E402
from entitlement_engine.economy.redeem import rate_limit  # noqa: E402
from tests.sessions import patch_session_local  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_attempt_limiter(monkeypatch) -> None:
    monkeypatch.setattr(rate_limit, "_attempt_limiter", None)


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'entitlements.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def use_test_sessions(monkeypatch, session_factory):
    patch_session_local(monkeypatch, session_factory)
    return session_factory
