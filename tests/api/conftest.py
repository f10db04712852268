from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from entitlement_engine.db.models.base import Base
from entitlement_engine.main import app
from entitlement_engine.services import internal_auth
from tests.sessions import patch_session_local

INTERNAL_HEADERS = {"X-Internal-Token": "internal-secret"}


@pytest.fixture
def api_sessions(tmp_path, monkeypatch):
    """Sessions usable both from asyncio.run() seeding and from the TestClient loop."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)

    async def _create_schema() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create_schema())
    factory = async_sessionmaker(engine, expire_on_commit=False)
    patch_session_local(monkeypatch, factory)
    return factory


@pytest.fixture
def internal_client(monkeypatch, api_sessions) -> TestClient:
    monkeypatch.setattr(
        internal_auth,
        "extract_client_ip",
        lambda request, *, trusted_proxies="": "127.0.0.1",
    )
    return TestClient(app, headers=INTERNAL_HEADERS)
