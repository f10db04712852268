from __future__ import annotations

import pytest
from sqlalchemy import text

from entitlement_engine.core.integration_db_safety import assess_integration_db_safety
from entitlement_engine.db.session import engine

TRUNCATE_TABLES = (
    "purchases",
    "redeem_code_uses",
    "redeem_codes",
    "payment_transactions",
    "game_chapters",
    "games",
    "tenant_settings",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture(scope="session", autouse=True)
def guard_integration_db_target() -> None:
    result = assess_integration_db_safety(str(engine.url))
    if not result.is_safe:
        pytest.skip(f"Refusing to TRUNCATE {result.database_name!r}@{result.host!r}: {result.reason}")


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Pooled asyncpg connections are bound to the loop that opened them.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    async with engine.begin() as conn:
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
