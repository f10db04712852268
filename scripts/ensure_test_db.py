"""Creates the local integration-test database named by DATABASE_URL if it is missing."""

from __future__ import annotations

import asyncio
import re

import asyncpg
from sqlalchemy.engine import make_url

from entitlement_engine.core.config import get_settings
from entitlement_engine.core.integration_db_safety import assess_integration_db_safety

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_target(database_url: str) -> str:
    result = assess_integration_db_safety(database_url)
    if not result.is_safe:
        raise RuntimeError(f"Refusing to create database '{result.database_name}': {result.reason}")
    if IDENTIFIER_RE.fullmatch(result.database_name) is None:
        raise RuntimeError(
            f"Unsupported database name '{result.database_name}'. "
            "Only [A-Za-z0-9_] identifiers are supported."
        )
    return result.database_name


async def _ensure_database_exists(database_url: str) -> bool:
    """Returns True when the database had to be created."""
    db_name = _validate_target(database_url)
    parsed = make_url(database_url)
    if parsed.username is None:
        raise RuntimeError("DATABASE_URL username is required.")

    conn = await asyncpg.connect(
        host=parsed.host or "localhost",
        port=int(parsed.port or 5432),
        user=parsed.username,
        password=parsed.password,
        database="postgres",
    )
    try:
        if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name):
            return False
        await conn.execute(f'CREATE DATABASE "{db_name}"')
        return True
    finally:
        await conn.close()


def main() -> int:
    database_url = get_settings().database_url
    created = asyncio.run(_ensure_database_exists(database_url))
    print(f"ensure_test_db: {'created' if created else 'exists'} db={make_url(database_url).database}")  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
