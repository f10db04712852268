from __future__ import annotations

from types import SimpleNamespace

from fastapi.testclient import TestClient

from entitlement_engine.api.routes import health as health_routes
from entitlement_engine.main import app


async def _ok_check() -> dict[str, str]:
    return {"status": "ok"}


class _BrokenSession:
    async def __aenter__(self) -> "_BrokenSession":
        raise ConnectionRefusedError("password=hunter2 host=db.internal")

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None


def test_health_ok_checks_database_only_for_memory_backend(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "_check_database", _ok_check)

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "checks": {"database": {"status": "ok"}}}


def test_health_includes_redis_for_redis_backend(monkeypatch) -> None:
    async def _failed_redis() -> dict[str, str]:
        return {"status": "failed", "error": "redis_unavailable"}

    monkeypatch.setattr(health_routes, "_check_database", _ok_check)
    monkeypatch.setattr(health_routes, "_check_redis", _failed_redis)
    monkeypatch.setattr(health_routes, "_uses_redis", lambda: True)

    response = TestClient(app).get("/health")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"]["database"] == {"status": "ok"}
    assert payload["checks"]["redis"] == {"status": "failed", "error": "redis_unavailable"}


def test_ready_reports_not_ready_without_leaking_error_details(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _BrokenSession())

    response = TestClient(app).get("/ready")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "not_ready"
    assert payload["checks"]["database"] == {"status": "failed", "error": "database_unavailable"}
    assert "hunter2" not in response.text


def test_live_ok() -> None:
    response = TestClient(app).get("/live")

    assert response.status_code == 200
    assert response.json() == {"status": "live"}


def test_uses_redis_follows_rate_limit_backend(monkeypatch) -> None:
    monkeypatch.setattr(health_routes, "get_settings", lambda: SimpleNamespace(rate_limit_backend=" Redis "))

    assert health_routes._uses_redis() is True
