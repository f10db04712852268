from __future__ import annotations

import structlog
from fastapi import HTTPException, Request

from entitlement_engine.core.config import get_settings
from entitlement_engine.core.errors import (
    AuthenticityError,
    CodeExhaustedError,
    CodeExpiredError,
    ConfigurationError,
    EngineError,
    IntegrityError,
    NotFoundError,
    RateLimitedError,
    StateConflictError,
    ValidationError,
)
from entitlement_engine.services.internal_auth import InternalAccessPolicy

logger = structlog.get_logger(__name__)

# Most specific first.
_STATUS_BY_ERROR: tuple[tuple[type[EngineError], int], ...] = (
    (CodeExpiredError, 410),
    (CodeExhaustedError, 410),
    (RateLimitedError, 429),
    (ValidationError, 422),
    (NotFoundError, 404),
    (StateConflictError, 409),
    (AuthenticityError, 401),
    (ConfigurationError, 503),
    (IntegrityError, 500),
)


def http_status_for(exc: EngineError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def as_http_error(exc: EngineError) -> HTTPException:
    status_code = http_status_for(exc)
    if status_code >= 500:
        logger.error("internal_request_failed", error_code=exc.code, error_type=type(exc).__name__)
    return HTTPException(status_code=status_code, detail={"code": exc.code})


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    policy = InternalAccessPolicy(
        token=settings.internal_api_token,
        allowlist=settings.internal_api_allowlist,
        trusted_proxies=getattr(settings, "internal_api_trusted_proxies", ""),
    )
    reason, client_ip = policy.denial_reason(request)
    if reason is not None:
        logger.warning(
            "internal_api_auth_failed",
            reason=reason,
            client_ip=client_ip,
            path=request.url.path,
        )
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})
