from __future__ import annotations

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from entitlement_engine.core.errors import AuthenticityError, ConfigurationError
from entitlement_engine.economy.payments.webhook import get_webhook_processor

router = APIRouter(tags=["payments"])
logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-Recur-Signature"


@router.post("/webhooks/payments")
async def payment_webhook(request: Request) -> JSONResponse:
    raw_body = await request.body()
    try:
        ack = await get_webhook_processor().handle(raw_body, request.headers.get(SIGNATURE_HEADER))
    except AuthenticityError:
        logger.warning(
            "payment_webhook_invalid_signature",
            has_signature=SIGNATURE_HEADER.lower() in request.headers,
        )
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"code": AuthenticityError.code},
        )
    except ConfigurationError:
        logger.error("payment_webhook_secret_missing")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"code": ConfigurationError.code},
        )

    content: dict[str, bool] = {"received": ack.received}
    if ack.duplicate:
        content["duplicate"] = True
    return JSONResponse(status_code=status.HTTP_200_OK, content=content)
