from __future__ import annotations

from datetime import datetime
from typing import NoReturn
from uuid import uuid4

import structlog
from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.core.config import get_settings
from entitlement_engine.core.errors import (
    AlreadyEntitledError,
    CodeAlreadyRedeemedError,
    CodeDisabledError,
    CodeExhaustedError,
    CodeExpiredError,
    CodeFormatError,
    CodeNotFoundError,
    EngineError,
    StateConflictError,
)
from entitlement_engine.core.time import ensure_utc, utc_now
from entitlement_engine.db.models.purchases import Purchase
from entitlement_engine.db.models.redeem_code_uses import RedeemCodeUse
from entitlement_engine.db.models.redeem_codes import RedeemCode
from entitlement_engine.db.repo.games_repo import GamesRepo
from entitlement_engine.db.repo.purchases_repo import PurchasesRepo
from entitlement_engine.db.repo.redeem_codes_repo import RedeemCodesRepo
from entitlement_engine.economy.redeem.codes import canonicalize_code, is_valid_code_format
from entitlement_engine.economy.redeem.rate_limit import AttemptLimiter, enforce_rate_limit
from entitlement_engine.economy.redeem.types import RedeemResult

logger = structlog.get_logger(__name__)

_STATUS_ERRORS: dict[str, type[StateConflictError]] = {
    "disabled": CodeDisabledError,
    "expired": CodeExpiredError,
    "used": CodeExhaustedError,
}


def is_code_expired(redeem_code: RedeemCode, *, now_utc: datetime) -> bool:
    return redeem_code.expires_at is not None and ensure_utc(redeem_code.expires_at) <= now_utc


def effective_status(redeem_code: RedeemCode, *, now_utc: datetime) -> str:
    """Expiry is derived at read time; the persisted status never flips on its own."""
    if redeem_code.status == "active" and is_code_expired(redeem_code, now_utc=now_utc):
        return "expired"
    return redeem_code.status


class RedeemService:
    @staticmethod
    def _reject(error: type[EngineError], **context: object) -> NoReturn:
        logger.info("redeem_code_rejected", reason=error.code, **context)
        raise error

    @staticmethod
    async def redeem(
        session: AsyncSession,
        *,
        actor_id: str,
        code: str,
        now_utc: datetime | None = None,
        limiter: AttemptLimiter | None = None,
    ) -> RedeemResult:
        now_utc = now_utc or utc_now()

        await enforce_rate_limit(actor_id=actor_id, now_utc=now_utc, limiter=limiter)

        canonical_code = canonicalize_code(code)
        if not is_valid_code_format(canonical_code):
            logger.info("redeem_code_rejected", reason=CodeFormatError.code, actor_id=actor_id)
            raise CodeFormatError

        redeem_code = await RedeemCodesRepo.get_by_code(session, canonical_code)
        if redeem_code is None:
            RedeemService._reject(CodeNotFoundError, actor_id=actor_id)
        context = {"actor_id": actor_id, "code_id": str(redeem_code.id)}
        if redeem_code.status != "active":
            RedeemService._reject(_STATUS_ERRORS.get(redeem_code.status, CodeDisabledError), **context)
        if is_code_expired(redeem_code, now_utc=now_utc):
            RedeemService._reject(CodeExpiredError, **context)
        if redeem_code.used_count >= redeem_code.max_uses:
            RedeemService._reject(CodeExhaustedError, **context)
        if await RedeemCodesRepo.has_use(session, code_id=redeem_code.id, actor_id=actor_id):
            RedeemService._reject(CodeAlreadyRedeemedError, **context)

        # Held until commit: one covering check per game at a time.
        await GamesRepo.lock_by_id(session, redeem_code.game_id)
        covering = await PurchasesRepo.get_covering_purchase(
            session,
            actor_id=actor_id,
            game_id=redeem_code.game_id,
            chapter_id=redeem_code.chapter_id if redeem_code.scope == "chapter" else None,
        )
        if covering is not None:
            RedeemService._reject(AlreadyEntitledError, purchase_id=str(covering.id), **context)

        if not await RedeemCodesRepo.try_consume(session, code_id=redeem_code.id, now_utc=now_utc):
            RedeemService._reject(CodeExhaustedError, race="lost", **context)

        try:
            await RedeemCodesRepo.create_use(
                session,
                code_use=RedeemCodeUse(
                    id=uuid4(),
                    code_id=redeem_code.id,
                    actor_id=actor_id,
                    used_at=now_utc,
                ),
            )
        except DBIntegrityError as exc:
            logger.info("redeem_code_rejected", reason=CodeAlreadyRedeemedError.code, race="lost", **context)
            raise CodeAlreadyRedeemedError from exc

        purchase = await PurchasesRepo.create(
            session,
            purchase=Purchase(
                id=uuid4(),
                actor_id=actor_id,
                game_id=redeem_code.game_id,
                chapter_id=redeem_code.chapter_id,
                purchase_type="redeem_code",
                amount=0,
                currency=get_settings().default_currency,
                status="completed",
                source_code_id=redeem_code.id,
                created_at=now_utc,
                completed_at=now_utc,
            ),
        )

        logger.info(
            "redeem_code_redeemed",
            scope=redeem_code.scope,
            game_id=str(redeem_code.game_id),
            chapter_id=str(redeem_code.chapter_id) if redeem_code.chapter_id else None,
            purchase_id=str(purchase.id),
            **context,
        )
        return RedeemResult(
            code_id=redeem_code.id,
            purchase_id=purchase.id,
            scope=redeem_code.scope,
            game_id=redeem_code.game_id,
            chapter_id=redeem_code.chapter_id,
        )
