from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.core.config import get_settings
from entitlement_engine.core.errors import (
    AlreadyEntitledError,
    ChapterNotFoundError,
    GameNotFoundError,
    PurchaseNotFoundError,
    PurchaseStateError,
    ValidationError,
)
from entitlement_engine.core.time import month_start_utc, utc_now
from entitlement_engine.db.models.purchases import Purchase
from entitlement_engine.db.repo.games_repo import GamesRepo
from entitlement_engine.db.repo.purchases_repo import PurchasesRepo
from entitlement_engine.db.repo.redeem_codes_repo import RedeemCodesRepo
from entitlement_engine.economy.purchases.types import (
    GameSalesSummary,
    PurchaseRefundResult,
    SalesSummary,
)

logger = structlog.get_logger(__name__)

REFUNDABLE_PURCHASE_STATUSES = {"completed"}


class PurchaseService:
    @staticmethod
    async def grant_cash_access(
        session: AsyncSession,
        *,
        actor_id: str,
        game_id: UUID,
        chapter_id: UUID | None = None,
        amount: int = 0,
        note: str | None = None,
        granted_by: str | None = None,
        now_utc: datetime | None = None,
    ) -> Purchase:
        if amount < 0:
            raise ValidationError("amount must not be negative")

        now_utc = now_utc or utc_now()
        game = await GamesRepo.get_by_id(session, game_id)
        if game is None:
            raise GameNotFoundError
        if chapter_id is not None:
            chapter = await GamesRepo.get_chapter(session, chapter_id)
            if chapter is None or chapter.game_id != game_id:
                raise ChapterNotFoundError

        covering = await PurchasesRepo.get_covering_purchase(
            session,
            actor_id=actor_id,
            game_id=game_id,
            chapter_id=chapter_id,
        )
        if covering is not None:
            raise AlreadyEntitledError

        purchase = await PurchasesRepo.create(
            session,
            purchase=Purchase(
                id=uuid4(),
                actor_id=actor_id,
                game_id=game_id,
                chapter_id=chapter_id,
                purchase_type="cash_payment",
                amount=amount,
                currency=game.currency or get_settings().default_currency,
                status="completed",
                granted_by=granted_by,
                note=note,
                created_at=now_utc,
                completed_at=now_utc,
            ),
        )
        logger.info(
            "purchase_cash_access_granted",
            purchase_id=str(purchase.id),
            actor_id=actor_id,
            game_id=str(game_id),
            chapter_id=str(chapter_id) if chapter_id else None,
            amount=amount,
            granted_by=granted_by,
        )
        return purchase

    @staticmethod
    async def refund_purchase(
        session: AsyncSession,
        *,
        purchase_id: UUID,
        now_utc: datetime | None = None,
    ) -> PurchaseRefundResult:
        purchase = await PurchasesRepo.get_by_id_for_update(session, purchase_id)
        if purchase is None:
            raise PurchaseNotFoundError

        if purchase.status == "refunded":
            return PurchaseRefundResult(
                purchase_id=purchase.id,
                status=purchase.status,
                idempotent_replay=True,
            )
        if purchase.status not in REFUNDABLE_PURCHASE_STATUSES:
            raise PurchaseStateError(f"cannot refund a {purchase.status} purchase")

        purchase.status = "refunded"
        purchase.refunded_at = now_utc or utc_now()
        await session.flush()

        logger.info(
            "purchase_refunded",
            purchase_id=str(purchase.id),
            actor_id=purchase.actor_id,
            purchase_type=purchase.purchase_type,
        )
        return PurchaseRefundResult(
            purchase_id=purchase.id,
            status=purchase.status,
            idempotent_replay=False,
        )

    @staticmethod
    async def list_actor_purchases(session: AsyncSession, *, actor_id: str) -> list[Purchase]:
        return await PurchasesRepo.list_by_actor(session, actor_id)

    @staticmethod
    async def list_game_purchases(session: AsyncSession, *, game_id: UUID) -> list[Purchase]:
        if await GamesRepo.get_by_id(session, game_id) is None:
            raise GameNotFoundError
        return await PurchasesRepo.list_by_game(session, game_id)

    @staticmethod
    async def get_sales_summary(
        session: AsyncSession,
        *,
        tenant_id: str,
        now_utc: datetime | None = None,
    ) -> SalesSummary:
        now_utc = now_utc or utc_now()
        revenue_rows = await PurchasesRepo.summarize_revenue_by_game(session, tenant_id=tenant_id)
        code_stats = await RedeemCodesRepo.summarize_by_game(session, tenant_id=tenant_id)

        games: list[GameSalesSummary] = []
        for game_id, title, revenue, purchase_count in revenue_rows:
            total_codes, active_codes, code_use_count = code_stats.get(game_id, (0, 0, 0))
            games.append(
                GameSalesSummary(
                    game_id=game_id,
                    title=title,
                    revenue=revenue,
                    purchase_count=purchase_count,
                    total_codes=total_codes,
                    active_codes=active_codes,
                    code_use_count=code_use_count,
                )
            )

        monthly_revenue = await PurchasesRepo.sum_completed_revenue_since(
            session,
            tenant_id=tenant_id,
            since_utc=month_start_utc(now_utc),
        )
        return SalesSummary(
            tenant_id=tenant_id,
            total_revenue=sum(game.revenue for game in games),
            monthly_revenue=monthly_revenue,
            games=games,
        )
