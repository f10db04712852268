"""Read-side access checks for games and chapters.

Results are computed from the purchases ledger on every call and never cached,
so a redeem or webhook completion is visible on the next read.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.core.errors import GameNotFoundError
from entitlement_engine.db.models.games import GameChapter
from entitlement_engine.db.repo.games_repo import GamesRepo
from entitlement_engine.db.repo.purchases_repo import PurchasesRepo
from entitlement_engine.economy.entitlements.types import ChapterAccess, Entitlement


def _chapter_is_open(chapter: GameChapter, *, is_first: bool, purchased_ids: set[UUID]) -> bool:
    return chapter.unlock_type == "free" or is_first or chapter.id in purchased_ids


class EntitlementService:
    @staticmethod
    async def get_entitlement(
        session: AsyncSession,
        *,
        actor_id: str,
        game_id: UUID,
    ) -> Entitlement:
        game = await GamesRepo.get_by_id(session, game_id)
        if game is None:
            raise GameNotFoundError

        if not game.pricing_type or game.pricing_type == "free":
            return Entitlement(has_access=True, pricing_type="free")

        game_purchase = await PurchasesRepo.get_completed_game_purchase(
            session,
            actor_id=actor_id,
            game_id=game_id,
        )
        if game_purchase is not None:
            return Entitlement(
                has_access=True,
                pricing_type=game.pricing_type,
                purchase_type=game_purchase.purchase_type,
            )

        if game.pricing_type == "per_chapter":
            chapters = await GamesRepo.list_chapters(session, game_id)
            purchased_ids = await PurchasesRepo.list_completed_chapter_ids(
                session,
                actor_id=actor_id,
                game_id=game_id,
            )
            return Entitlement(
                has_access=False,
                pricing_type=game.pricing_type,
                price=game.price,
                currency=game.currency,
                chapters=[
                    ChapterAccess(
                        chapter_id=chapter.id,
                        order=chapter.chapter_order,
                        title=chapter.title,
                        has_access=_chapter_is_open(
                            chapter,
                            is_first=index == 0,
                            purchased_ids=purchased_ids,
                        ),
                        price=chapter.price,
                    )
                    for index, chapter in enumerate(chapters)
                ],
            )

        return Entitlement(
            has_access=False,
            pricing_type=game.pricing_type,
            price=game.price,
            currency=game.currency,
        )

    @staticmethod
    async def has_chapter_access(
        session: AsyncSession,
        *,
        actor_id: str,
        game_id: UUID,
        chapter_id: UUID,
    ) -> bool:
        entitlement = await EntitlementService.get_entitlement(
            session,
            actor_id=actor_id,
            game_id=game_id,
        )
        if entitlement.has_access:
            return True
        return any(
            chapter.chapter_id == chapter_id and chapter.has_access
            for chapter in entitlement.chapters or []
        )
