from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.db.models.games import Game, GameChapter


class GamesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, game_id: UUID) -> Game | None:
        return await session.get(Game, game_id)

    @staticmethod
    async def get_chapter(session: AsyncSession, chapter_id: UUID) -> GameChapter | None:
        return await session.get(GameChapter, chapter_id)

    @staticmethod
    async def list_chapters(session: AsyncSession, game_id: UUID) -> list[GameChapter]:
        stmt = (
            select(GameChapter)
            .where(GameChapter.game_id == game_id)
            .order_by(GameChapter.chapter_order.asc(), GameChapter.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def lock_by_id(session: AsyncSession, game_id: UUID) -> Game | None:
        stmt = select(Game).where(Game.id == game_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
