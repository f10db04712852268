from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.db.models.games import Game
from entitlement_engine.db.models.purchases import Purchase


class PurchasesRepo:
    @staticmethod
    async def create(session: AsyncSession, *, purchase: Purchase) -> Purchase:
        session.add(purchase)
        await session.flush()
        return purchase

    @staticmethod
    async def get_by_id(session: AsyncSession, purchase_id: UUID) -> Purchase | None:
        return await session.get(Purchase, purchase_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, purchase_id: UUID) -> Purchase | None:
        stmt = select(Purchase).where(Purchase.id == purchase_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_completed_game_purchase(
        session: AsyncSession,
        *,
        actor_id: str,
        game_id: UUID,
    ) -> Purchase | None:
        stmt = (
            select(Purchase)
            .where(
                Purchase.actor_id == actor_id,
                Purchase.game_id == game_id,
                Purchase.chapter_id.is_(None),
                Purchase.status == "completed",
            )
            .order_by(Purchase.completed_at.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_covering_purchase(
        session: AsyncSession,
        *,
        actor_id: str,
        game_id: UUID,
        chapter_id: UUID | None,
    ) -> Purchase | None:
        """A completed game-level purchase covers every chapter of that game."""
        scope_filter = Purchase.chapter_id.is_(None)
        if chapter_id is not None:
            scope_filter = or_(scope_filter, Purchase.chapter_id == chapter_id)
        stmt = (
            select(Purchase)
            .where(
                Purchase.actor_id == actor_id,
                Purchase.game_id == game_id,
                Purchase.status == "completed",
                scope_filter,
            )
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_completed_chapter_ids(
        session: AsyncSession,
        *,
        actor_id: str,
        game_id: UUID,
    ) -> set[UUID]:
        stmt = select(Purchase.chapter_id).where(
            Purchase.actor_id == actor_id,
            Purchase.game_id == game_id,
            Purchase.chapter_id.is_not(None),
            Purchase.status == "completed",
        )
        result = await session.execute(stmt)
        return {chapter_id for chapter_id in result.scalars().all() if chapter_id is not None}

    @staticmethod
    async def list_by_actor(session: AsyncSession, actor_id: str) -> list[Purchase]:
        stmt = (
            select(Purchase)
            .where(Purchase.actor_id == actor_id)
            .order_by(Purchase.created_at.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_by_game(session: AsyncSession, game_id: UUID) -> list[Purchase]:
        stmt = (
            select(Purchase)
            .where(Purchase.game_id == game_id)
            .order_by(Purchase.created_at.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def summarize_revenue_by_game(
        session: AsyncSession,
        *,
        tenant_id: str,
    ) -> list[tuple[UUID, str, int, int]]:
        is_completed = Purchase.status == "completed"
        stmt = (
            select(
                Game.id,
                Game.title,
                func.coalesce(func.sum(case((is_completed, Purchase.amount), else_=0)), 0),
                func.count(case((is_completed, Purchase.id))),
            )
            .outerjoin(Purchase, Purchase.game_id == Game.id)
            .where(Game.tenant_id == tenant_id)
            .group_by(Game.id, Game.title)
            .order_by(Game.title.asc())
        )
        result = await session.execute(stmt)
        return [
            (game_id, str(title), int(revenue or 0), int(purchase_count or 0))
            for game_id, title, revenue, purchase_count in result.all()
        ]

    @staticmethod
    async def sum_completed_revenue_since(
        session: AsyncSession,
        *,
        tenant_id: str,
        since_utc: datetime,
    ) -> int:
        stmt = (
            select(func.coalesce(func.sum(Purchase.amount), 0))
            .join(Game, Game.id == Purchase.game_id)
            .where(
                and_(
                    Game.tenant_id == tenant_id,
                    Purchase.status == "completed",
                    Purchase.completed_at >= since_utc,
                )
            )
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
