from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.db.models.redeem_code_uses import RedeemCodeUse
from entitlement_engine.db.models.redeem_codes import RedeemCode


class RedeemCodesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, code_id: UUID) -> RedeemCode | None:
        return await session.get(RedeemCode, code_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, code_id: UUID) -> RedeemCode | None:
        stmt = select(RedeemCode).where(RedeemCode.id == code_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code(session: AsyncSession, code: str) -> RedeemCode | None:
        stmt = select(RedeemCode).where(RedeemCode.code == code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_game(session: AsyncSession, game_id: UUID) -> list[RedeemCode]:
        stmt = (
            select(RedeemCode)
            .where(RedeemCode.game_id == game_id)
            .order_by(RedeemCode.created_at.desc(), RedeemCode.code.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_existing_codes(session: AsyncSession, codes: Iterable[str]) -> set[str]:
        values = tuple(codes)
        if not values:
            return set()
        stmt = select(RedeemCode.code).where(RedeemCode.code.in_(values))
        result = await session.execute(stmt)
        return set(result.scalars().all())

    @staticmethod
    async def create_many(session: AsyncSession, *, codes: list[RedeemCode]) -> list[RedeemCode]:
        session.add_all(codes)
        await session.flush()
        return codes

    @staticmethod
    async def delete(session: AsyncSession, *, code_id: UUID) -> None:
        await session.execute(delete(RedeemCode).where(RedeemCode.id == code_id))

    @staticmethod
    async def try_consume(session: AsyncSession, *, code_id: UUID, now_utc: datetime) -> bool:
        """Takes one use of the code, or returns False when none is left.

        The capacity check and the increment are one statement, so concurrent
        redeemers are serialized by the row lock and cannot overshoot max_uses.
        """
        next_count = RedeemCode.used_count + 1
        stmt = (
            update(RedeemCode)
            .where(
                RedeemCode.id == code_id,
                RedeemCode.status == "active",
                RedeemCode.used_count < RedeemCode.max_uses,
            )
            .values(
                used_count=next_count,
                status=case((next_count >= RedeemCode.max_uses, "used"), else_=RedeemCode.status),
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def has_use(session: AsyncSession, *, code_id: UUID, actor_id: str) -> bool:
        stmt = select(RedeemCodeUse.id).where(
            RedeemCodeUse.code_id == code_id,
            RedeemCodeUse.actor_id == actor_id,
        )
        result = await session.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def create_use(session: AsyncSession, *, code_use: RedeemCodeUse) -> RedeemCodeUse:
        session.add(code_use)
        await session.flush()
        return code_use

    @staticmethod
    async def list_uses(session: AsyncSession, code_id: UUID) -> list[RedeemCodeUse]:
        stmt = (
            select(RedeemCodeUse)
            .where(RedeemCodeUse.code_id == code_id)
            .order_by(RedeemCodeUse.used_at.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_uses(session: AsyncSession, code_id: UUID) -> int:
        stmt = select(func.count(RedeemCodeUse.id)).where(RedeemCodeUse.code_id == code_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def summarize_by_game(
        session: AsyncSession,
        *,
        tenant_id: str,
    ) -> dict[UUID, tuple[int, int, int]]:
        stmt = (
            select(
                RedeemCode.game_id,
                func.count(RedeemCode.id.distinct()),
                func.count(case((RedeemCode.status == "active", RedeemCode.id)).distinct()),
                func.count(RedeemCodeUse.id.distinct()),
            )
            .outerjoin(RedeemCodeUse, RedeemCodeUse.code_id == RedeemCode.id)
            .where(RedeemCode.tenant_id == tenant_id)
            .group_by(RedeemCode.game_id)
        )
        result = await session.execute(stmt)
        return {
            game_id: (int(total), int(active), int(uses))
            for game_id, total, active, uses in result.all()
        }
