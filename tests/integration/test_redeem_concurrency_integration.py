from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from entitlement_engine.core.errors import AlreadyEntitledError, CodeAlreadyRedeemedError, CodeExhaustedError
from entitlement_engine.db.models.purchases import Purchase
from entitlement_engine.db.models.redeem_code_uses import RedeemCodeUse
from entitlement_engine.db.models.redeem_codes import RedeemCode
from entitlement_engine.db.session import SessionLocal
from entitlement_engine.economy.redeem.rate_limit import InMemoryAttemptLimiter
from entitlement_engine.economy.redeem.service import RedeemService
from tests.factories import NOW, create_game, create_redeem_code


def _limiter() -> InMemoryAttemptLimiter:
    return InMemoryAttemptLimiter(max_attempts=1000, window=timedelta(minutes=15))


async def _race(code: str, actor_ids: list[str]) -> list[object]:
    barrier = asyncio.Event()
    limiter = _limiter()

    async def _attempt(actor_id: str) -> object:
        await barrier.wait()
        async with SessionLocal.begin() as session:
            return await RedeemService.redeem(
                session,
                actor_id=actor_id,
                code=code,
                now_utc=NOW,
                limiter=limiter,
            )

    tasks = [asyncio.create_task(_attempt(actor_id)) for actor_id in actor_ids]
    barrier.set()
    return await asyncio.gather(*tasks, return_exceptions=True)


async def _code_state(code_id) -> tuple[int, str, int]:
    async with SessionLocal() as session:
        redeem_code = await session.get(RedeemCode, code_id)
        assert redeem_code is not None
        uses = await session.scalar(
            select(func.count()).select_from(RedeemCodeUse).where(RedeemCodeUse.code_id == code_id)
        )
        return redeem_code.used_count, redeem_code.status, int(uses or 0)


@pytest.mark.asyncio
async def test_parallel_redeem_of_single_use_code_has_one_winner() -> None:
    seeded = await create_game(SessionLocal)
    redeem_code = await create_redeem_code(SessionLocal, game=seeded.game, max_uses=1)

    results = await _race(redeem_code.code, [f"player-{index}" for index in range(10)])

    winners = [result for result in results if not isinstance(result, BaseException)]
    losers = [result for result in results if isinstance(result, BaseException)]
    assert len(winners) == 1
    assert all(isinstance(error, CodeExhaustedError) for error in losers)
    assert await _code_state(redeem_code.id) == (1, "used", 1)


@pytest.mark.asyncio
async def test_parallel_redeem_never_overshoots_max_uses() -> None:
    seeded = await create_game(SessionLocal)
    redeem_code = await create_redeem_code(SessionLocal, game=seeded.game, max_uses=3)

    results = await _race(redeem_code.code, [f"player-{index}" for index in range(12)])

    winners = [result for result in results if not isinstance(result, BaseException)]
    assert len(winners) == 3
    assert await _code_state(redeem_code.id) == (3, "used", 3)
    async with SessionLocal() as session:
        purchases = await session.scalar(
            select(func.count()).select_from(Purchase).where(Purchase.source_code_id == redeem_code.id)
        )
    assert purchases == 3


@pytest.mark.asyncio
async def test_parallel_redeem_by_same_actor_records_one_use() -> None:
    seeded = await create_game(SessionLocal)
    redeem_code = await create_redeem_code(SessionLocal, game=seeded.game, max_uses=5)

    results = await _race(redeem_code.code, ["player-1", "player-1"])

    winners = [result for result in results if not isinstance(result, BaseException)]
    losers = [result for result in results if isinstance(result, BaseException)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], CodeAlreadyRedeemedError)
    assert await _code_state(redeem_code.id) == (1, "active", 1)


@pytest.mark.asyncio
async def test_parallel_redeem_of_two_codes_for_same_game_grants_once() -> None:
    seeded = await create_game(SessionLocal)
    first = await create_redeem_code(SessionLocal, game=seeded.game, code="JCQ-AB23-XY89")
    second = await create_redeem_code(SessionLocal, game=seeded.game, code="JCQ-CDEF-GH23")
    barrier = asyncio.Event()
    limiter = _limiter()

    async def _attempt(code: str) -> object:
        await barrier.wait()
        async with SessionLocal.begin() as session:
            return await RedeemService.redeem(
                session,
                actor_id="player-1",
                code=code,
                now_utc=NOW,
                limiter=limiter,
            )

    tasks = [asyncio.create_task(_attempt(code.code)) for code in (first, second)]
    barrier.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    losers = [result for result in results if isinstance(result, BaseException)]
    assert len(losers) == 1
    assert isinstance(losers[0], AlreadyEntitledError)
    states = sorted([await _code_state(first.id), await _code_state(second.id)])
    assert states == [(0, "active", 0), (1, "used", 1)]
    async with SessionLocal() as session:
        purchases = await session.scalar(
            select(func.count()).select_from(Purchase).where(Purchase.actor_id == "player-1")
        )
    assert purchases == 1
