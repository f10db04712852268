from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from entitlement_engine.core.errors import (
    AlreadyEntitledError,
    CodeAlreadyRedeemedError,
    CodeDisabledError,
    CodeExhaustedError,
    CodeExpiredError,
    CodeFormatError,
    CodeNotFoundError,
    RateLimitedError,
)
from entitlement_engine.db.models.purchases import Purchase
from entitlement_engine.db.models.redeem_code_uses import RedeemCodeUse
from entitlement_engine.db.models.redeem_codes import RedeemCode
from entitlement_engine.db.repo.games_repo import GamesRepo
from entitlement_engine.db.repo.purchases_repo import PurchasesRepo
from entitlement_engine.db.repo.redeem_codes_repo import RedeemCodesRepo
from entitlement_engine.economy.entitlements.service import EntitlementService
from entitlement_engine.economy.purchases.service import PurchaseService
from entitlement_engine.economy.redeem.rate_limit import InMemoryAttemptLimiter
from entitlement_engine.economy.redeem.service import RedeemService, effective_status
from tests.factories import NOW, create_game, create_redeem_code


@pytest.fixture
def limiter() -> InMemoryAttemptLimiter:
    return InMemoryAttemptLimiter(max_attempts=10, window=timedelta(minutes=15))


async def _redeem(session_factory, limiter, *, actor_id: str, code: str = "JCQ-AB23-XY89"):
    async with session_factory.begin() as session:
        return await RedeemService.redeem(
            session,
            actor_id=actor_id,
            code=code,
            now_utc=NOW,
            limiter=limiter,
        )


async def _load_code(session_factory, code_id) -> RedeemCode:
    async with session_factory() as session:
        redeem_code = await session.get(RedeemCode, code_id)
        assert redeem_code is not None
        return redeem_code


async def _count(session_factory, model, *conditions) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(model).where(*conditions)
        return int((await session.execute(stmt)).scalar_one())


@pytest.mark.asyncio
async def test_redeem_grants_game_access_and_exhausts_single_use_code(session_factory, limiter) -> None:
    seeded = await create_game(session_factory)
    redeem_code = await create_redeem_code(session_factory, game=seeded.game)

    result = await _redeem(session_factory, limiter, actor_id="player-1", code="  jcq-ab23-xy89 ")

    assert result.scope == "game"
    assert result.game_id == seeded.id
    assert result.chapter_id is None
    assert result.code_id == redeem_code.id

    stored = await _load_code(session_factory, redeem_code.id)
    assert stored.used_count == 1
    assert stored.status == "used"
    assert await _count(session_factory, RedeemCodeUse, RedeemCodeUse.code_id == redeem_code.id) == 1

    async with session_factory() as session:
        purchase = await session.get(Purchase, result.purchase_id)
        entitlement = await EntitlementService.get_entitlement(
            session,
            actor_id="player-1",
            game_id=seeded.id,
        )
    assert purchase is not None
    assert purchase.purchase_type == "redeem_code"
    assert purchase.amount == 0
    assert purchase.currency == "TWD"
    assert purchase.status == "completed"
    assert purchase.source_code_id == redeem_code.id
    assert entitlement.has_access is True
    assert entitlement.purchase_type == "redeem_code"

    with pytest.raises(CodeExhaustedError):
        await _redeem(session_factory, limiter, actor_id="player-2")


@pytest.mark.asyncio
async def test_redeem_multi_use_code_rejects_repeat_by_same_actor(session_factory, limiter) -> None:
    seeded = await create_game(session_factory)
    redeem_code = await create_redeem_code(session_factory, game=seeded.game, max_uses=5)

    await _redeem(session_factory, limiter, actor_id="player-1")
    with pytest.raises(CodeAlreadyRedeemedError):
        await _redeem(session_factory, limiter, actor_id="player-1")
    await _redeem(session_factory, limiter, actor_id="player-2")

    stored = await _load_code(session_factory, redeem_code.id)
    assert stored.used_count == 2
    assert stored.status == "active"


@pytest.mark.asyncio
async def test_redeem_chapter_code_grants_only_that_chapter(session_factory, limiter) -> None:
    seeded = await create_game(
        session_factory,
        pricing_type="per_chapter",
        chapters=({"unlock_type": "paid"}, {"unlock_type": "paid"}, {"unlock_type": "paid"}),
    )
    third = seeded.chapters[2]
    await create_redeem_code(session_factory, game=seeded.game, scope="chapter", chapter_id=third.id)

    result = await _redeem(session_factory, limiter, actor_id="player-1")

    assert result.scope == "chapter"
    assert result.chapter_id == third.id
    async with session_factory() as session:
        entitlement = await EntitlementService.get_entitlement(
            session,
            actor_id="player-1",
            game_id=seeded.id,
        )
    assert entitlement.has_access is False
    assert [chapter.has_access for chapter in entitlement.chapters or []] == [True, False, True]


@pytest.mark.asyncio
async def test_redeem_rejects_invalid_format_before_lookup(session_factory, limiter, monkeypatch) -> None:
    async def _unexpected_lookup(*args, **kwargs):
        raise AssertionError("lookup must not run for malformed codes")

    monkeypatch.setattr(RedeemCodesRepo, "get_by_code", staticmethod(_unexpected_lookup))

    with pytest.raises(CodeFormatError):
        await _redeem(session_factory, limiter, actor_id="player-1", code="JCQ-AB0O-XY89")


@pytest.mark.asyncio
async def test_redeem_unknown_code_is_not_found(session_factory, limiter) -> None:
    with pytest.raises(CodeNotFoundError):
        await _redeem(session_factory, limiter, actor_id="player-1", code="JCQ-ZZZZ-ZZZZ")


@pytest.mark.asyncio
async def test_redeem_disabled_code_is_rejected(session_factory, limiter) -> None:
    seeded = await create_game(session_factory)
    await create_redeem_code(session_factory, game=seeded.game, status="disabled")

    with pytest.raises(CodeDisabledError):
        await _redeem(session_factory, limiter, actor_id="player-1")


@pytest.mark.asyncio
async def test_redeem_code_past_expiry_is_rejected(session_factory, limiter) -> None:
    seeded = await create_game(session_factory)
    redeem_code = await create_redeem_code(
        session_factory,
        game=seeded.game,
        expires_at=NOW - timedelta(days=1),
    )

    with pytest.raises(CodeExpiredError):
        await _redeem(session_factory, limiter, actor_id="player-1")

    stored = await _load_code(session_factory, redeem_code.id)
    assert stored.status == "active"
    assert effective_status(stored, now_utc=NOW) == "expired"


@pytest.mark.asyncio
async def test_redeem_code_expiring_exactly_now_is_rejected(session_factory, limiter) -> None:
    seeded = await create_game(session_factory)
    await create_redeem_code(session_factory, game=seeded.game, expires_at=NOW)

    with pytest.raises(CodeExpiredError):
        await _redeem(session_factory, limiter, actor_id="player-1")


@pytest.mark.asyncio
async def test_redeem_persisted_expired_status_is_rejected(session_factory, limiter) -> None:
    seeded = await create_game(session_factory)
    await create_redeem_code(session_factory, game=seeded.game, status="expired")

    with pytest.raises(CodeExpiredError):
        await _redeem(session_factory, limiter, actor_id="player-1")


@pytest.mark.asyncio
async def test_redeem_rejects_actor_already_entitled_by_cash_grant(session_factory, limiter) -> None:
    seeded = await create_game(session_factory)
    redeem_code = await create_redeem_code(session_factory, game=seeded.game)
    async with session_factory.begin() as session:
        await PurchaseService.grant_cash_access(
            session,
            actor_id="player-1",
            game_id=seeded.id,
            amount=300,
            now_utc=NOW,
        )

    with pytest.raises(AlreadyEntitledError):
        await _redeem(session_factory, limiter, actor_id="player-1")

    stored = await _load_code(session_factory, redeem_code.id)
    assert stored.used_count == 0


@pytest.mark.asyncio
async def test_redeem_chapter_code_rejected_when_game_already_owned(session_factory, limiter) -> None:
    seeded = await create_game(
        session_factory,
        pricing_type="per_chapter",
        chapters=({"unlock_type": "paid"}, {"unlock_type": "paid"}),
    )
    await create_redeem_code(
        session_factory,
        game=seeded.game,
        scope="chapter",
        chapter_id=seeded.chapters[1].id,
    )
    async with session_factory.begin() as session:
        await PurchaseService.grant_cash_access(session, actor_id="player-1", game_id=seeded.id, now_utc=NOW)

    with pytest.raises(AlreadyEntitledError):
        await _redeem(session_factory, limiter, actor_id="player-1")


@pytest.mark.asyncio
async def test_redeem_locks_game_row_before_covering_check(session_factory, limiter, monkeypatch) -> None:
    seeded = await create_game(session_factory)
    await create_redeem_code(session_factory, game=seeded.game, code="JCQ-AB23-XY89")
    await create_redeem_code(session_factory, game=seeded.game, code="JCQ-CDEF-GH23")
    calls: list[tuple[str, object]] = []
    lock_by_id = GamesRepo.lock_by_id
    get_covering_purchase = PurchasesRepo.get_covering_purchase

    async def _recording_lock(session, game_id):
        calls.append(("lock", game_id))
        return await lock_by_id(session, game_id)

    async def _recording_covering(session, *, actor_id, game_id, chapter_id):
        calls.append(("covering", game_id))
        return await get_covering_purchase(session, actor_id=actor_id, game_id=game_id, chapter_id=chapter_id)

    monkeypatch.setattr(GamesRepo, "lock_by_id", staticmethod(_recording_lock))
    monkeypatch.setattr(PurchasesRepo, "get_covering_purchase", staticmethod(_recording_covering))

    await _redeem(session_factory, limiter, actor_id="player-1", code="JCQ-AB23-XY89")
    with pytest.raises(AlreadyEntitledError):
        await _redeem(session_factory, limiter, actor_id="player-1", code="JCQ-CDEF-GH23")

    assert calls == [("lock", seeded.id), ("covering", seeded.id)] * 2
    assert await _count(session_factory, Purchase, Purchase.actor_id == "player-1") == 1


@pytest.mark.asyncio
async def test_redeem_lost_race_on_stale_read_is_exhausted(session_factory, limiter, monkeypatch) -> None:
    seeded = await create_game(session_factory)
    redeem_code = await create_redeem_code(session_factory, game=seeded.game)
    await _redeem(session_factory, limiter, actor_id="player-1")

    stale_snapshot = RedeemCode(
        id=redeem_code.id,
        code=redeem_code.code,
        tenant_id=redeem_code.tenant_id,
        game_id=redeem_code.game_id,
        chapter_id=None,
        scope="game",
        max_uses=1,
        used_count=0,
        status="active",
        expires_at=None,
        created_at=NOW,
        updated_at=NOW,
    )

    async def _stale_get_by_code(session, code):
        return stale_snapshot

    monkeypatch.setattr(RedeemCodesRepo, "get_by_code", staticmethod(_stale_get_by_code))

    with pytest.raises(CodeExhaustedError):
        await _redeem(session_factory, limiter, actor_id="player-2")

    stored = await _load_code(session_factory, redeem_code.id)
    assert stored.used_count == 1
    assert await _count(session_factory, RedeemCodeUse, RedeemCodeUse.code_id == redeem_code.id) == 1
    assert await _count(session_factory, Purchase, Purchase.actor_id == "player-2") == 0


@pytest.mark.asyncio
async def test_redeem_duplicate_use_row_rolls_back_consumed_use(session_factory, limiter, monkeypatch) -> None:
    seeded = await create_game(session_factory)
    redeem_code = await create_redeem_code(session_factory, game=seeded.game, max_uses=5)
    await _redeem(session_factory, limiter, actor_id="player-1")

    async def _no_prior_use(session, *, code_id, actor_id):
        return False

    async def _no_covering_purchase(session, *, actor_id, game_id, chapter_id):
        return None

    monkeypatch.setattr(RedeemCodesRepo, "has_use", staticmethod(_no_prior_use))
    monkeypatch.setattr(PurchasesRepo, "get_covering_purchase", staticmethod(_no_covering_purchase))

    with pytest.raises(CodeAlreadyRedeemedError):
        await _redeem(session_factory, limiter, actor_id="player-1")

    stored = await _load_code(session_factory, redeem_code.id)
    assert stored.used_count == 1
    assert await _count(session_factory, Purchase, Purchase.actor_id == "player-1") == 1


@pytest.mark.asyncio
async def test_redeem_is_rate_limited_per_actor(session_factory) -> None:
    limiter = InMemoryAttemptLimiter(max_attempts=2, window=timedelta(minutes=15))

    for _ in range(2):
        with pytest.raises(CodeNotFoundError):
            await _redeem(session_factory, limiter, actor_id="player-1", code="JCQ-ZZZZ-ZZZZ")

    with pytest.raises(RateLimitedError):
        await _redeem(session_factory, limiter, actor_id="player-1", code="JCQ-ZZZZ-ZZZZ")
    with pytest.raises(CodeNotFoundError):
        await _redeem(session_factory, limiter, actor_id="player-2", code="JCQ-ZZZZ-ZZZZ")
