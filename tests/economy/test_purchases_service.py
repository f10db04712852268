from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest

from entitlement_engine.core.errors import (
    AlreadyEntitledError,
    ChapterNotFoundError,
    PurchaseNotFoundError,
    PurchaseStateError,
    ValidationError,
)
from entitlement_engine.db.models.purchases import Purchase
from entitlement_engine.economy.purchases.service import PurchaseService
from entitlement_engine.economy.redeem.rate_limit import InMemoryAttemptLimiter
from entitlement_engine.economy.redeem.service import RedeemService
from tests.factories import NOW, create_game, create_redeem_code


@pytest.mark.asyncio
async def test_grant_cash_access_records_completed_cash_purchase(session_factory) -> None:
    seeded = await create_game(session_factory)

    async with session_factory.begin() as session:
        purchase = await PurchaseService.grant_cash_access(
            session,
            actor_id="player-1",
            game_id=seeded.id,
            amount=300,
            note="paid at the booth",
            granted_by="admin-7",
            now_utc=NOW,
        )

    assert purchase.purchase_type == "cash_payment"
    assert purchase.status == "completed"
    assert purchase.amount == 300
    assert purchase.note == "paid at the booth"
    assert purchase.granted_by == "admin-7"

    async with session_factory.begin() as session:
        with pytest.raises(AlreadyEntitledError):
            await PurchaseService.grant_cash_access(session, actor_id="player-1", game_id=seeded.id)


@pytest.mark.asyncio
async def test_grant_cash_access_validates_chapter_and_amount(session_factory) -> None:
    seeded = await create_game(session_factory, pricing_type="per_chapter", chapters=({},))
    other = await create_game(session_factory, pricing_type="per_chapter", chapters=({},))

    async with session_factory.begin() as session:
        with pytest.raises(ChapterNotFoundError):
            await PurchaseService.grant_cash_access(
                session,
                actor_id="player-1",
                game_id=seeded.id,
                chapter_id=other.chapters[0].id,
            )
        with pytest.raises(ValidationError):
            await PurchaseService.grant_cash_access(
                session,
                actor_id="player-1",
                game_id=seeded.id,
                amount=-1,
            )


@pytest.mark.asyncio
async def test_refund_purchase_is_idempotent(session_factory) -> None:
    seeded = await create_game(session_factory)
    async with session_factory.begin() as session:
        purchase = await PurchaseService.grant_cash_access(
            session,
            actor_id="player-1",
            game_id=seeded.id,
            amount=300,
            now_utc=NOW,
        )

    async with session_factory.begin() as session:
        first = await PurchaseService.refund_purchase(session, purchase_id=purchase.id, now_utc=NOW)
    async with session_factory.begin() as session:
        second = await PurchaseService.refund_purchase(session, purchase_id=purchase.id, now_utc=NOW)

    assert (first.status, first.idempotent_replay) == ("refunded", False)
    assert (second.status, second.idempotent_replay) == ("refunded", True)

    async with session_factory() as session:
        stored = await session.get(Purchase, purchase.id)
    assert stored is not None
    assert stored.refunded_at is not None


@pytest.mark.asyncio
async def test_refund_purchase_rejects_pending_and_unknown_purchases(session_factory) -> None:
    seeded = await create_game(session_factory)
    pending = Purchase(
        id=uuid4(),
        actor_id="player-1",
        game_id=seeded.id,
        purchase_type="online_payment",
        amount=300,
        currency="TWD",
        status="pending",
        created_at=NOW,
    )
    async with session_factory.begin() as session:
        session.add(pending)

    async with session_factory.begin() as session:
        with pytest.raises(PurchaseStateError):
            await PurchaseService.refund_purchase(session, purchase_id=pending.id)
        with pytest.raises(PurchaseNotFoundError):
            await PurchaseService.refund_purchase(session, purchase_id=uuid4())


@pytest.mark.asyncio
async def test_list_actor_purchases_returns_newest_first(session_factory) -> None:
    alpha = await create_game(session_factory, title="Alpha")
    bravo = await create_game(session_factory, title="Bravo")
    async with session_factory.begin() as session:
        await PurchaseService.grant_cash_access(
            session,
            actor_id="player-1",
            game_id=alpha.id,
            now_utc=NOW - timedelta(days=2),
        )
        await PurchaseService.grant_cash_access(session, actor_id="player-1", game_id=bravo.id, now_utc=NOW)

    async with session_factory() as session:
        purchases = await PurchaseService.list_actor_purchases(session, actor_id="player-1")
        game_purchases = await PurchaseService.list_game_purchases(session, game_id=alpha.id)

    assert [purchase.game_id for purchase in purchases] == [bravo.id, alpha.id]
    assert [purchase.actor_id for purchase in game_purchases] == ["player-1"]


@pytest.mark.asyncio
async def test_sales_summary_aggregates_revenue_and_code_usage(session_factory) -> None:
    alpha = await create_game(session_factory, title="Alpha")
    bravo = await create_game(session_factory, title="Bravo")
    foreign = await create_game(session_factory, title="Foreign", tenant_id="tenant-south")
    await create_redeem_code(session_factory, game=alpha.game, code="JCQ-AB23-XY89")
    await create_redeem_code(session_factory, game=alpha.game, code="JCQ-CDEF-GH23")

    async with session_factory.begin() as session:
        await PurchaseService.grant_cash_access(
            session,
            actor_id="player-1",
            game_id=alpha.id,
            amount=300,
            now_utc=NOW,
        )
        await PurchaseService.grant_cash_access(
            session,
            actor_id="player-2",
            game_id=bravo.id,
            amount=120,
            now_utc=NOW - timedelta(days=40),
        )
        refunded = await PurchaseService.grant_cash_access(
            session,
            actor_id="player-4",
            game_id=alpha.id,
            amount=50,
            now_utc=NOW,
        )
        await PurchaseService.grant_cash_access(
            session,
            actor_id="player-1",
            game_id=foreign.id,
            amount=999,
            now_utc=NOW,
        )
        await RedeemService.redeem(
            session,
            actor_id="player-3",
            code="JCQ-AB23-XY89",
            now_utc=NOW,
            limiter=InMemoryAttemptLimiter(max_attempts=10, window=timedelta(minutes=15)),
        )
    async with session_factory.begin() as session:
        await PurchaseService.refund_purchase(session, purchase_id=refunded.id, now_utc=NOW)

    async with session_factory() as session:
        summary = await PurchaseService.get_sales_summary(session, tenant_id="tenant-north", now_utc=NOW)

    assert summary.tenant_id == "tenant-north"
    assert summary.total_revenue == 420
    assert summary.monthly_revenue == 300
    assert [game.title for game in summary.games] == ["Alpha", "Bravo"]

    alpha_summary, bravo_summary = summary.games
    assert (alpha_summary.revenue, alpha_summary.purchase_count) == (300, 2)
    assert (alpha_summary.total_codes, alpha_summary.active_codes, alpha_summary.code_use_count) == (2, 1, 1)
    assert (bravo_summary.revenue, bravo_summary.purchase_count) == (120, 1)
    assert (bravo_summary.total_codes, bravo_summary.active_codes, bravo_summary.code_use_count) == (0, 0, 0)
