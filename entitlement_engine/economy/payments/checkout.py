from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.core.errors import (
    AlreadyEntitledError,
    ChapterNotFoundError,
    ConfigurationError,
    FeatureDisabledError,
    GameNotFoundError,
    GatewayError,
    ValidationError,
)
from entitlement_engine.core.time import utc_now
from entitlement_engine.db.models.payment_transactions import PaymentTransaction
from entitlement_engine.db.repo.games_repo import GamesRepo
from entitlement_engine.db.repo.purchases_repo import PurchasesRepo
from entitlement_engine.db.repo.transactions_repo import TransactionsRepo
from entitlement_engine.db.session import SessionLocal
from entitlement_engine.economy.entitlements.service import EntitlementService
from entitlement_engine.economy.payments.gateway_client import PaymentGatewayClient
from entitlement_engine.economy.payments.types import CheckoutResult
from entitlement_engine.economy.tenants.service import TenantSettingsService

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class _PricedItem:
    product_id: str
    amount: int
    currency: str


async def _resolve_priced_item(
    session: AsyncSession,
    *,
    actor_id: str,
    game_id: UUID,
    chapter_id: UUID | None,
) -> _PricedItem:
    game = await GamesRepo.get_by_id(session, game_id)
    if game is None:
        raise GameNotFoundError
    if not game.pricing_type or game.pricing_type == "free":
        raise AlreadyEntitledError("free games need no checkout")
    if not await TenantSettingsService.is_payment_enabled(session, tenant_id=game.tenant_id):
        raise FeatureDisabledError("payments are disabled for this tenant")

    if chapter_id is None:
        if await PurchasesRepo.get_completed_game_purchase(session, actor_id=actor_id, game_id=game_id):
            raise AlreadyEntitledError
        product_id, amount = game.payment_product_id, game.price
    else:
        if game.pricing_type != "per_chapter":
            raise ValidationError("chapter checkout requires per_chapter pricing")
        chapter = await GamesRepo.get_chapter(session, chapter_id)
        if chapter is None or chapter.game_id != game_id:
            raise ChapterNotFoundError
        if await EntitlementService.has_chapter_access(
            session,
            actor_id=actor_id,
            game_id=game_id,
            chapter_id=chapter_id,
        ):
            raise AlreadyEntitledError
        product_id, amount = chapter.payment_product_id, chapter.price

    if not product_id or amount is None:
        raise ConfigurationError("no payment product is configured for this item")
    return _PricedItem(product_id=product_id, amount=amount, currency=game.currency)


async def start_checkout(
    *,
    actor_id: str,
    game_id: UUID,
    success_url: str,
    cancel_url: str,
    chapter_id: UUID | None = None,
    customer_email: str | None = None,
    customer_name: str | None = None,
    client: PaymentGatewayClient | None = None,
    now_utc: datetime | None = None,
) -> CheckoutResult:
    """Opens a hosted checkout for a game or chapter.

    The pending transaction is committed before the gateway call and the gateway
    is called with no database transaction open. The session id (or the gateway
    error) is written back in a second short transaction.
    """
    gateway = client if client is not None else PaymentGatewayClient.from_settings()
    if not gateway.is_configured:
        raise ConfigurationError("PAYMENT_GATEWAY_API_KEY is not set")

    now_utc = now_utc or utc_now()
    async with SessionLocal.begin() as session:
        item = await _resolve_priced_item(
            session,
            actor_id=actor_id,
            game_id=game_id,
            chapter_id=chapter_id,
        )
        transaction = await TransactionsRepo.create(
            session,
            transaction=PaymentTransaction(
                id=uuid4(),
                actor_id=actor_id,
                game_id=game_id,
                chapter_id=chapter_id,
                amount=item.amount,
                currency=item.currency,
                status="pending",
                created_at=now_utc,
                updated_at=now_utc,
            ),
        )
        transaction_id = transaction.id

    try:
        checkout_session = await gateway.create_checkout_session(
            product_id=item.product_id,
            success_url=success_url,
            cancel_url=cancel_url,
            transaction_id=str(transaction_id),
            customer_email=customer_email,
            customer_name=customer_name,
        )
    except GatewayError as exc:
        async with SessionLocal.begin() as session:
            await TransactionsRepo.record_error(
                session,
                transaction_id=transaction_id,
                error_message=str(exc),
                now_utc=utc_now(),
            )
        logger.warning(
            "payment_checkout_failed",
            transaction_id=str(transaction_id),
            actor_id=actor_id,
            game_id=str(game_id),
        )
        raise

    async with SessionLocal.begin() as session:
        await TransactionsRepo.attach_checkout_session(
            session,
            transaction_id=transaction_id,
            checkout_session_id=checkout_session.id,
            now_utc=utc_now(),
        )

    logger.info(
        "payment_checkout_started",
        transaction_id=str(transaction_id),
        checkout_session_id=checkout_session.id,
        actor_id=actor_id,
        game_id=str(game_id),
        chapter_id=str(chapter_id) if chapter_id else None,
        amount=item.amount,
    )
    return CheckoutResult(
        transaction_id=transaction_id,
        checkout_session_id=checkout_session.id,
        checkout_url=checkout_session.url,
    )
