from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from entitlement_engine.core.errors import (
    ChapterNotFoundError,
    CodeInUseError,
    CodeNotFoundError,
    CodeStatusConflictError,
    GameNotFoundError,
    ScopeValidationError,
    TenantRequiredError,
    ValidationError,
)
from entitlement_engine.core.time import ensure_utc, utc_now
from entitlement_engine.db.models.games import Game
from entitlement_engine.db.models.redeem_code_uses import RedeemCodeUse
from entitlement_engine.db.models.redeem_codes import RedeemCode
from entitlement_engine.db.repo.games_repo import GamesRepo
from entitlement_engine.db.repo.redeem_codes_repo import RedeemCodesRepo
from entitlement_engine.economy.redeem.codes import MAX_BATCH_SIZE, generate_codes
from entitlement_engine.economy.redeem.types import MAX_USES_LIMIT, RedeemCodePatch

logger = structlog.get_logger(__name__)

CODE_SCOPES = ("game", "chapter")
MAX_ALLOCATION_ROUNDS = 5


class RedeemCodeAdminService:
    @staticmethod
    async def _load_game(session: AsyncSession, game_id: UUID) -> Game:
        game = await GamesRepo.get_by_id(session, game_id)
        if game is None:
            raise GameNotFoundError
        return game

    @staticmethod
    async def _validate_scope(
        session: AsyncSession,
        *,
        game_id: UUID,
        scope: str,
        chapter_id: UUID | None,
    ) -> UUID | None:
        if scope not in CODE_SCOPES:
            raise ScopeValidationError(f"unknown scope: {scope!r}")
        if scope == "game":
            if chapter_id is not None:
                raise ScopeValidationError("game scope must not carry a chapter_id")
            return None

        if chapter_id is None:
            raise ScopeValidationError("chapter scope requires chapter_id")
        chapter = await GamesRepo.get_chapter(session, chapter_id)
        if chapter is None or chapter.game_id != game_id:
            raise ChapterNotFoundError
        return chapter_id

    @staticmethod
    async def _allocate_codes(session: AsyncSession, *, count: int) -> list[str]:
        """Generates `count` codes that are unique in the batch and in storage."""
        taken: set[str] = set()
        allocated: list[str] = []
        for _ in range(MAX_ALLOCATION_ROUNDS):
            candidates = generate_codes(
                count=count - len(allocated),
                existing_codes=taken | set(allocated),
            )
            clashes = await RedeemCodesRepo.list_existing_codes(session, candidates)
            taken |= clashes
            allocated.extend(code for code in candidates if code not in clashes)
            if len(allocated) == count:
                return allocated
        raise RuntimeError("unable to allocate unique redeem codes")

    @staticmethod
    async def create_codes(
        session: AsyncSession,
        *,
        game_id: UUID,
        scope: str,
        count: int = 1,
        chapter_id: UUID | None = None,
        max_uses: int = 1,
        expires_at: datetime | None = None,
        label: str | None = None,
        created_by: str | None = None,
        now_utc: datetime | None = None,
    ) -> list[RedeemCode]:
        if not 1 <= count <= MAX_BATCH_SIZE:
            raise ValidationError(f"count must be between 1 and {MAX_BATCH_SIZE}")
        if not 1 <= max_uses <= MAX_USES_LIMIT:
            raise ValidationError(f"max_uses must be between 1 and {MAX_USES_LIMIT}")
        if label is not None and len(label) > 200:
            raise ValidationError("label must be at most 200 characters")

        now_utc = now_utc or utc_now()
        game = await RedeemCodeAdminService._load_game(session, game_id)
        if not game.tenant_id:
            raise TenantRequiredError
        resolved_chapter_id = await RedeemCodeAdminService._validate_scope(
            session,
            game_id=game_id,
            scope=scope,
            chapter_id=chapter_id,
        )

        raw_codes = await RedeemCodeAdminService._allocate_codes(session, count=count)
        codes = await RedeemCodesRepo.create_many(
            session,
            codes=[
                RedeemCode(
                    id=uuid4(),
                    code=raw_code,
                    tenant_id=game.tenant_id,
                    game_id=game_id,
                    chapter_id=resolved_chapter_id,
                    scope=scope,
                    max_uses=max_uses,
                    used_count=0,
                    status="active",
                    expires_at=expires_at,
                    label=label,
                    created_by=created_by,
                    created_at=now_utc,
                    updated_at=now_utc,
                )
                for raw_code in raw_codes
            ],
        )
        logger.info(
            "redeem_codes_created",
            game_id=str(game_id),
            scope=scope,
            count=len(codes),
            max_uses=max_uses,
            created_by=created_by,
        )
        return codes

    @staticmethod
    async def list_codes(session: AsyncSession, *, game_id: UUID) -> list[RedeemCode]:
        await RedeemCodeAdminService._load_game(session, game_id)
        return await RedeemCodesRepo.list_by_game(session, game_id)

    @staticmethod
    async def list_uses(session: AsyncSession, *, code_id: UUID) -> list[RedeemCodeUse]:
        if await RedeemCodesRepo.get_by_id(session, code_id) is None:
            raise CodeNotFoundError
        return await RedeemCodesRepo.list_uses(session, code_id)

    @staticmethod
    def _reconcile_status(
        *,
        current_status: str,
        requested_status: str | None,
        used_count: int,
        max_uses: int,
    ) -> str:
        """Keeps `status == used` exactly when the code has no uses left."""
        if max_uses < used_count:
            raise CodeStatusConflictError("max_uses cannot drop below used_count")

        if used_count == max_uses:
            if requested_status not in (None, "used"):
                raise CodeStatusConflictError("an exhausted code can only be 'used'")
            return "used"

        if requested_status == "used":
            raise CodeStatusConflictError("a code with uses left cannot be 'used'")
        if requested_status is None and current_status == "used":
            return "active"
        return requested_status or current_status

    @staticmethod
    async def update_code(
        session: AsyncSession,
        *,
        code_id: UUID,
        patch: RedeemCodePatch,
        now_utc: datetime | None = None,
    ) -> RedeemCode:
        redeem_code = await RedeemCodesRepo.get_by_id_for_update(session, code_id)
        if redeem_code is None:
            raise CodeNotFoundError

        changes = patch.model_dump(exclude_unset=True)
        next_max_uses = changes.get("max_uses") or redeem_code.max_uses
        next_status = RedeemCodeAdminService._reconcile_status(
            current_status=redeem_code.status,
            requested_status=changes.get("status"),
            used_count=redeem_code.used_count,
            max_uses=next_max_uses,
        )

        previous_status = redeem_code.status
        redeem_code.max_uses = next_max_uses
        redeem_code.status = next_status
        if "expires_at" in changes:
            expires_at = changes["expires_at"]
            redeem_code.expires_at = ensure_utc(expires_at) if expires_at is not None else None
        if "label" in changes:
            redeem_code.label = changes["label"]
        redeem_code.updated_at = now_utc or utc_now()
        await session.flush()

        logger.info(
            "redeem_code_updated",
            code_id=str(code_id),
            fields=sorted(changes),
            previous_status=previous_status,
            next_status=next_status,
        )
        return redeem_code

    @staticmethod
    async def delete_code(session: AsyncSession, *, code_id: UUID) -> None:
        redeem_code = await RedeemCodesRepo.get_by_id_for_update(session, code_id)
        if redeem_code is None:
            raise CodeNotFoundError
        use_count = await RedeemCodesRepo.count_uses(session, code_id)
        if use_count > 0:
            raise CodeInUseError

        await RedeemCodesRepo.delete(session, code_id=code_id)
        logger.info("redeem_code_deleted", code_id=str(code_id), game_id=str(redeem_code.game_id))
