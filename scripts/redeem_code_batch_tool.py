from __future__ import annotations

import argparse
import asyncio
import csv
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

from entitlement_engine.core.time import parse_utc_datetime, utc_now
from entitlement_engine.db.session import SessionLocal
from entitlement_engine.economy.redeem.admin import RedeemCodeAdminService
from entitlement_engine.economy.redeem.codes import MAX_BATCH_SIZE, generate_codes
from entitlement_engine.economy.redeem.types import MAX_USES_LIMIT


@dataclass(slots=True)
class GeneratedCode:
    code: str
    code_id: UUID | None = None


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Redeem code batch generation tool")
    parser.add_argument("--game-id", type=UUID, required=True)
    parser.add_argument("--scope", choices=("game", "chapter"), default="game")
    parser.add_argument("--chapter-id", type=UUID)
    parser.add_argument("--count", type=int, required=True)
    parser.add_argument("--max-uses", type=int, default=1)
    parser.add_argument("--expires-at", help="ISO datetime")
    parser.add_argument("--label")
    parser.add_argument("--created-by", required=True)
    parser.add_argument("--output-csv", type=Path)
    parser.add_argument("--dry-run", action="store_true")
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace) -> None:
    if not 1 <= args.count <= MAX_BATCH_SIZE:
        raise ValueError(f"--count must be in range 1..{MAX_BATCH_SIZE}")
    if not 1 <= args.max_uses <= MAX_USES_LIMIT:
        raise ValueError(f"--max-uses must be in range 1..{MAX_USES_LIMIT}")
    if args.scope == "chapter" and args.chapter_id is None:
        raise ValueError("--chapter-id is required for --scope chapter")
    if args.scope == "game" and args.chapter_id is not None:
        raise ValueError("--chapter-id must not be used for --scope game")
    if args.label is not None and len(args.label) > 200:
        raise ValueError("--label must be at most 200 characters")
    if args.expires_at is not None and parse_utc_datetime(args.expires_at) <= utc_now():
        raise ValueError("--expires-at must be in the future")


async def _insert_batch(args: argparse.Namespace) -> list[GeneratedCode]:
    async with SessionLocal.begin() as session:
        codes = await RedeemCodeAdminService.create_codes(
            session,
            game_id=args.game_id,
            scope=args.scope,
            count=args.count,
            chapter_id=args.chapter_id,
            max_uses=args.max_uses,
            expires_at=parse_utc_datetime(args.expires_at) if args.expires_at else None,
            label=args.label,
            created_by=args.created_by,
        )
        return [GeneratedCode(code=code.code, code_id=code.id) for code in codes]


def _write_output(path: Path, batch: list[GeneratedCode]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as file:
        writer = csv.writer(file)
        writer.writerow(["code", "code_id"])
        for item in batch:
            writer.writerow([item.code, item.code_id or ""])


async def _run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    _validate_args(args)

    if args.dry_run:
        batch = [GeneratedCode(code=code) for code in generate_codes(count=args.count)]
    else:
        batch = await _insert_batch(args)

    output_csv = args.output_csv or Path("reports/redeem_code_batch_output.csv")
    _write_output(output_csv, batch)
    print(  # noqa: T201
        f"generated={len(batch)} inserted={0 if args.dry_run else len(batch)} output={output_csv}"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(argv))


if __name__ == "__main__":
    raise SystemExit(main())
