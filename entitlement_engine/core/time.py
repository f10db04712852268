from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treats naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_utc_datetime(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


def month_start_utc(now_utc: datetime) -> datetime:
    return now_utc.astimezone(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
