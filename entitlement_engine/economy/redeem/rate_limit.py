"""Per-actor fixed-window throttle for redeem attempts.

The window opens on the first attempt (or the first one after the previous window
ran out). Attempts beyond the limit are rejected without being counted.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import structlog
from redis.asyncio import Redis

from entitlement_engine.core.config import get_settings
from entitlement_engine.core.errors import ConfigurationError, RateLimitedError
from entitlement_engine.core.time import utc_now

logger = structlog.get_logger(__name__)

_REDIS_KEY_PREFIX = "redeem:attempts:"
_REDIS_FIXED_WINDOW_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if current and tonumber(current) >= tonumber(ARGV[1]) then
  return 0
end
local count = redis.call('INCR', KEYS[1])
if count == 1 then
  redis.call('PEXPIRE', KEYS[1], ARGV[2])
end
return 1
"""


@dataclass(slots=True)
class RateLimitWindow:
    count: int
    window_reset_at: datetime


class AttemptLimiter(Protocol):
    async def hit(self, actor_id: str, *, now_utc: datetime | None = None) -> bool: ...

    async def reset(self, actor_id: str | None = None) -> None: ...


class InMemoryAttemptLimiter:
    """Process-local counters; correct for a single instance only."""

    def __init__(self, *, max_attempts: int, window: timedelta) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self.max_attempts = max_attempts
        self.window = window
        self._windows: dict[str, RateLimitWindow] = {}
        self._next_sweep_at: datetime | None = None
        self._lock = threading.Lock()

    def _sweep_expired(self, now_utc: datetime) -> None:
        """Drops finished windows at most once per window length. Caller holds the lock."""
        if self._next_sweep_at is not None and now_utc < self._next_sweep_at:
            return
        expired = [
            actor_id
            for actor_id, current in self._windows.items()
            if now_utc >= current.window_reset_at
        ]
        for actor_id in expired:
            del self._windows[actor_id]
        self._next_sweep_at = now_utc + self.window

    async def hit(self, actor_id: str, *, now_utc: datetime | None = None) -> bool:
        now_utc = now_utc or utc_now()
        with self._lock:
            self._sweep_expired(now_utc)
            current = self._windows.get(actor_id)
            if current is None or now_utc >= current.window_reset_at:
                self._windows[actor_id] = RateLimitWindow(
                    count=1,
                    window_reset_at=now_utc + self.window,
                )
                return True

            if current.count >= self.max_attempts:
                return False

            current.count += 1
            return True

    def snapshot(self, actor_id: str) -> RateLimitWindow | None:
        with self._lock:
            current = self._windows.get(actor_id)
            if current is None:
                return None
            return RateLimitWindow(count=current.count, window_reset_at=current.window_reset_at)

    async def reset(self, actor_id: str | None = None) -> None:
        with self._lock:
            if actor_id is None:
                self._windows.clear()
                self._next_sweep_at = None
            else:
                self._windows.pop(actor_id, None)


class RedisAttemptLimiter:
    """Shared counters for multi-instance deployments; the window is the key TTL."""

    def __init__(self, client: Redis, *, max_attempts: int, window: timedelta) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self.client = client
        self.max_attempts = max_attempts
        self.window = window

    async def hit(self, actor_id: str, *, now_utc: datetime | None = None) -> bool:  # noqa: ARG002
        allowed = await self.client.eval(
            _REDIS_FIXED_WINDOW_SCRIPT,
            1,
            f"{_REDIS_KEY_PREFIX}{actor_id}",
            self.max_attempts,
            int(self.window.total_seconds() * 1000),
        )
        return int(allowed) == 1

    async def reset(self, actor_id: str | None = None) -> None:
        if actor_id is not None:
            await self.client.delete(f"{_REDIS_KEY_PREFIX}{actor_id}")
            return
        async for key in self.client.scan_iter(match=f"{_REDIS_KEY_PREFIX}*"):
            await self.client.delete(key)


def build_attempt_limiter() -> AttemptLimiter:
    settings = get_settings()
    window = timedelta(seconds=settings.redeem_rate_limit_window_seconds)
    backend = settings.rate_limit_backend.strip().lower()
    if backend == "memory":
        return InMemoryAttemptLimiter(
            max_attempts=settings.redeem_rate_limit_max_attempts,
            window=window,
        )
    if backend == "redis":
        return RedisAttemptLimiter(
            Redis.from_url(settings.redis_url),
            max_attempts=settings.redeem_rate_limit_max_attempts,
            window=window,
        )
    raise ConfigurationError(f"unsupported RATE_LIMIT_BACKEND: {settings.rate_limit_backend!r}")


_attempt_limiter: AttemptLimiter | None = None


def get_attempt_limiter() -> AttemptLimiter:
    global _attempt_limiter
    if _attempt_limiter is None:
        _attempt_limiter = build_attempt_limiter()
    return _attempt_limiter


async def enforce_rate_limit(
    *,
    actor_id: str,
    now_utc: datetime,
    limiter: AttemptLimiter | None = None,
) -> None:
    active_limiter = limiter if limiter is not None else get_attempt_limiter()
    if not await active_limiter.hit(actor_id, now_utc=now_utc):
        logger.warning("redeem_rate_limited", actor_id=actor_id)
        raise RateLimitedError
