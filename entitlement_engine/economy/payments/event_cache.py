"""Recently processed webhook event ids.

This is the fast duplicate filter in front of the durable pending -> completed
check; losing it (restart, eviction) only costs one extra database round trip.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Protocol

from redis.asyncio import Redis

from entitlement_engine.core.config import get_settings
from entitlement_engine.core.errors import ConfigurationError

_REDIS_KEY_PREFIX = "payments:webhook:event:"


class EventCache(Protocol):
    async def add_if_absent(self, event_id: str) -> bool: ...

    async def discard(self, event_id: str) -> None: ...


class InMemoryEventCache:
    """Bounded FIFO set; the oldest id is evicted once `max_size` is exceeded."""

    def __init__(self, *, max_size: int = 1000) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._event_ids: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    async def add_if_absent(self, event_id: str) -> bool:
        with self._lock:
            if event_id in self._event_ids:
                return False
            self._event_ids[event_id] = None
            while len(self._event_ids) > self.max_size:
                self._event_ids.popitem(last=False)
            return True

    async def discard(self, event_id: str) -> None:
        with self._lock:
            self._event_ids.pop(event_id, None)

    def __contains__(self, event_id: object) -> bool:
        with self._lock:
            return event_id in self._event_ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._event_ids)


class RedisEventCache:
    def __init__(self, client: Redis, *, ttl_seconds: int) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    async def add_if_absent(self, event_id: str) -> bool:
        created = await self.client.set(
            f"{_REDIS_KEY_PREFIX}{event_id}",
            "1",
            nx=True,
            ex=self.ttl_seconds,
        )
        return bool(created)

    async def discard(self, event_id: str) -> None:
        await self.client.delete(f"{_REDIS_KEY_PREFIX}{event_id}")


def build_event_cache() -> EventCache:
    settings = get_settings()
    backend = settings.rate_limit_backend.strip().lower()
    if backend == "memory":
        return InMemoryEventCache(max_size=settings.payment_webhook_event_cache_size)
    if backend == "redis":
        return RedisEventCache(
            Redis.from_url(settings.redis_url),
            ttl_seconds=settings.payment_webhook_event_ttl_seconds,
        )
    raise ConfigurationError(f"unsupported RATE_LIMIT_BACKEND: {settings.rate_limit_backend!r}")
