"""
Time-boxed read-through caching for the data-fetch layer.

The cache is an explicit object handed to ``CachedRepository``; nothing is
memoized at module level.
"""

from __future__ import annotations

import logging
import pickle
import time
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Sequence, Tuple

import redis
from pendulum import Date, DateTime

logger = logging.getLogger(__name__)

# Seconds per data kind.
CACHE_TIMES: Dict[str, int] = {
    "provider": 300,
    "availability": 120,
    "calendar_busy": 60,
    "bookings": 30,
}


class Cache(Protocol):
    """Key/value store with per-entry TTL."""

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None on miss."""

    def set(self, key: str, value: Any, ttl: int) -> None:
        """Store ``value`` for ``ttl`` seconds."""

    def delete(self, key: str) -> None:
        """Drop one entry."""

    def clear(self) -> None:
        """Drop every entry."""


class InMemoryCache:
    """
    Process-local cache bounded to ``max_entries``.

    Expired entries are dropped when read and swept on writes at most every
    ``cleanup_interval`` seconds. When the cache is full the entry closest to
    expiry is evicted.
    """

    def __init__(
        self,
        max_entries: int = 1024,
        cleanup_interval: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._max_entries = max_entries
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("Cache MISS: %s", key)
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            logger.debug("Cache EXPIRED: %s", key)
            return None

        logger.debug("Cache HIT: %s", key)
        return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        now = self._clock()
        if now - self._last_cleanup >= self._cleanup_interval:
            self._cleanup(now)

        self._entries.pop(key, None)
        while len(self._entries) >= self._max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]
            logger.debug("Cache EVICT: %s", oldest)

        self._entries[key] = (now + ttl, value)
        logger.debug("Cache SET: %s (TTL: %ss)", key, ttl)

    def _cleanup(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._last_cleanup = now
        if expired:
            logger.debug("Cache cleanup removed %d expired entries", len(expired))

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache:
    """
    Redis-backed cache shared between processes.

    Values are pickled and written with ``SETEX``. Keys are namespaced with
    ``prefix`` so ``clear`` only drops this application's entries. A Redis
    failure is logged and treated as a miss; the repository is then read
    directly.
    """

    def __init__(self, client: redis.Redis, prefix: str = "bookable:"):
        self.redis_client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "bookable:") -> "RedisCache":
        """Connect lazily to the Redis server at ``url``."""
        client = redis.from_url(url, socket_connect_timeout=5, socket_timeout=5)
        return cls(client, prefix=prefix)

    def get(self, key: str) -> Optional[Any]:
        try:
            value = self.redis_client.get(self.prefix + key)
        except redis.exceptions.RedisError as exc:
            logger.warning("Cache get error for %s: %s", key, exc)
            return None

        if value is None:
            logger.debug("Cache MISS: %s", key)
            return None

        logger.debug("Cache HIT: %s", key)
        return pickle.loads(value)

    def set(self, key: str, value: Any, ttl: int) -> None:
        if ttl <= 0:
            return
        try:
            self.redis_client.setex(self.prefix + key, ttl, pickle.dumps(value))
            logger.debug("Cache SET: %s (TTL: %ss)", key, ttl)
        except redis.exceptions.RedisError as exc:
            logger.warning("Cache set error for %s: %s", key, exc)

    def delete(self, key: str) -> None:
        try:
            self.redis_client.delete(self.prefix + key)
        except redis.exceptions.RedisError as exc:
            logger.warning("Cache delete error for %s: %s", key, exc)

    def clear(self) -> None:
        try:
            keys = list(self.redis_client.scan_iter(match=f"{self.prefix}*"))
            if keys:
                self.redis_client.delete(*keys)
                logger.debug("Cache DELETE pattern: %s* (%d keys)", self.prefix, len(keys))
        except redis.exceptions.RedisError as exc:
            logger.warning("Cache clear error for %s*: %s", self.prefix, exc)


def _ids(provider_ids: Sequence[str]) -> str:
    return ",".join(sorted(provider_ids))


class CachedRepository:
    """
    Wraps a scheduling repository and, optionally, a busy-time source.

    Timezones, availability rules, blackouts, bookings and external busy times
    are cached per their TTL. Pool membership and assignment history always
    pass through, so pool selection sees fresh data.
    """

    def __init__(
        self,
        repository,
        cache: Cache,
        busy_source=None,
        ttls: Optional[Mapping[str, int]] = None,
    ):
        self._repository = repository
        self._busy_source = busy_source
        self._cache = cache
        self._ttls = {**CACHE_TIMES, **(ttls or {})}

    async def _cached(self, kind: str, key: str, loader):
        full_key = f"{kind}:{key}"
        value = self._cache.get(full_key)
        if value is not None:
            return value

        value = await loader()
        self._cache.set(full_key, value, self._ttls[kind])
        return value

    async def get_provider_timezone(self, provider_id: str) -> str:
        return await self._cached(
            "provider",
            f"timezone:{provider_id}",
            lambda: self._repository.get_provider_timezone(provider_id),
        )

    async def get_availability_rules(self, provider_ids):
        return await self._cached(
            "availability",
            f"rules:{_ids(provider_ids)}",
            lambda: self._repository.get_availability_rules(provider_ids),
        )

    async def get_blackout_ranges(self, provider_ids, on_or_after: Date):
        return await self._cached(
            "availability",
            f"blackouts:{_ids(provider_ids)}:{on_or_after.isoformat()}",
            lambda: self._repository.get_blackout_ranges(provider_ids, on_or_after),
        )

    async def get_bookings(self, provider_ids, start: DateTime, end: DateTime, exclude_booking_id=None):
        return await self._cached(
            "bookings",
            f"{_ids(provider_ids)}:{start.isoformat()}:{end.isoformat()}:{exclude_booking_id or ''}",
            lambda: self._repository.get_bookings(provider_ids, start, end, exclude_booking_id),
        )

    async def get_calendar_connected(self, provider_ids):
        return await self._cached(
            "provider",
            f"calendar:{_ids(provider_ids)}",
            lambda: self._repository.get_calendar_connected(provider_ids),
        )

    async def get_busy_times(self, provider_ids, start: DateTime, end: DateTime):
        return await self._cached(
            "calendar_busy",
            f"{_ids(provider_ids)}:{start.isoformat()}:{end.isoformat()}",
            lambda: self._busy_source.get_busy_times(provider_ids, start, end),
        )

    async def get_conflicting_bookings(self, provider_ids, start: DateTime, end: DateTime):
        return await self._repository.get_conflicting_bookings(provider_ids, start, end)

    async def get_pool(self, pool_id: str):
        return await self._repository.get_pool(pool_id)

    async def get_pool_members(self, pool_id: str):
        return await self._repository.get_pool_members(pool_id)

    async def get_assignments(self, provider_ids, since: DateTime):
        return await self._repository.get_assignments(provider_ids, since)

    async def get_team_members(self, link_id: str):
        return await self._repository.get_team_members(link_id)

    def invalidate(self) -> None:
        """Drop everything, e.g. after a booking is written."""
        self._cache.clear()
