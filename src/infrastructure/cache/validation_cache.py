"""Two-tier cache of validation results.

Lookups go to the memory tier first and fall back to the persistent tier,
backfilling memory on a persistent hit. Expiry is lazy: an entry is stale
when more than its type's TTL has passed since it was stored, and stale
entries are dropped when read. A failing persistent tier never fails the
caller; its errors are logged and treated as a miss.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger

from src.core.config import CacheConfig
from src.core.exceptions import CacheError
from src.infrastructure.cache.stores import CacheEntry, CacheStore, MemoryCacheStore


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ValidationCache:
    """Memory tier in front of an optional persistent tier.

    Args:
        config: TTLs and memory tier limits.
        persistent: Persistent tier, or None to run on memory alone.
        clock: Returns the current aware time.
    """

    def __init__(
        self,
        config: CacheConfig,
        persistent: CacheStore | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._config = config
        self._memory = MemoryCacheStore(config.memory_max_keys)
        self._persistent = persistent
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def _is_fresh(self, entry: CacheEntry, now: datetime) -> bool:
        ttl = timedelta(seconds=self._config.ttl_for(entry.type))
        return now - entry.timestamp <= ttl

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the cached value of a key, or None if absent or stale."""
        value = await self._lookup(key)
        if value is None:
            self._misses += 1
        else:
            self._hits += 1
        return value

    async def _lookup(self, key: str) -> dict[str, Any] | None:
        now = self._clock()

        entry = await self._memory.get(key)
        if entry is not None:
            if self._is_fresh(entry, now):
                return entry.value
            await self._memory.delete(key)

        if self._persistent is None:
            return None

        try:
            entry = await self._persistent.get(key)
        except CacheError as e:
            logger.warning("Persistent cache read failed: {}", e.message, key=key)
            return None

        if entry is None or not self._is_fresh(entry, now):
            return None

        await self._memory.set(entry)
        return entry.value

    async def set(self, key: str, value: dict[str, Any], cache_type: str) -> None:
        """Store a value in both tiers.

        Args:
            key: Cache key.
            value: JSON-serializable value.
            cache_type: Entry type, selects the TTL (cuit, cae, taxpayer, params).
        """
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            type=cache_type,
            timestamp=now,
            expires_at=now + timedelta(seconds=self._config.ttl_for(cache_type)),
        )
        await self._memory.set(entry)

        if self._persistent is not None:
            try:
                await self._persistent.set(entry)
            except CacheError as e:
                logger.warning("Persistent cache write failed: {}", e.message, key=key)

    async def get_or_set(
        self,
        key: str,
        cache_type: str,
        factory: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        """Return the cached value of a key, computing and storing it on a miss."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await factory()
        await self.set(key, value, cache_type)
        return value

    async def clear(self, pattern: str | None = None) -> int:
        """Delete entries matching a glob pattern from both tiers.

        Args:
            pattern: Glob over keys (``*`` and ``?``), or None for every entry.

        Returns:
            int: Number of entries removed from the memory tier.
        """
        removed = await self._memory.delete_matching(pattern)
        if self._persistent is not None:
            try:
                await self._persistent.delete_matching(pattern)
            except CacheError as e:
                logger.warning("Persistent cache clear failed: {}", e.message)

        logger.info("Cleared {} cache entries", removed, pattern=pattern or "*")
        return removed

    async def cleanup(self) -> int:
        """Drop expired entries from both tiers.

        Returns:
            int: Number of entries removed from the memory tier.
        """
        now = self._clock()
        removed = await self._memory.purge_expired(now)
        if self._persistent is not None:
            try:
                await self._persistent.purge_expired(now)
            except CacheError as e:
                logger.warning("Persistent cache purge failed: {}", e.message)

        if removed:
            logger.debug("Cache cleanup removed {} expired entries", removed)
        return removed

    async def run_cleanup_loop(self) -> None:
        """Run ``cleanup`` every configured interval until cancelled."""
        while True:
            await asyncio.sleep(self._config.cleanup_interval_seconds)
            try:
                await self.cleanup()
            except Exception as e:  # noqa: BLE001 - the loop outlives one sweep
                logger.opt(exception=e).error("Cache cleanup failed")

    def stats(self) -> dict[str, Any]:
        """Counters of the memory tier and the persistent backend in use."""
        counters = self._memory.stats
        lookups = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "sets": counters.sets,
            "deletes": counters.deletes,
            "evictions": counters.evictions,
            "hitRate": round(self._hits * 100 / lookups, 2) if lookups else 0.0,
            "keys": len(self._memory),
            "maxKeys": self._config.memory_max_keys,
            "persistentBackend": self._persistent.name if self._persistent else None,
        }
