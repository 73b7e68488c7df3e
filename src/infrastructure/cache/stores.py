"""Cache storage backends.

Every backend implements the ``CacheStore`` protocol, so the validation cache
can run with a memory tier alone or with a memory tier in front of a
persistent one. Backends store entries as given; freshness is decided by the
caller from the entry timestamp.
"""

import fnmatch
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.exceptions import CacheError
from src.infrastructure.database.repositories import CacheEntryRepository


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached validation result."""

    key: str
    value: dict[str, Any]
    type: str
    timestamp: datetime
    expires_at: datetime


class CacheStore(Protocol):
    """Storage backend of a cache tier."""

    name: str

    async def get(self, key: str) -> CacheEntry | None:
        """Return the entry stored under a key, fresh or not."""
        ...

    async def set(self, entry: CacheEntry) -> None:
        """Store an entry, replacing any entry under the same key."""
        ...

    async def delete_matching(self, pattern: str | None) -> int:
        """Delete entries whose key matches a glob pattern, or all entries."""
        ...

    async def purge_expired(self, now: datetime) -> int:
        """Delete entries whose expiration is before ``now``."""
        ...


@dataclass(slots=True)
class CacheStats:
    """Counters of a memory store."""

    sets: int = 0
    deletes: int = 0
    evictions: int = 0


class MemoryCacheStore:
    """Bounded in-process store, evicting the least recently used key.

    Args:
        max_keys: Maximum number of entries held.
    """

    name = "memory"

    def __init__(self, max_keys: int = 1000) -> None:
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._max_keys = max_keys
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> CacheEntry | None:
        """Return the entry stored under a key and mark it recently used."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    async def set(self, entry: CacheEntry) -> None:
        """Store an entry, evicting the oldest one when full."""
        if entry.key in self._entries:
            self._entries.move_to_end(entry.key)
        elif len(self._entries) >= self._max_keys:
            evicted, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            logger.debug("Evicted cache key {}", evicted)
        self._entries[entry.key] = entry
        self.stats.sets += 1

    async def delete(self, key: str) -> bool:
        """Delete one key."""
        if self._entries.pop(key, None) is None:
            return False
        self.stats.deletes += 1
        return True

    async def delete_matching(self, pattern: str | None) -> int:
        """Delete entries whose key matches a glob pattern, or all entries."""
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            keys = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in keys:
                del self._entries[key]
            removed = len(keys)
        self.stats.deletes += removed
        return removed

    async def purge_expired(self, now: datetime) -> int:
        """Delete entries whose expiration is before ``now``."""
        expired = [
            key for key, entry in self._entries.items() if entry.expires_at < now
        ]
        for key in expired:
            del self._entries[key]
        self.stats.deletes += len(expired)
        return len(expired)


def glob_to_like(pattern: str) -> str:
    """Translate a glob pattern into a SQL LIKE pattern escaped with ``\\``.

    Examples:
        >>> glob_to_like("cuit_validation_*")
        'cuit\\\\_validation\\\\_%'
    """
    escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("*", "%").replace("?", "_")


class DatabaseCacheStore:
    """Persistent store backed by the ``validation_cache`` table.

    Args:
        session_factory: Factory of the sessions used for each operation.
    """

    name = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> CacheEntry | None:
        """Return the entry stored under a key."""
        try:
            async with self._session_factory() as session:
                row = await CacheEntryRepository(session).get(key)
        except SQLAlchemyError as e:
            raise CacheError(f"Cache read failed for {key}", cause=e) from e

        if row is None:
            return None
        return CacheEntry(
            key=row.key,
            value=row.value,
            type=row.type,
            timestamp=row.stored_at,
            expires_at=row.expires_at,
        )

    async def set(self, entry: CacheEntry) -> None:
        """Store an entry, replacing any entry under the same key."""
        try:
            async with self._session_factory() as session, session.begin():
                await CacheEntryRepository(session).put(
                    entry.key,
                    entry.value,
                    entry.type,
                    stored_at=entry.timestamp,
                    expires_at=entry.expires_at,
                )
        except SQLAlchemyError as e:
            raise CacheError(f"Cache write failed for {entry.key}", cause=e) from e

    async def delete_matching(self, pattern: str | None) -> int:
        """Delete entries whose key matches a glob pattern, or all entries."""
        like = glob_to_like(pattern) if pattern is not None else None
        try:
            async with self._session_factory() as session, session.begin():
                return await CacheEntryRepository(session).delete_matching(like)
        except SQLAlchemyError as e:
            raise CacheError("Cache clear failed", cause=e) from e

    async def purge_expired(self, now: datetime) -> int:
        """Delete entries whose expiration is before ``now``."""
        try:
            async with self._session_factory() as session, session.begin():
                return await CacheEntryRepository(session).purge_expired(now)
        except SQLAlchemyError as e:
            raise CacheError("Cache purge failed", cause=e) from e
