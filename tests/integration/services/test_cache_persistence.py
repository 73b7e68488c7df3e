"""Integration tests for the persistent cache tier."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import CacheConfig
from src.infrastructure.cache import DatabaseCacheStore, ValidationCache
from tests.fixtures.clock import FrozenClock

CUIT_KEY = "cuit_validation_20123456789"


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> DatabaseCacheStore:
    """Provide the database backed cache store."""
    return DatabaseCacheStore(session_factory)


@pytest.mark.integration
class TestDatabaseCacheStore:
    """Test suite for cache entries that outlive the process."""

    async def test_entries_survive_a_new_cache(self, store: DatabaseCacheStore) -> None:
        """Test that a fresh memory tier is filled from the database."""
        clock = FrozenClock()
        await ValidationCache(CacheConfig(), store, clock).set(
            CUIT_KEY, {"valid": True, "cuit": "20123456789"}, "cuit"
        )

        restarted = ValidationCache(CacheConfig(), store, clock)

        assert await restarted.get(CUIT_KEY) == {"valid": True, "cuit": "20123456789"}

    async def test_replacing_an_entry(self, store: DatabaseCacheStore) -> None:
        """Test that setting a key twice keeps the latest value."""
        clock = FrozenClock()
        cache = ValidationCache(CacheConfig(), store, clock)
        await cache.set(CUIT_KEY, {"valid": True, "version": 1}, "cuit")
        await cache.set(CUIT_KEY, {"valid": True, "version": 2}, "cuit")

        entry = await store.get(CUIT_KEY)

        assert entry is not None
        assert entry.value["version"] == 2
        assert entry.expires_at - entry.timestamp == timedelta(hours=24)

    async def test_clear_by_pattern(self, store: DatabaseCacheStore) -> None:
        """Test that glob patterns also apply to the database tier."""
        cache = ValidationCache(CacheConfig(), store, FrozenClock())
        await cache.set(CUIT_KEY, {"valid": True}, "cuit")
        await cache.set("cae_validation_12345678901234_", {"valid": True}, "cae")

        await cache.clear("cuit_validation_*")

        assert await store.get(CUIT_KEY) is None
        assert await store.get("cae_validation_12345678901234_") is not None

    async def test_cleanup_purges_expired_rows(
        self, store: DatabaseCacheStore
    ) -> None:
        """Test that expired rows are deleted by the cleanup sweep."""
        clock = FrozenClock()
        cache = ValidationCache(CacheConfig(), store, clock)
        await cache.set("cae_validation_12345678901234_", {"valid": True}, "cae")
        await cache.set(CUIT_KEY, {"valid": True}, "cuit")

        clock.advance(hours=2)
        await cache.cleanup()

        assert await store.get("cae_validation_12345678901234_") is None
        assert await store.get(CUIT_KEY) is not None
