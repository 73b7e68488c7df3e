"""Unit tests for the cache storage backends."""

from datetime import UTC, datetime, timedelta

import pytest

from src.infrastructure.cache.stores import CacheEntry, MemoryCacheStore, glob_to_like

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def _entry(key: str, expires_in: timedelta = timedelta(hours=1)) -> CacheEntry:
    return CacheEntry(
        key=key,
        value={"valid": True},
        type="cuit",
        timestamp=NOW,
        expires_at=NOW + expires_in,
    )


@pytest.mark.unit
class TestMemoryCacheStore:
    """Test suite for the bounded memory store."""

    async def test_set_and_get(self) -> None:
        """Test storing and reading an entry."""
        store = MemoryCacheStore()

        await store.set(_entry("cuit_validation_20123456786"))

        entry = await store.get("cuit_validation_20123456786")
        assert entry is not None
        assert entry.value == {"valid": True}
        assert await store.get("missing") is None

    async def test_evicts_least_recently_used(self) -> None:
        """Test that the least recently used key is evicted when full."""
        store = MemoryCacheStore(max_keys=2)
        await store.set(_entry("a"))
        await store.set(_entry("b"))
        await store.get("a")

        await store.set(_entry("c"))

        assert await store.get("b") is None
        assert await store.get("a") is not None
        assert await store.get("c") is not None
        assert store.stats.evictions == 1
        assert len(store) == 2

    async def test_overwrite_does_not_evict(self) -> None:
        """Test that replacing a key keeps the other entries."""
        store = MemoryCacheStore(max_keys=2)
        await store.set(_entry("a"))
        await store.set(_entry("b"))

        await store.set(_entry("a"))

        assert len(store) == 2
        assert store.stats.evictions == 0

    async def test_delete_matching_glob(self) -> None:
        """Test deleting keys by glob pattern."""
        store = MemoryCacheStore()
        for key in ("cuit_validation_1", "cuit_validation_2", "cae_validation_1"):
            await store.set(_entry(key))

        removed = await store.delete_matching("cuit_*")

        assert removed == 2
        assert await store.get("cae_validation_1") is not None
        assert await store.delete_matching(None) == 1
        assert len(store) == 0

    async def test_purge_expired(self) -> None:
        """Test that only entries expired before now are purged."""
        store = MemoryCacheStore()
        await store.set(_entry("old", expires_in=timedelta(seconds=-1)))
        await store.set(_entry("fresh"))

        assert await store.purge_expired(NOW) == 1
        assert await store.get("fresh") is not None


@pytest.mark.unit
class TestGlobToLike:
    """Test suite for glob to SQL LIKE translation."""

    @pytest.mark.parametrize(
        ("pattern", "expected"),
        [
            ("cuit_validation_*", "cuit\\_validation\\_%"),
            ("fe_param_?", "fe\\_param\\_\\_"),
            ("100%", "100\\%"),
            ("plain", "plain"),
        ],
    )
    def test_translation(self, pattern: str, expected: str) -> None:
        """Test that wildcards translate and literals are escaped."""
        assert glob_to_like(pattern) == expected
