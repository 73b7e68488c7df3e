"""Validation result caching."""

from src.infrastructure.cache.stores import (
    CacheEntry,
    CacheStore,
    DatabaseCacheStore,
    MemoryCacheStore,
    glob_to_like,
)
from src.infrastructure.cache.validation_cache import ValidationCache

__all__ = [
    "CacheEntry",
    "CacheStore",
    "DatabaseCacheStore",
    "MemoryCacheStore",
    "ValidationCache",
    "glob_to_like",
]
