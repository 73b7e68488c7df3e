"""Shared fixtures for unit tests."""

from collections.abc import Generator
from typing import Any

import pytest
from loguru import logger

from src.core.config import CacheConfig
from tests.fixtures.clock import FrozenClock


@pytest.fixture
def clock() -> FrozenClock:
    """Provide a controllable clock starting at 2026-06-01 12:00 UTC."""
    return FrozenClock()


@pytest.fixture
def cache_config() -> CacheConfig:
    """Provide the default cache configuration with a small memory tier."""
    return CacheConfig(memory_max_keys=3)


@pytest.fixture
def log_records() -> Generator[list[dict[str, Any]]]:
    """Capture loguru records emitted during the test.

    Yields:
        list[dict[str, Any]]: Records in emission order.
    """
    records: list[dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record))
    yield records
    logger.remove(handler_id)
