"""Root conftest.py for the validation service test suite.

This file contains project-wide fixtures and pytest configuration.
"""

import os
from collections.abc import Generator

import pytest

from src.core.config import get_settings
from src.core.context import RequestContext
from src.core.error_context import _get_sensitive_fields

# Spans are not exported while testing
os.environ.setdefault("OBSERVABILITY_CONFIG__ENABLE_TRACING", "false")


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )


@pytest.fixture(autouse=True)
def clean_context() -> Generator[None]:
    """Reset cached settings and the request context around every test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    RequestContext.clear()
    yield
    RequestContext.clear()
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
