"""Fixtures for integration tests.

Each test gets its own SQLite database file, validation services wired to a
scripted AFIP/ARCA backend, and an HTTP client to the application.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.main import create_app
from src.core.config import get_settings
from src.infrastructure.database.session import (
    close_database,
    create_all_tables,
    get_session_factory,
)
from src.services.validation import ValidationServices
from tests.fixtures.soap import AfipStub, FakeSigner

ISSUER_CUIT = "20111111112"


@pytest.fixture
async def integration_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point the settings at a fresh SQLite database with loops disabled.

    Returns:
        str: The database URL.
    """
    # Drop a global engine left behind by an earlier test
    await close_database()
    url = f"sqlite+aiosqlite:///{tmp_path / 'validation.db'}"
    monkeypatch.setenv("DATABASE_CONFIG__DATABASE_URL", url)
    monkeypatch.setenv("DATABASE_CONFIG__CREATE_TABLES", "true")
    monkeypatch.setenv("RETRY_CONFIG__ENABLED", "false")
    monkeypatch.setenv("RETRY_CONFIG__JITTER_RATIO", "0")
    monkeypatch.setenv("MONITOR_CONFIG__ENABLED", "false")
    monkeypatch.setenv("AFIP_CONFIG__CUIT", ISSUER_CUIT)
    get_settings.cache_clear()
    return url


@pytest.fixture
async def session_factory(
    integration_env: str,
) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    """Create the tables and provide the global session factory."""
    await create_all_tables()
    yield get_session_factory()
    await close_database()


@pytest.fixture
def stub() -> AfipStub:
    """Provide a scripted AFIP/ARCA backend."""
    return AfipStub()


@pytest.fixture
async def services(
    session_factory: async_sessionmaker[AsyncSession], stub: AfipStub
) -> AsyncGenerator[ValidationServices]:
    """Build the validation services against the stub."""
    services = ValidationServices.build(
        get_settings(),
        session_factory=session_factory,
        http_client=stub.client(),
        signer=FakeSigner(),
    )
    yield services
    await services.stop()


@pytest.fixture
def app(services: ValidationServices) -> FastAPI:
    """Create the application with the services already in place."""
    application = create_app(get_settings())
    application.state.services = services
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Provide an HTTP client to the application."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
