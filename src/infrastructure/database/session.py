"""Async database engine and session lifecycle management.

Core functionality:
- **Connection pooling**: Configurable pool with overflow and recycling
  (PostgreSQL through asyncpg)
- **SQLite support**: aiosqlite databases for local runs and tests
- **Session factory**: Async session creation with proper cleanup
- **Health checks**: Database connectivity validation for monitoring
- **Query monitoring**: Slow query detection with sanitized parameters

The module uses a singleton pattern through _DatabaseManager to ensure
a single engine instance across the application lifecycle.
"""

import threading
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from weakref import WeakKeyDictionary

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.engine.interfaces import DBAPICursor, ExecutionContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.core.config import get_settings
from src.core.context import RequestContext
from src.core.error_context import sanitize_sql_params
from src.infrastructure.database.base import Base

POOL_RECYCLE_SECONDS = 3600  # 1 hour
COMMAND_TIMEOUT_SECONDS = 60

_query_start_times: WeakKeyDictionary[ExecutionContext, float] = WeakKeyDictionary()


def _before_cursor_execute(
    _conn: Connection,
    _cursor: DBAPICursor,
    _statement: str,
    _parameters: dict[str, Any] | list[Any] | tuple[Any, ...] | None,
    context: ExecutionContext,
    _executemany: bool,
) -> None:
    """Track query start time for performance monitoring."""
    _query_start_times[context] = time.perf_counter()


def _after_cursor_execute(
    _conn: Connection,
    _cursor: DBAPICursor,
    statement: str,
    parameters: dict[str, Any] | list[Any] | tuple[Any, ...] | None,
    context: ExecutionContext,
    _executemany: bool,
) -> None:
    """Log queries slower than the configured threshold."""
    start_time = _query_start_times.pop(context, None)
    if start_time is None:
        return

    duration_ms = (time.perf_counter() - start_time) * 1000
    threshold_ms = get_settings().log_config.slow_query_threshold_ms
    if duration_ms < threshold_ms:
        return

    clean_statement = " ".join(statement.split())[:500]
    logger.warning(
        "Slow query detected: {}... Duration: {:.2f}ms",
        clean_statement[:100],
        duration_ms,
        query=clean_statement,
        duration_ms=round(duration_ms, 2),
        parameters=sanitize_sql_params(parameters),
        correlation_id=RequestContext.get_correlation_id(),
        threshold_ms=threshold_ms,
    )


def create_database_engine(database_url: str | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    PostgreSQL engines get the configured pool and asyncpg server settings.
    SQLite engines use the dialect's default pool.

    Args:
        database_url: Optional database URL. If not provided, uses the
                     configured database URL from settings.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    settings = get_settings()
    db_config = settings.database_config
    url = database_url or db_config.database_url

    engine_kwargs: dict[str, Any] = {
        "echo": db_config.echo,
        "pool_pre_ping": db_config.pool_pre_ping,
    }
    if not url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=db_config.pool_size,
            max_overflow=db_config.max_overflow,
            pool_timeout=db_config.pool_timeout,
            pool_recycle=POOL_RECYCLE_SECONDS,
            connect_args={
                "server_settings": {"jit": "off"},
                "command_timeout": COMMAND_TIMEOUT_SECONDS,
            },
        )

    engine = create_async_engine(url, **engine_kwargs)

    if settings.log_config.enable_sql_logging:
        event.listen(
            engine.sync_engine, "before_cursor_execute", _before_cursor_execute
        )
        event.listen(engine.sync_engine, "after_cursor_execute", _after_cursor_execute)
        logger.info("Registered slow query event listeners")

    logger.info(
        "Created database engine - dialect: {}, sql_logging: {}",
        engine.dialect.name,
        settings.log_config.enable_sql_logging,
    )

    return engine


class _DatabaseManager:
    """Holds the process-wide engine and session factory."""

    def __init__(self) -> None:
        self._engine: AsyncEngine | None = None
        self._async_session_factory: async_sessionmaker[AsyncSession] | None = None
        self._lock = threading.Lock()

    def get_engine(self) -> AsyncEngine:
        """Get or create the async engine instance."""
        if self._engine is None:
            with self._lock:
                if self._engine is None:
                    self._engine = create_database_engine()
        return self._engine

    def get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create the async session factory."""
        if self._async_session_factory is None:
            engine = self.get_engine()
            with self._lock:
                if self._async_session_factory is None:
                    self._async_session_factory = async_sessionmaker(
                        engine,
                        class_=AsyncSession,
                        expire_on_commit=False,
                    )
                    logger.info("Created async session factory")
        return self._async_session_factory

    async def close(self) -> None:
        """Close the database engine and cleanup connections."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")
        self.reset()

    def reset(self) -> None:
        """Reset the manager state. Used primarily for testing."""
        self._engine = None
        self._async_session_factory = None


_db_manager = _DatabaseManager()


def get_engine() -> AsyncEngine:
    """Get or create the global async engine instance.

    Returns:
        AsyncEngine: The global engine instance.
    """
    return _db_manager.get_engine()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the global async session factory.

    Returns:
        async_sessionmaker[AsyncSession]: The global session factory.
    """
    return _db_manager.get_session_factory()


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get an async database session with automatic cleanup.

    The session is committed on success or rolled back on error.

    Yields:
        AsyncGenerator[AsyncSession]: Database session for performing operations.

    Example:
        async with get_async_session() as session:
            document = await DocumentRepository(session).get_by_document_id("d-1")
    """
    async_session_factory = get_session_factory()
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            logger.debug("Database session rolled back due to error")
            raise


async def close_database() -> None:
    """Close the database engine and cleanup connections."""
    await _db_manager.close()


async def create_all_tables(engine: AsyncEngine | None = None) -> None:
    """Create every table that does not exist yet.

    Used when ``database_config.create_tables`` is enabled, typically with
    SQLite. Deployed PostgreSQL databases are managed by Alembic migrations.

    Args:
        engine: Engine to use, defaults to the global engine.
    """
    # Registers the tables on Base.metadata
    from src.infrastructure.database import models  # noqa: F401, PLC0415

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created", tables=sorted(Base.metadata.tables))


async def check_database_connection() -> tuple[bool, str | None]:
    """Check if database connection is available.

    Returns:
        tuple[bool, str | None]: Whether the database answered, and the error
            message if it did not.
    """
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            _ = result.scalar()
    except SQLAlchemyError as e:
        return False, str(e)
    else:
        return True, None
