"""Database layer of the validation subsystem.

SQLAlchemy 2.0 async models and repositories for processed documents,
validation results, the retry queue, the persistent cache tier and the
connectivity log. PostgreSQL (asyncpg) in deployments, SQLite (aiosqlite)
for local runs and tests.
"""

from src.infrastructure.database.base import Base, BaseModel
from src.infrastructure.database.dependencies import DatabaseSession, get_db
from src.infrastructure.database.repository import BaseRepository
from src.infrastructure.database.session import (
    close_database,
    create_all_tables,
    create_database_engine,
    get_async_session,
    get_engine,
    get_session_factory,
)

__all__ = [
    "Base",
    "BaseModel",
    "BaseRepository",
    "DatabaseSession",
    "close_database",
    "create_all_tables",
    "create_database_engine",
    "get_async_session",
    "get_db",
    "get_engine",
    "get_session_factory",
]
