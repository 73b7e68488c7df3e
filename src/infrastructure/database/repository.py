"""Base repository pattern implementation for database operations.

This module provides a generic repository base class that implements
the operations shared by every table of the validation subsystem.
"""

from collections.abc import Sequence

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.base import BaseModel


class BaseRepository[T: BaseModel]:
    """Base repository class providing common operations.

    Args:
        session: The async SQLAlchemy session to use for operations.
        model_class: The SQLAlchemy model class this repository manages.

    Example:
        class DocumentRepository(BaseRepository[ProcessedDocument]):
            def __init__(self, session: AsyncSession) -> None:
                super().__init__(session, ProcessedDocument)
    """

    def __init__(self, session: AsyncSession, model_class: type[T]) -> None:
        self.session = session
        self.model_class = model_class

    async def get_by_id(self, entity_id: int) -> T | None:
        """Retrieve a model instance by its primary key.

        Args:
            entity_id: The primary key ID of the model to retrieve.

        Returns:
            T | None: The model instance if found, None otherwise.
        """
        logger.debug("Fetching {} by ID: {}", self.model_class.__name__, entity_id)
        return await self.session.get(self.model_class, entity_id)

    async def create(self, obj: T) -> T:
        """Insert a new model instance.

        Args:
            obj: The model instance to create.

        Returns:
            T: The created model instance with populated ID and timestamps.
        """
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)

        logger.debug(
            "Created {} instance with ID: {}", self.model_class.__name__, obj.id
        )
        return obj

    async def add_all(self, objs: Sequence[T]) -> list[T]:
        """Insert several model instances in one flush.

        Args:
            objs: The model instances to create.

        Returns:
            list[T]: The created instances with populated IDs.
        """
        self.session.add_all(objs)
        await self.session.flush()

        logger.debug("Created {} {} instances", len(objs), self.model_class.__name__)
        return list(objs)

    async def count(self) -> int:
        """Count all instances of the model.

        Returns:
            int: The total number of instances.
        """
        stmt = select(func.count()).select_from(self.model_class)
        result = await self.session.execute(stmt)
        return result.scalar() or 0
