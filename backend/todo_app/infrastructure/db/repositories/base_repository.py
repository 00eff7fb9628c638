"""
Base Repository for Todo Premium

Generic async repository implementing CRUD operations over a session
owned by the caller (one session per request).
"""

from typing import TypeVar, Generic, List, Optional, Type
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


# Type variables for generic repository
ModelType = TypeVar("ModelType", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=SQLModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=SQLModel)


class BaseRepository(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """
    Generic async repository with CRUD operations.

    Args:
        model: The SQLModel class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        """
        Get a single record by its primary key.

        Args:
            id: UUID primary key

        Returns:
            Model instance or None if not found
        """
        return await self._session.get(self._model, id)

    async def create(self, data: CreateSchemaType, **extra) -> ModelType:
        """
        Create a new record.

        Args:
            data: Create schema with field values
            extra: Additional column values not carried by the schema

        Returns:
            Created model instance
        """
        db_obj = self._model(**data.model_dump(), **extra)
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def update(
        self,
        db_obj: ModelType,
        data: UpdateSchemaType
    ) -> ModelType:
        """
        Apply the explicitly set fields of ``data`` to ``db_obj``.

        Args:
            db_obj: Loaded model instance
            data: Update schema with fields to modify

        Returns:
            Updated model instance
        """
        update_data = data.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            setattr(db_obj, field, value)

        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def delete(self, db_obj: ModelType) -> None:
        """Delete a loaded record."""
        await self._session.delete(db_obj)
        await self._session.flush()

    async def count_where(self, *criteria) -> int:
        """Count records matching the given criteria."""
        stmt = select(func.count()).select_from(self._model).where(*criteria)
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def list_where(self, *criteria, order_by=None) -> List[ModelType]:
        """List records matching the given criteria."""
        stmt = select(self._model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
