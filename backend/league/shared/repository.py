"""
Base repository with common async CRUD operations.

Feature repositories subclass this and add their own queries. The
repository never commits: the caller owns the transaction, so several
repository calls can form one unit of work.

Usage:
    class SegmentRepository(BaseRepository[Segment]):
        def __init__(self, db: AsyncSession):
            super().__init__(db, Segment)
"""

from typing import Any, Generic, Type, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class PersistenceError(Exception):
    """A unit of work against the database failed."""
    pass


class BaseRepository(Generic[T]):
    """Generic data access for one model class."""

    def __init__(self, db: AsyncSession, model: Type[T]):
        self.db = db
        self.model = model

    def _filtered(self, query, filters: dict[str, Any]):
        for key, value in filters.items():
            query = query.where(getattr(self.model, key) == value)
        return query

    async def get_by_id(self, id: int) -> T | None:
        """Get entity by primary key, or None."""
        return await self.db.get(self.model, id)

    async def get_by(self, **kwargs) -> T | None:
        """
        Get single entity by field values.

        Args:
            **kwargs: Field name-value pairs to filter by

        Returns:
            Matching entity or None
        """
        result = await self.db.execute(self._filtered(select(self.model), kwargs))
        return result.scalars().first()

    async def list_by(self, *order_by, **kwargs) -> list[T]:
        """
        List entities matching field values.

        Args:
            *order_by: Optional ORDER BY expressions
            **kwargs: Field name-value pairs to filter by

        Returns:
            Matching entities
        """
        query = self._filtered(select(self.model), kwargs)
        if order_by:
            query = query.order_by(*order_by)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create(self, **kwargs) -> T:
        """Add a new entity and flush so its generated ID is populated."""
        entity = self.model(**kwargs)
        self.db.add(entity)
        await self.db.flush()
        return entity

    async def update(self, entity: T, **kwargs) -> T:
        """Set fields on entity and flush."""
        for key, value in kwargs.items():
            setattr(entity, key, value)
        await self.db.flush()
        return entity

    async def delete(self, entity: T) -> None:
        """Delete entity (ORM cascades apply)."""
        await self.db.delete(entity)
        await self.db.flush()

    async def delete_by(self, **kwargs) -> int:
        """
        Bulk delete rows matching field values.

        Returns:
            Number of deleted rows
        """
        result = await self.db.execute(self._filtered(delete(self.model), kwargs))
        return result.rowcount or 0

    async def count(self, **kwargs) -> int:
        """Count entities matching field values."""
        query = self._filtered(select(func.count()).select_from(self.model), kwargs)
        result = await self.db.execute(query)
        return result.scalar() or 0
