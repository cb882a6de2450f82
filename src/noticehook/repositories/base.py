"""Base repository with common CRUD operations."""

from typing import Any, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from noticehook.db.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository:
    """Generic async repository for SQLAlchemy models."""

    def __init__(self, session: AsyncSession, model_class: type[T]):
        self.session = session
        self.model_class = model_class

    async def create(self, **kwargs: Any) -> T:
        """Create and persist a new record."""
        row = self.model_class(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def delete_by_id(self, pk_field: str, pk_value: str) -> bool:
        """Delete a record by primary key. Returns False if nothing matched."""
        stmt = delete(self.model_class).where(
            getattr(self.model_class, pk_field) == pk_value
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def list_ordered(self, order_field: str) -> list[T]:
        """List every record ordered by a field."""
        stmt = select(self.model_class).order_by(getattr(self.model_class, order_field))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
