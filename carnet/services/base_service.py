# carnet/services/base_service.py
"""Base service with common read helpers."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Type, List, TypeVar, Generic

# Define generic type
T = TypeVar('T')

class BaseService(Generic[T]):
    def __init__(self, model: Type[T], db: AsyncSession):
        self.model = model
        self.db = db

    def _active(self, stmt):
        # Add soft delete filter if model has is_deleted field
        if hasattr(self.model, 'is_deleted'):
            stmt = stmt.where(self.model.is_deleted == False)
        return stmt

    async def get_multi(self, order_by: str = None, **filters) -> List[T]:
        stmt = self._active(select(self.model))

        # Add additional filters
        for key, value in filters.items():
            if hasattr(self.model, key) and value is not None:
                stmt = stmt.where(getattr(self.model, key) == value)

        if order_by and hasattr(self.model, order_by):
            stmt = stmt.order_by(getattr(self.model, order_by).asc())

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

