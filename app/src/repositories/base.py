from abc import ABC
from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

ModelType = TypeVar("ModelType")
Identifier = Union[int, str]


class BaseRepository(Generic[ModelType], ABC):
    """
    Base repository class providing common CRUD operations.
    """

    def __init__(self, db: AsyncSession, model: Type[ModelType]):
        self.db = db
        self.model = model

    @property
    def dialect_name(self) -> str:
        """Name of the bound dialect ("postgresql", "sqlite", ...)."""
        return self.db.get_bind().dialect.name

    async def get_by_id(self, id: Identifier) -> Optional[ModelType]:
        """Get a single record by ID."""
        result = await self.db.execute(select(self.model).filter(self.model.id == id))
        return result.scalar_one_or_none()

    async def create(self, obj_data: Dict[str, Any]) -> ModelType:
        """Create a new record."""
        obj = self.model(**obj_data)
        self.db.add(obj)
        await self.db.flush()
        await self.db.refresh(obj)
        return obj

    async def update(self, id: Identifier, obj_data: Dict[str, Any]) -> Optional[ModelType]:
        """Update a record by ID and return the fresh row."""
        await self.db.execute(
            update(self.model)
            .filter(self.model.id == id)
            .values(**obj_data)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(
            select(self.model)
            .filter(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count(self) -> int:
        """Count total records."""
        result = await self.db.execute(select(func.count(self.model.id)))
        return result.scalar()
