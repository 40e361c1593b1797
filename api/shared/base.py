"""Base repository with the common operations shared by feature repositories."""
from abc import ABC
from typing import Generic, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from api.shared.entities.base import BaseEntity

T = TypeVar("T", bound=BaseEntity)


class BaseRepository(ABC, Generic[T]):
    """Base repository operating inside a caller-owned session."""

    model: Type[T]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, entity: T) -> T:
        """Create new entity."""
        self.session.add(entity)
        await self.session.flush()
        return entity
