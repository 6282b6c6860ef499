"""
Base Repository
Common CRUD operations keyed by string ids
"""

from typing import Generic, TypeVar, Type, Optional
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import Base

# Type variables for generic repository
ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType")


class RepositoryError(Exception):
    """Base repository error"""
    pass


class BaseRepository(Generic[ModelType, CreateSchemaType]):
    """Base repository with common read and delete operations"""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def get(self, id: str) -> Optional[ModelType]:
        """Get entity by ID"""
        try:
            result = await self.session.execute(
                select(self.model).where(self.model.id == id)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            raise RepositoryError(f"Error getting entity: {str(e)}")

    async def exists(self, id: str) -> bool:
        """Check if entity exists"""
        try:
            result = await self.session.execute(
                select(func.count()).select_from(self.model).where(self.model.id == id)
            )
            return result.scalar() > 0
        except Exception as e:
            raise RepositoryError(f"Error checking entity existence: {str(e)}")

    async def delete(self, id: str) -> int:
        """Delete every row with this ID; absent rows are not an error"""
        try:
            result = await self.session.execute(
                delete(self.model).where(self.model.id == id)
            )
            await self.session.flush()
            return result.rowcount or 0
        except Exception as e:
            await self.session.rollback()
            raise RepositoryError(f"Error deleting entity: {str(e)}")
