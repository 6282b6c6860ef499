"""
Smol Repository
Insert-if-absent persistence of completed generations and playlist membership
"""

from contextlib import AbstractAsyncContextManager
from typing import Callable, Optional

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Smol, Playlist
from ..schemas import SmolCreate, PlaylistEntry
from .base import BaseRepository
from ...core.errors import StoreError
from ...core.logging import workflow_logger
from ...core.result import Result

SessionFactory = Callable[[], AbstractAsyncContextManager]


class SmolRepository(BaseRepository[Smol, SmolCreate]):
    """Repository for smol rows"""

    def __init__(self, session: AsyncSession):
        super().__init__(Smol, session)

    async def insert_if_absent(self, smol: SmolCreate) -> Result[bool]:
        """Insert the row unless its id exists; data is True when a row was written"""
        try:
            stmt = (
                insert(Smol)
                .values(**smol.model_dump())
                .on_conflict_do_nothing(index_elements=[Smol.id])
            )
            result = await self.session.execute(stmt)
            await self.session.commit()
            return Result.ok(bool(result.rowcount))

        except Exception as e:
            await self.session.rollback()
            return Result.err(f"Failed to insert smol {smol.id}: {str(e)}")

    async def delete_smol(self, smol_id: str) -> Result[int]:
        """Delete a smol row if present"""
        try:
            deleted = await self.delete(smol_id)
            await self.session.commit()
            return Result.ok(deleted)

        except Exception as e:
            await self.session.rollback()
            return Result.err(f"Failed to delete smol {smol_id}: {str(e)}")

    async def add_to_playlist(self, entry: PlaylistEntry) -> Result[bool]:
        """Insert a playlist membership unless the pair already exists"""
        try:
            stmt = (
                insert(Playlist)
                .values(id=entry.id, title=entry.title)
                .on_conflict_do_nothing(constraint="uq_playlists_id_title")
            )
            result = await self.session.execute(stmt)
            await self.session.commit()
            return Result.ok(bool(result.rowcount))

        except Exception as e:
            await self.session.rollback()
            return Result.err(f"Failed to add {entry.id} to playlist {entry.title}: {str(e)}")


class SmolRecordStore:
    """Session-per-call facade used by the workflow; raises StoreError on failure"""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def _run(self, operation: Callable[[SmolRepository], object]):
        async with self._session_factory() as session:
            result = await operation(SmolRepository(session))

        if result.is_err():
            workflow_logger.logger.error("Smol store operation failed", error=result.error)
            raise StoreError(result.error)
        return result.data

    async def insert_if_absent(self, smol: SmolCreate) -> bool:
        return await self._run(lambda repo: repo.insert_if_absent(smol))

    async def delete(self, smol_id: str) -> int:
        return await self._run(lambda repo: repo.delete_smol(smol_id))

    async def add_to_playlist(self, smol_id: str, title: str) -> bool:
        entry = PlaylistEntry(id=smol_id, title=title)
        return await self._run(lambda repo: repo.add_to_playlist(entry))

    async def get(self, smol_id: str) -> Optional[Smol]:
        async with self._session_factory() as session:
            return await SmolRepository(session).get(smol_id)
