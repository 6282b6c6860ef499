"""
Smolgen Repository Layer
Data access layer with async operations
"""

from .base import BaseRepository, RepositoryError
from .smol_repository import SmolRepository, SmolRecordStore

__all__ = [
    "BaseRepository",
    "RepositoryError",
    "SmolRepository",
    "SmolRecordStore"
]
