"""
Smolgen Database Module
Exports database models, connection management and the workflow stores
"""

from .connection import Base, DatabaseManager, database_manager
from .models import Smol, Playlist
from .step_store import RedisStepStore
from .artifact_store import RedisArtifactStore

__all__ = [
    "Base",
    "DatabaseManager",
    "database_manager",
    "Smol",
    "Playlist",
    "RedisStepStore",
    "RedisArtifactStore"
]
