"""
Smolgen Database Connection Manager
Async database connections for PostgreSQL and Redis
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import redis.asyncio as redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.orm import declarative_base

from ..core.config import get_settings
from ..core.logging import workflow_logger

settings = get_settings()

# SQLAlchemy base for models
Base = declarative_base()


class DatabaseManager:
    """
    Owns the PostgreSQL engine and the Redis pool of one worker process.

    ``initialize()`` only builds the pools; callers confirm reachability
    with ``check_health()`` before running workflows.
    """

    def __init__(self, database_url: Optional[str] = None, redis_url: Optional[str] = None):
        self.database_url = database_url or settings.DATABASE_URL
        self.redis_url = redis_url or settings.REDIS_URL
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._redis_pool: Optional[redis.ConnectionPool] = None
        self._redis: Optional[redis.Redis] = None

    async def initialize(self) -> None:
        """Create the SQL engine, session factory and Redis client"""
        self._init_postgres()
        self._init_redis()

    def _init_postgres(self) -> None:
        self._engine = create_async_engine(
            self.database_url,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            echo=settings.is_development,
            pool_pre_ping=True,
        )
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    def _init_redis(self) -> None:
        self._redis_pool = redis.ConnectionPool.from_url(
            self.redis_url,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            retry_on_timeout=True
        )
        self._redis = redis.Redis(connection_pool=self._redis_pool)

    async def create_tables(self) -> None:
        """Create all tables known to the ORM metadata"""
        if not self._engine:
            raise RuntimeError("Database not initialized")

        # Register models on the metadata
        from . import models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose the engine and disconnect the Redis pool"""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

        if self._redis_pool:
            await self._redis_pool.disconnect()
            self._redis_pool = None
            self._redis = None

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session"""
        if not self._session_factory:
            raise RuntimeError("Database not initialized")

        async with self._session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    def get_redis(self) -> redis.Redis:
        """Get Redis client"""
        if not self._redis:
            raise RuntimeError("Redis not initialized")
        return self._redis

    async def check_health(self) -> bool:
        """True when both PostgreSQL and Redis answer"""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            workflow_logger.logger.error("PostgreSQL health check failed", error=str(e))
            return False

        try:
            await self.get_redis().ping()
        except Exception as e:
            workflow_logger.logger.error("Redis health check failed", error=str(e))
            return False

        return True


# Global database manager instance
database_manager = DatabaseManager()
