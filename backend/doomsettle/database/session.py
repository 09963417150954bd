"""
Database engine and session management.

A `Database` value owns one async engine and its session factory. It is built
once per process (API lifespan or worker init) and passed to whatever needs it.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from doomsettle.config import DatabaseConfig
from doomsettle.database.base import Base

logger = logging.getLogger(__name__)


class Database:
    """Async engine plus session factory for the settlement store."""

    def __init__(self, config: DatabaseConfig, pooled: bool = True):
        self.config = config
        self.engine: AsyncEngine = self._create_engine(config, pooled)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )

    @staticmethod
    def _create_engine(config: DatabaseConfig, pooled: bool) -> AsyncEngine:
        if config.url.startswith("sqlite"):
            # In-memory SQLite must share a single connection
            return create_async_engine(
                config.url,
                echo=config.echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )

        if not pooled:
            # Celery tasks run each job in a fresh event loop; pooled
            # asyncpg connections cannot cross loops.
            return create_async_engine(config.url, echo=config.echo, poolclass=NullPool)

        return create_async_engine(
            config.url,
            echo=config.echo,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_pre_ping=True,
            pool_recycle=config.pool_recycle,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Async context manager for database sessions.

        Usage:
            async with database.session() as db:
                result = await db.execute(select(Event))
                await db.commit()

        Rolls back on error and always closes the session.
        """
        session = self.session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create all tables (development and tests)."""
        # Import models so every table is registered on the metadata
        import doomsettle.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def check_connection(self) -> bool:
        """Check if the database answers a trivial query."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()
