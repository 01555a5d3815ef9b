"""
Database Engine and Sessions
============================

One async engine (asyncpg) per process, created at application startup.
Entity writes of an upload go through ``get_session()``: the session
commits when the block exits cleanly and rolls back when it raises, so a
kind of entities is either committed together or not at all (savepoints
inside the block isolate single rows).
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from setup_assistant.config.settings import Settings, get_settings
from setup_assistant.utils.errors import DatabaseError
from setup_assistant.utils.logger import get_logger

logger = get_logger(__name__)

APPLICATION_NAME = "setup-assistant"


class DatabaseManager:
    """
    Owns the engine and the session factory.

    Usage:
        manager = DatabaseManager.from_settings(settings)
        async with manager.session() as session:
            await session.execute(...)
        await manager.dispose()
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DatabaseManager":
        engine = create_async_engine(
            settings.database_url,
            pool_size=settings.db_pool_min,
            max_overflow=max(settings.db_pool_max - settings.db_pool_min, 0),
            pool_pre_ping=True,
            # asyncpg: label connections and bound each statement by the upload deadline
            connect_args={
                "server_settings": {"application_name": APPLICATION_NAME},
                "command_timeout": settings.request_deadline_seconds,
            },
        )
        return cls(engine)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    async def ping(self) -> float:
        """Round trip of ``SELECT 1`` in milliseconds."""
        start = time.perf_counter()
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return round((time.perf_counter() - start) * 1000, 2)

    async def dispose(self) -> None:
        await self.engine.dispose()


_manager: DatabaseManager | None = None


async def init_database(settings: Settings | None = None) -> DatabaseManager:
    """
    Create the engine and check that the database answers.

    Raises:
        DatabaseError: If the database cannot be reached
    """
    global _manager
    if _manager is not None:
        return _manager

    settings = settings or get_settings()
    manager = DatabaseManager.from_settings(settings)
    try:
        latency_ms = await manager.ping()
    except (SQLAlchemyError, OSError) as e:
        await manager.dispose()
        raise DatabaseError(
            message="Database initialization failed",
            details={"error": str(e)},
        ) from e

    logger.info(
        "database.initialized",
        pool_min=settings.db_pool_min,
        pool_max=settings.db_pool_max,
        latency_ms=latency_ms,
    )
    _manager = manager
    return manager


async def close_database() -> None:
    global _manager
    if _manager is None:
        return
    manager, _manager = _manager, None
    try:
        await manager.dispose()
    except SQLAlchemyError as e:
        raise DatabaseError(message="Failed to close database connection", details={"error": str(e)}) from e


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Session of the process-wide engine.

    Raises:
        DatabaseError: If ``init_database()`` has not run
    """
    if _manager is None:
        raise DatabaseError(
            message="Database not initialized",
            details={"hint": "init_database() runs in the application lifespan"},
        )
    async with _manager.session() as session:
        yield session


async def health_check() -> dict[str, Any]:
    """Status of the database for GET /health."""
    if _manager is None:
        return {"status": "not_initialized"}
    try:
        latency_ms = await _manager.ping()
    except (SQLAlchemyError, OSError) as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "latency_ms": latency_ms}
