"""Database initialization and session management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from napcoach.core.config import settings
from napcoach.models.base import Base

logger = structlog.get_logger()


def create_engine(url: str | None = None) -> AsyncEngine:
    """Create the async database engine.

    Args:
        url: Database URL, defaults to ``settings.database_url``

    Returns:
        Async SQLAlchemy engine
    """
    return create_async_engine(url or settings.database_url, echo=False)


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


# Global engine and session maker
engine = create_engine()
async_session_maker = create_session_maker(engine)


async def init_database(bind: AsyncEngine | None = None) -> None:
    """Create any missing tables.

    Alembic owns schema changes; this only bootstraps a fresh SQLite file so
    the server runs without a migration step.

    Args:
        bind: Engine to initialize, defaults to the global engine
    """
    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized", url=str(target.url))


@asynccontextmanager
async def get_session(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session, committing on success.

    Usage:
        async with get_session() as session:
            store = SleepStore(session, profile_id)
    """
    async with (session_maker or async_session_maker)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def close_database(bind: AsyncEngine | None = None) -> None:
    """Close database connection pool."""
    await (bind or engine).dispose()
