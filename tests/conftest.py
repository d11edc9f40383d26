"""Shared test fixtures."""

from collections.abc import AsyncIterator
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from napcoach.core.timeutil import FixedClock
from napcoach.models.base import Base
from napcoach.schemas.domain import BabyProfile


@pytest.fixture
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncIterator[AsyncSession]:
    """Create async session for testing."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to 2024-07-10 12:00 UTC."""
    return FixedClock("2024-07-10T12:00:00+00:00", "UTC")


@pytest.fixture
def profile() -> BabyProfile:
    """A six-month-old (4-6m bucket) on 2024-07-10."""
    return BabyProfile(id="baby-1", name="Robin", birth_date=date(2024, 1, 1))


@pytest.fixture
def older_profile() -> BabyProfile:
    """A seven-month-old (7-9m bucket) on 2024-07-10."""
    return BabyProfile(id="baby-2", name="Sam", birth_date=date(2023, 12, 1))
