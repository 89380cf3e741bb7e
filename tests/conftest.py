"""
Pytest fixtures for mastery and quota tests.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from professorprep.engines.mastery.types import LearningObjective
from professorprep.kernel.models import Base


COURSE_ID = "course-bio-101"


class FakeClock:
    """Manually advanced clock (seconds) for rate limiter tests."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDateTimeClock:
    """Deterministic datetime source for tracker timestamps."""

    def __init__(self):
        self.now = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(minutes=1)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def datetime_clock() -> FakeDateTimeClock:
    return FakeDateTimeClock()


@pytest.fixture
def course_objectives() -> List[LearningObjective]:
    """Three objectives A, B, C in course order 1, 2, 3."""
    return [
        LearningObjective(id="obj-a", course_id=COURSE_ID, module_id="mod-1",
                          course_structure_order=1, text="Describe the cell membrane"),
        LearningObjective(id="obj-b", course_id=COURSE_ID, module_id="mod-1",
                          course_structure_order=2, text="Explain osmosis"),
        LearningObjective(id="obj-c", course_id=COURSE_ID, module_id="mod-2",
                          course_structure_order=3, text="Compare active and passive transport"),
    ]


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Temp-file SQLite engine so separate sessions share one database."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 10},
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()
    os.unlink(path)


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()
