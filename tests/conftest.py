"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from lms.database import get_session
from lms.db import models  # noqa: F401
from lms.db.base import Base
from lms.dependencies import catalog_registry, get_notifier, get_store
from lms.gamification.account import ProgressAccount
from lms.gamification.catalog import AchievementCatalog
from lms.gamification.engine import ProgressionEngine
from lms.gamification.notifier import ProgressNotifier
from lms.gamification.seed import default_catalog
from lms.main import create_app
from lms.roadmap.models import RoadmapLevel
from lms.store.memory import InMemoryProgressStore, MemoryBackend

COURSE_ID = "python-101"


class FakeClock:
    """Callable clock pinned to a moment; tests move it forward explicitly."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def catalog() -> AchievementCatalog:
    return default_catalog()


@pytest.fixture
def engine(catalog: AchievementCatalog, clock: FakeClock) -> ProgressionEngine:
    return ProgressionEngine(catalog, clock=clock)


@pytest.fixture
def account(clock: FakeClock) -> ProgressAccount:
    return ProgressAccount.new("user-1", clock().date())


def make_levels(course_id: str = COURSE_ID) -> list[RoadmapLevel]:
    """Three-level roadmap: free intro, gated basics, gated capstone with a badge."""
    return [
        RoadmapLevel.from_dict({
            "id": "lvl-1",
            "course_id": course_id,
            "level_number": 1,
            "title": "Introduction",
            "rewards": {"xp": 100, "cups": 5},
            "lessons": [
                {"lesson_id": "l-1", "order": 1},
                {"lesson_id": "l-2", "order": 2},
                {"lesson_id": "l-3", "order": 3},
            ],
        }),
        RoadmapLevel.from_dict({
            "id": "lvl-2",
            "course_id": course_id,
            "level_number": 2,
            "title": "Basics",
            "difficulty": "intermediate",
            "unlock_requirements": {"previous_level_id": "lvl-1", "min_xp": 100},
            "rewards": {"xp": 150, "cups": 10},
        }),
        RoadmapLevel.from_dict({
            "id": "lvl-3",
            "course_id": course_id,
            "level_number": 3,
            "title": "Capstone",
            "difficulty": "advanced",
            "unlock_requirements": {
                "previous_level_id": "lvl-2",
                "min_cups": 10,
                "required_achievement_codes": ["first_roadmap_level"],
            },
            "rewards": {"xp": 300, "cups": 20, "badge_achievement_code": "first_course"},
        }),
    ]


@pytest.fixture
def roadmap_levels() -> list[RoadmapLevel]:
    return make_levels()


@pytest.fixture
def backend(roadmap_levels: list[RoadmapLevel]) -> MemoryBackend:
    """Committed in-memory state with the test course already defined."""
    b = MemoryBackend()
    for level in roadmap_levels:
        b.roadmap_levels[level.id] = level
    return b


@pytest.fixture
def memory_store(backend: MemoryBackend) -> InMemoryProgressStore:
    return InMemoryProgressStore(backend)


@pytest.fixture
def fake_redis() -> AsyncMock:
    """Stand-in for redis.asyncio.Redis; records publish/xadd/xack calls."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest_asyncio.fixture
async def sql_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine so separate sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'lms-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sql_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(sql_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(
    backend: MemoryBackend,
    fake_redis: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with in-memory storage and a fake Redis.

    Each request gets its own unit of work over the shared backend, the way
    each request gets its own database session in production.
    """
    app = create_app()
    catalog_registry.replace(default_catalog())

    async def _store() -> AsyncGenerator[InMemoryProgressStore, None]:
        yield InMemoryProgressStore(backend)

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_store] = _store
    app.dependency_overrides[get_notifier] = lambda: ProgressNotifier(fake_redis)
    app.dependency_overrides[get_session] = _session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
