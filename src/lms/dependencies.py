"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms.config import get_settings
from lms.database import get_session as _get_session
from lms.gamification.catalog import CatalogRegistry
from lms.gamification.engine import ProgressionEngine
from lms.gamification.notifier import ProgressNotifier
from lms.gamification.service import ProgressionService
from lms.redis_client import get_redis_or_none
from lms.roadmap.service import RoadmapService
from lms.store.base import ProgressStore
from lms.store.sql import SqlProgressStore

get_db = _get_session

# Loaded from the store on startup; replaced wholesale when definitions change.
catalog_registry = CatalogRegistry()


def get_catalog_registry() -> CatalogRegistry:
    return catalog_registry


async def get_store(db: AsyncSession = Depends(get_db)) -> AsyncGenerator[ProgressStore, None]:
    """Yield a SQL-backed progress store bound to the request session."""
    yield SqlProgressStore(db)


def get_notifier() -> ProgressNotifier:
    return ProgressNotifier(get_redis_or_none())


def get_progression_engine() -> ProgressionEngine:
    settings = get_settings()
    return ProgressionEngine(
        catalog_registry.get(),
        max_level_ups=settings.max_level_ups_per_grant,
    )


def get_progression_service(
    store: ProgressStore = Depends(get_store),
    engine: ProgressionEngine = Depends(get_progression_engine),
    notifier: ProgressNotifier = Depends(get_notifier),
) -> ProgressionService:
    return ProgressionService(store, engine, notifier, timezone=get_settings().timezone)


def get_roadmap_service(
    store: ProgressStore = Depends(get_store),
    engine: ProgressionEngine = Depends(get_progression_engine),
    notifier: ProgressNotifier = Depends(get_notifier),
) -> RoadmapService:
    return RoadmapService(store, engine, notifier, timezone=get_settings().timezone)
