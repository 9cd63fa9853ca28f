"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lms.config import get_settings
from lms.database import close_db, get_session, init_db
from lms.dependencies import catalog_registry
from lms.gamification.router import router as progression_router
from lms.gamification.seed import default_catalog, seed_achievements
from lms.health.router import router as health_router
from lms.middleware import setup_middleware
from lms.redis_client import close_redis, init_redis
from lms.roadmap.router import router as roadmap_router
from lms.store.sql import SqlProgressStore

logger = logging.getLogger(__name__)


async def load_catalog(seed: bool) -> None:
    """Seed (optionally) and load the achievement catalog into the registry."""
    try:
        async for db in get_session():
            store = SqlProgressStore(db)
            if seed:
                await seed_achievements(store)
            catalog = await store.load_achievement_catalog()
            break
    except Exception:
        logger.warning("Achievement catalog load failed (tables may not exist yet)", exc_info=True)
        catalog = default_catalog()

    if not len(catalog):
        catalog = default_catalog()
    catalog_registry.replace(catalog)
    logger.info("Loaded %d achievement definitions", len(catalog))


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    await load_catalog(seed=settings.seed_catalog_on_startup)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="LMS Progression API",
        description="XP, levels, streaks, achievements and course roadmaps for the learning platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progression_router)
    app.include_router(roadmap_router)

    return app


app = create_app()
