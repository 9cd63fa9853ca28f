"""arq worker settings for the learning event consumer.

Import path for arq CLI: arq lms.workers.settings.WorkerSettings
"""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lms.config import get_settings
from lms.database import close_db, get_engine, init_db
from lms.gamification.catalog import CatalogRegistry
from lms.gamification.seed import default_catalog
from lms.middleware.logging import setup_logging
from lms.store.sql import SqlProgressStore
from lms.workers.learning_consumer import LearningEventConsumer, sql_store_factory

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB, Redis, the achievement catalog and the consumer."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)

    session_factory = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        catalog = await SqlProgressStore(session).load_achievement_catalog()
    if not len(catalog):
        logger.warning("Achievement catalog is empty; using the default catalog")
        catalog = default_catalog()

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    consumer = LearningEventConsumer(
        redis_client=redis_client,
        store_factory=sql_store_factory(session_factory),
        catalog_registry=CatalogRegistry(catalog),
        settings=settings,
    )
    await consumer.setup_groups()

    ctx["redis"] = redis_client
    ctx["consumer"] = consumer
    ctx["consumer_task"] = asyncio.create_task(consumer.run())
    logger.info("Learning worker started (consumer=%s)", settings.consumer_name)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    consumer: LearningEventConsumer | None = ctx.get("consumer")
    if consumer:
        consumer.stop()
    task: asyncio.Task[None] | None = ctx.get("consumer_task")
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Learning worker shut down")


async def reprocess_pending(ctx: dict) -> int:  # type: ignore[type-arg]
    """On-demand task: re-read and apply this consumer's unacknowledged entries."""
    consumer: LearningEventConsumer = ctx["consumer"]
    count = await consumer.consume(pending=True)
    logger.info("Reprocessed %d pending learning events", count)
    return count


class WorkerSettings:
    """arq worker settings for the learning event consumer."""

    functions = [reprocess_pending]
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 1
    allow_abort_jobs = True
