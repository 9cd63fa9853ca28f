"""Redis Stream consumer for learning events.

Reads ``{"user_id", "event_type", "payload"}`` entries from the learning
stream with XREADGROUP and applies them through the progression service.

Acknowledgement policy:
  * applied successfully: XACK.
  * rejected by the engine (invalid event, out of order, malformed account,
    unknown catalog entry) or unparseable: logged and XACKed, since retrying
    cannot change the outcome.
  * concurrency conflicts that outlive the retry budget, and unexpected
    errors (database or Redis down): left pending, so the entry is
    redelivered when the consumer restarts and drains its pending list.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lms.config import Settings, get_settings
from lms.exceptions import ConcurrencyConflictError, ProgressionError
from lms.gamification.catalog import CatalogRegistry
from lms.gamification.engine import ProgressionEngine
from lms.gamification.notifier import ProgressNotifier
from lms.gamification.retry import retry_on_conflict
from lms.gamification.service import ProgressionService
from lms.store.base import ProgressStore
from lms.store.sql import SqlProgressStore

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], AbstractAsyncContextManager[ProgressStore]]


def sql_store_factory(session_factory: async_sessionmaker[AsyncSession]) -> StoreFactory:
    """One SqlProgressStore per message, each on its own session."""

    @asynccontextmanager
    async def factory() -> AsyncIterator[ProgressStore]:
        async with session_factory() as session:
            yield SqlProgressStore(session)

    return factory


async def publish_learning_event(
    redis_client: aioredis.Redis,
    user_id: str,
    event_type: str,
    payload: dict[str, Any] | None = None,
    stream: str | None = None,
) -> str:
    """Append a learning event to the stream. Returns the entry id."""
    stream = stream or get_settings().learning_stream
    return await redis_client.xadd(
        stream,
        {
            "data": json.dumps(
                {"user_id": user_id, "event_type": event_type, "payload": payload or {}},
                default=str,
            )
        },
        maxlen=100_000,
        approximate=True,
    )


class LearningEventConsumer:
    """Applies learning events from a Redis Stream to progress accounts."""

    def __init__(
        self,
        redis_client: aioredis.Redis,
        store_factory: StoreFactory,
        catalog_registry: CatalogRegistry,
        settings: Settings | None = None,
    ) -> None:
        self.redis = redis_client
        self.store_factory = store_factory
        self.catalog_registry = catalog_registry
        self.settings = settings or get_settings()
        self.stream = self.settings.learning_stream
        self.group = self.settings.consumer_group
        self.consumer_name = self.settings.consumer_name
        self._running = False
        self._processed = 0
        self._rejected = 0
        self._errors = 0

    async def setup_groups(self) -> None:
        """Create the consumer group (idempotent)."""
        try:
            await self.redis.xgroup_create(self.stream, self.group, id="0", mkstream=True)
            logger.info("Created consumer group %s for %s", self.group, self.stream)
        except aioredis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    @staticmethod
    def _parse_data(data: dict[str, str]) -> dict[str, Any] | None:
        raw = data.get("data")
        if raw is None:
            return None
        try:
            parsed = json.loads(raw) if isinstance(raw, str) else dict(raw)
        except (json.JSONDecodeError, TypeError, ValueError):
            return None
        if not isinstance(parsed, dict) or not parsed.get("user_id") or not parsed.get("event_type"):
            return None
        return parsed

    async def handle(self, event: dict[str, Any]) -> None:
        """Apply one parsed event, retrying concurrency conflicts."""
        engine = ProgressionEngine(
            self.catalog_registry.get(),
            max_level_ups=self.settings.max_level_ups_per_grant,
        )
        notifier = ProgressNotifier(self.redis)

        async def attempt() -> None:
            async with self.store_factory() as store:
                service = ProgressionService(
                    store, engine, notifier, timezone=self.settings.timezone
                )
                await service.handle_event(
                    str(event["user_id"]), event["event_type"], event.get("payload") or {}
                )

        await retry_on_conflict(attempt, attempts=self.settings.conflict_retry_attempts)

    async def process_message(self, msg_id: str, data: dict[str, str]) -> bool:
        """Process one stream entry. Returns True if it was acknowledged."""
        event = self._parse_data(data)
        if event is None:
            logger.warning("Dropping unparseable learning event %s: %r", msg_id, data)
            await self.redis.xack(self.stream, self.group, msg_id)
            self._rejected += 1
            return True

        try:
            await self.handle(event)
        except ConcurrencyConflictError:
            self._errors += 1
            logger.warning(
                "Learning event %s for user %s still conflicting after retries; left pending",
                msg_id, event["user_id"],
            )
            return False
        except ProgressionError as e:
            self._rejected += 1
            log = logger.error if e.status_code >= 500 else logger.warning
            log(
                "Rejected learning event %s (%s) for user %s: %s",
                msg_id, e.error_code, event["user_id"], e.detail,
            )
        except Exception:
            self._errors += 1
            logger.exception("Error handling learning event %s; left pending", msg_id)
            return False
        else:
            self._processed += 1

        await self.redis.xack(self.stream, self.group, msg_id)
        return True

    async def consume(self, count: int | None = None, block_ms: int | None = None, pending: bool = False) -> int:
        """Read and process one batch. Returns the number of entries acknowledged.

        With ``pending=True`` this consumer's unacknowledged entries are
        re-read instead of new ones.
        """
        try:
            events = await self.redis.xreadgroup(
                groupname=self.group,
                consumername=self.consumer_name,
                streams={self.stream: "0" if pending else ">"},
                count=count or self.settings.consumer_batch_size,
                block=None if pending else (block_ms if block_ms is not None else self.settings.consumer_block_ms),
            )
        except aioredis.ResponseError as e:
            logger.error("XREADGROUP error: %s", e)
            return 0

        if not events:
            return 0

        acked = 0
        for _stream_name, messages in events:
            for msg_id, data in messages:
                if await self.process_message(msg_id, data):
                    acked += 1
        return acked

    async def run(self) -> None:
        """Main consumer loop — drains pending entries once, then runs until stopped."""
        await self.setup_groups()
        self._running = True
        logger.info("Learning event consumer started (consumer=%s)", self.consumer_name)

        redelivered = await self.consume(pending=True)
        if redelivered:
            logger.info("Reprocessed %d pending learning events", redelivered)

        while self._running:
            try:
                await self.consume()
            except Exception:
                logger.exception("Consumer loop error")
                await asyncio.sleep(1)

    def stop(self) -> None:
        """Signal the consumer to stop."""
        self._running = False
