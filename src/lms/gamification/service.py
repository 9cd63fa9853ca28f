"""Progression service — load, apply, save, notify.

One call is one unit of work: the account is read, the engine computes the
new state, the store saves it under the version it was read at, and only a
successful commit publishes notifications. Any failure rolls the store back
and propagates; conflicts are retried by the caller via retry_on_conflict.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from lms.gamification.account import ProgressAccount, ProgressEvent
from lms.gamification.catalog import AchievementDefinition, CatalogRegistry
from lms.gamification.engine import ProgressionEngine, utc_now
from lms.gamification.notifier import ProgressNotifier
from lms.store.base import ProgressStore

logger = logging.getLogger(__name__)


@dataclass
class ProgressResult:
    account: ProgressAccount
    events: list[ProgressEvent] = field(default_factory=list)


def local_today(clock: Callable[[], datetime], tz_name: str) -> date:
    return clock().astimezone(ZoneInfo(tz_name)).date()


class ProgressionService:
    def __init__(
        self,
        store: ProgressStore,
        engine: ProgressionEngine,
        notifier: ProgressNotifier | None = None,
        timezone: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.engine = engine
        self.notifier = notifier or ProgressNotifier(None)
        self.timezone = timezone
        self._clock = clock

    def today(self) -> date:
        return local_today(self._clock, self.timezone)

    async def _load_or_new(self, user_id: str) -> ProgressAccount:
        account = await self.store.load_account(user_id)
        if account is None:
            account = ProgressAccount.new(user_id, self.today())
        return account

    async def _save(self, account: ProgressAccount, expected_version: int) -> None:
        try:
            await self.store.save_account(account, expected_version)
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

    async def handle_event(
        self, user_id: str, event_type: str, payload: dict[str, Any] | None = None
    ) -> ProgressResult:
        """Apply one inbound learning event and persist the result."""
        try:
            account = await self._load_or_new(user_id)
            expected_version = account.version
            updated, events = self.engine.apply_event(
                account, event_type, payload, today=self.today()
            )
        except Exception:
            await self.store.rollback()
            raise
        await self._save(updated, expected_version)

        logger.info(
            "Applied %s for user %s (level=%d, xp=%d, events=%d)",
            event_type, user_id, updated.level, updated.xp, len(events),
        )
        await self.notifier.publish(user_id, events)
        return ProgressResult(account=updated, events=events)

    async def get_progress(self, user_id: str) -> ProgressAccount:
        """Current account as seen today; never-seen users get a fresh account.

        Today's counters are shown reset if the day rolled over since the
        last write. Nothing is persisted.
        """
        account = await self._load_or_new(user_id)
        return self.engine.reset_daily_progress(account, self.today())

    async def update_daily_goals(
        self,
        user_id: str,
        xp_goal: int | None = None,
        minutes_goal: int | None = None,
        lessons_goal: int | None = None,
    ) -> ProgressAccount:
        try:
            account = await self._load_or_new(user_id)
            expected_version = account.version
            updated = self.engine.update_daily_goals(
                account, xp_goal=xp_goal, minutes_goal=minutes_goal, lessons_goal=lessons_goal
            )
        except Exception:
            await self.store.rollback()
            raise
        await self._save(updated, expected_version)
        return updated

    async def available_achievements(
        self, user_id: str
    ) -> list[tuple[AchievementDefinition, datetime | None]]:
        """Visible achievements with the user's unlock time (None if locked)."""
        account = await self._load_or_new(user_id)
        unlocked = {a.code: a.unlocked_at for a in account.unlocked_achievements}
        return [
            (definition, unlocked.get(definition.code))
            for definition in self.engine.catalog.available_for(account)
        ]


async def save_achievement(
    store: ProgressStore, registry: CatalogRegistry, definition: AchievementDefinition
) -> AchievementDefinition:
    """Persist an achievement definition, then swap in a catalog that includes it.

    The live catalog is only replaced after the commit succeeds.
    """
    try:
        await store.save_achievement_definition(definition)
        await store.commit()
    except Exception:
        await store.rollback()
        raise
    registry.replace(registry.get().with_definition(definition))
    logger.info(
        "Saved achievement %s (active=%s, secret=%s)",
        definition.code, definition.is_active, definition.is_secret,
    )
    return definition
