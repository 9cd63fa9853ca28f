"""Persistence boundary for progression state.

Saves are staged and only become durable on ``commit()``. Account and
roadmap-progress saves carry an optimistic concurrency token: the save
applies only if the stored version equals ``expected_version`` (0 meaning
"must not exist yet") and then stores ``expected_version + 1``. A mismatch
raises ``ConcurrencyConflictError``, at save time or at commit time.
"""

from __future__ import annotations

from typing import Protocol

from lms.gamification.account import ProgressAccount
from lms.gamification.catalog import AchievementCatalog, AchievementDefinition
from lms.roadmap.models import RoadmapLevel, UserRoadmapProgress

LEADERBOARD_COLUMNS = {
    "xp": "total_xp_earned",
    "cups": "cups",
    "streak": "current_streak",
}


class ProgressStore(Protocol):
    async def load_account(self, user_id: str) -> ProgressAccount | None: ...

    async def save_account(self, account: ProgressAccount, expected_version: int) -> None: ...

    async def load_roadmap_progress(
        self, user_id: str, course_id: str
    ) -> UserRoadmapProgress | None: ...

    async def save_roadmap_progress(
        self, progress: UserRoadmapProgress, expected_version: int
    ) -> None: ...

    async def load_roadmap_levels(self, course_id: str) -> list[RoadmapLevel]: ...

    async def save_roadmap_level(self, level: RoadmapLevel) -> None: ...

    async def load_achievement_catalog(self) -> AchievementCatalog: ...

    async def save_achievement_definition(self, definition: AchievementDefinition) -> None: ...

    async def list_top_accounts(self, metric: str, limit: int) -> list[ProgressAccount]: ...

    async def count_accounts_above(self, total_xp_earned: int) -> int: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...
