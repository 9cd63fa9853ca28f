"""In-memory ProgressStore used by tests and local runs without a database."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from lms.exceptions import ConcurrencyConflictError, InvalidLeaderboardQueryError
from lms.gamification.account import ProgressAccount
from lms.gamification.catalog import AchievementCatalog, AchievementDefinition
from lms.roadmap.models import RoadmapLevel, UserRoadmapProgress
from lms.store.base import LEADERBOARD_COLUMNS


@dataclass
class MemoryBackend:
    """Committed state shared by every store opened on it."""

    accounts: dict[str, ProgressAccount] = field(default_factory=dict)
    roadmap_progress: dict[tuple[str, str], UserRoadmapProgress] = field(default_factory=dict)
    roadmap_levels: dict[str, RoadmapLevel] = field(default_factory=dict)
    achievements: dict[str, AchievementDefinition] = field(default_factory=dict)


class InMemoryProgressStore:
    """One unit of work over a MemoryBackend.

    Saves are staged locally and version-checked twice: against the visible
    state when staged, and again against the backend on ``commit()`` so two
    stores racing on the same record cannot both win.
    """

    def __init__(self, backend: MemoryBackend | None = None) -> None:
        self.backend = backend or MemoryBackend()
        self._reset_staged()

    def _reset_staged(self) -> None:
        self._accounts: dict[str, tuple[int, ProgressAccount]] = {}
        self._progress: dict[tuple[str, str], tuple[int, UserRoadmapProgress]] = {}
        self._levels: dict[str, RoadmapLevel] = {}
        self._achievements: dict[str, AchievementDefinition] = {}

    def fork(self) -> InMemoryProgressStore:
        """A separate unit of work against the same committed state."""
        return InMemoryProgressStore(self.backend)

    # --- Accounts ---

    async def load_account(self, user_id: str) -> ProgressAccount | None:
        if user_id in self._accounts:
            return copy.deepcopy(self._accounts[user_id][1])
        account = self.backend.accounts.get(user_id)
        return copy.deepcopy(account) if account else None

    async def save_account(self, account: ProgressAccount, expected_version: int) -> None:
        current = await self.load_account(account.user_id)
        current_version = current.version if current else 0
        if current_version != expected_version:
            raise ConcurrencyConflictError(
                f"Account {account.user_id} is at version {current_version}, "
                f"expected {expected_version}"
            )
        # Keep the first expected version so commit checks against the backend.
        base_version = self._accounts.get(account.user_id, (expected_version, None))[0]
        account.version = expected_version + 1
        self._accounts[account.user_id] = (base_version, copy.deepcopy(account))

    # --- Roadmap ---

    async def load_roadmap_progress(
        self, user_id: str, course_id: str
    ) -> UserRoadmapProgress | None:
        key = (user_id, course_id)
        if key in self._progress:
            return copy.deepcopy(self._progress[key][1])
        progress = self.backend.roadmap_progress.get(key)
        return copy.deepcopy(progress) if progress else None

    async def save_roadmap_progress(
        self, progress: UserRoadmapProgress, expected_version: int
    ) -> None:
        key = (progress.user_id, progress.course_id)
        current = await self.load_roadmap_progress(*key)
        current_version = current.version if current else 0
        if current_version != expected_version:
            raise ConcurrencyConflictError(
                f"Roadmap progress {key} is at version {current_version}, "
                f"expected {expected_version}"
            )
        base_version = self._progress.get(key, (expected_version, None))[0]
        progress.version = expected_version + 1
        self._progress[key] = (base_version, copy.deepcopy(progress))

    async def load_roadmap_levels(self, course_id: str) -> list[RoadmapLevel]:
        levels = {**self.backend.roadmap_levels, **self._levels}
        return sorted(
            (lvl for lvl in levels.values() if lvl.course_id == course_id),
            key=lambda lvl: lvl.level_number,
        )

    async def save_roadmap_level(self, level: RoadmapLevel) -> None:
        self._levels[level.id] = level

    # --- Catalog ---

    async def load_achievement_catalog(self) -> AchievementCatalog:
        return AchievementCatalog({**self.backend.achievements, **self._achievements}.values())

    async def save_achievement_definition(self, definition: AchievementDefinition) -> None:
        self._achievements[definition.code] = definition

    # --- Leaderboard ---

    async def list_top_accounts(self, metric: str, limit: int) -> list[ProgressAccount]:
        column = LEADERBOARD_COLUMNS.get(metric)
        if column is None:
            raise InvalidLeaderboardQueryError(f"Unknown leaderboard metric: {metric!r}")
        ranked = sorted(
            self.backend.accounts.values(),
            key=lambda a: (-getattr(a, column), a.user_id),
        )
        return [copy.deepcopy(a) for a in ranked[:limit]]

    async def count_accounts_above(self, total_xp_earned: int) -> int:
        return sum(1 for a in self.backend.accounts.values() if a.total_xp_earned > total_xp_earned)

    # --- Unit of work ---

    async def commit(self) -> None:
        backend = self.backend
        try:
            for user_id, (expected, _) in self._accounts.items():
                stored = backend.accounts.get(user_id)
                if (stored.version if stored else 0) != expected:
                    raise ConcurrencyConflictError(
                        f"Account {user_id} changed concurrently (expected version {expected})"
                    )
            for key, (expected, _) in self._progress.items():
                stored_progress = backend.roadmap_progress.get(key)
                if (stored_progress.version if stored_progress else 0) != expected:
                    raise ConcurrencyConflictError(
                        f"Roadmap progress {key} changed concurrently (expected version {expected})"
                    )
        except ConcurrencyConflictError:
            self._reset_staged()
            raise

        for user_id, (_, account) in self._accounts.items():
            backend.accounts[user_id] = account
        for key, (_, progress) in self._progress.items():
            backend.roadmap_progress[key] = progress
        backend.roadmap_levels.update(self._levels)
        backend.achievements.update(self._achievements)
        self._reset_staged()

    async def rollback(self) -> None:
        self._reset_staged()
