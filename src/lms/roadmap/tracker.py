"""Roadmap progress tracker — unlock gating, completion and lesson progress.

Like the progression engine, every method returns new records and leaves
its inputs untouched.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from lms.exceptions import CatalogLookupError, NotUnlockedError
from lms.gamification.account import ProgressAccount, ProgressEvent
from lms.gamification.engine import ProgressionEngine, utc_now
from lms.roadmap.graph import RoadmapGraph
from lms.roadmap.models import (
    CompletedLevel,
    LevelProgress,
    RoadmapLevel,
    UnlockedLevel,
    UserRoadmapProgress,
)


@dataclass(frozen=True)
class UnmetReason:
    code: str
    message: str


@dataclass(frozen=True)
class UnlockCheck:
    eligible: bool
    unmet_reasons: list[UnmetReason] = field(default_factory=list)
    already_unlocked: bool = False


class RoadmapProgressTracker:
    def __init__(
        self, engine: ProgressionEngine, clock: Callable[[], datetime] = utc_now
    ) -> None:
        self.engine = engine
        self._clock = clock

    def start(self, user_id: str, graph: RoadmapGraph) -> UserRoadmapProgress:
        """Fresh progress for a course with its first level unlocked."""
        progress = UserRoadmapProgress(user_id=user_id, course_id=graph.course_id)
        first = graph.first_level()
        if first is not None:
            progress = self.unlock_level(progress, first)
        return progress

    def check_unlock_eligibility(
        self,
        progress: UserRoadmapProgress,
        level: RoadmapLevel,
        account: ProgressAccount,
    ) -> UnlockCheck:
        """Evaluate every unlock requirement and report all unmet ones."""
        if progress.is_unlocked(level.id):
            return UnlockCheck(eligible=True, already_unlocked=True)

        req = level.unlock_requirements
        reasons: list[UnmetReason] = []

        if req.previous_level_id and not progress.is_completed(req.previous_level_id):
            reasons.append(
                UnmetReason("previous_level", f"Complete level {req.previous_level_id} first")
            )
        if account.total_xp_earned < req.min_xp:
            reasons.append(
                UnmetReason("min_xp", f"Need {req.min_xp} XP (current: {account.total_xp_earned})")
            )
        if account.total_cups_earned < req.min_cups:
            reasons.append(
                UnmetReason(
                    "min_cups", f"Need {req.min_cups} cups (current: {account.total_cups_earned})"
                )
            )
        unlocked = account.achievement_codes()
        for code in req.required_achievement_codes:
            if code not in unlocked:
                reasons.append(UnmetReason("achievement", f"Unlock achievement {code}"))

        return UnlockCheck(eligible=not reasons, unmet_reasons=reasons)

    def unlock_level(
        self, progress: UserRoadmapProgress, level: RoadmapLevel
    ) -> UserRoadmapProgress:
        """Record the level as unlocked. Does not check eligibility."""
        if progress.is_unlocked(level.id):
            return progress
        updated = copy.deepcopy(progress)
        updated.unlocked_levels.append(UnlockedLevel(level_id=level.id, unlocked_at=self._clock()))
        updated.current_level_id = level.id
        return updated

    def complete_level(
        self,
        progress: UserRoadmapProgress,
        level: RoadmapLevel,
        score: int | None,
        time_taken: int | None,
        account: ProgressAccount,
        graph: RoadmapGraph | None = None,
    ) -> tuple[UserRoadmapProgress, ProgressAccount, list[ProgressEvent]]:
        """Complete an unlocked level and pay out its rewards once.

        Re-completing a level returns the inputs unchanged. When ``graph`` is
        given and this completion finishes the course, the account's course
        counter is incremented too.
        """
        if not progress.is_unlocked(level.id):
            raise NotUnlockedError(level.id)
        if progress.is_completed(level.id):
            return progress, account, []

        self.engine.check_invariants(account)
        updated = copy.deepcopy(progress)
        updated.completed_levels.append(
            CompletedLevel(
                level_id=level.id,
                completed_at=self._clock(),
                score=score,
                time_taken=time_taken,
            )
        )

        account = copy.deepcopy(account)
        account.stats.total_levels_completed += 1
        if graph is not None and graph.is_complete(updated):
            account.stats.total_courses_completed += 1

        events: list[ProgressEvent] = []
        rewards = level.rewards
        if rewards.xp > 0:
            account, level_ups = self.engine.grant_xp(account, rewards.xp, source=f"roadmap:{level.id}")
            events += level_ups
            updated.total_xp_earned += rewards.xp
        if rewards.cups > 0:
            account = self.engine.grant_cups(account, rewards.cups)
            updated.total_cups_earned += rewards.cups
        if rewards.badge_achievement_code:
            account, unlocked = self.engine.unlock_achievement(
                account, rewards.badge_achievement_code
            )
            events += unlocked

        return updated, account, events

    def update_level_progress(
        self,
        progress: UserRoadmapProgress,
        level: RoadmapLevel,
        lesson_id: str,
        total_lessons: int | None = None,
    ) -> UserRoadmapProgress:
        """Mark a lesson done within a level and recompute the percentage."""
        if level.lessons and lesson_id not in level.lesson_ids:
            raise CatalogLookupError(f"Lesson {lesson_id} is not part of roadmap level {level.id}")
        if total_lessons is None:
            total_lessons = len(level.lessons)

        updated = copy.deepcopy(progress)
        entry = updated.level_progress.get(level.id)
        if entry is None:
            entry = LevelProgress(started_at=self._clock())
            updated.level_progress[level.id] = entry

        if lesson_id not in entry.completed_lesson_ids:
            entry.completed_lesson_ids.append(lesson_id)
        entry.total_lessons = total_lessons
        if total_lessons > 0:
            entry.progress_percentage = min(
                round(len(entry.completed_lesson_ids) / total_lessons * 100), 100
            )
        else:
            entry.progress_percentage = 0
        return updated
