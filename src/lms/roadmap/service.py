"""Roadmap service — joins levels, roadmap progress and the progress account.

Roadmap actions touch two versioned records (the roadmap progress and, on
completion, the account); both are saved in one unit of work.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from lms.exceptions import InvalidEventError, UnlockRequirementsNotMetError
from lms.gamification.account import ProgressAccount, ProgressEvent
from lms.gamification.engine import ProgressionEngine, utc_now
from lms.gamification.notifier import ProgressNotifier
from lms.gamification.service import local_today
from lms.roadmap.graph import RoadmapGraph
from lms.roadmap.models import UserRoadmapProgress
from lms.roadmap.tracker import RoadmapProgressTracker, UnlockCheck
from lms.store.base import ProgressStore

logger = logging.getLogger(__name__)

ROADMAP_ACTIONS = ("check_unlock", "unlock", "complete", "update_lesson_progress")


@dataclass
class RoadmapResult:
    progress: UserRoadmapProgress
    account: ProgressAccount | None = None
    events: list[ProgressEvent] = field(default_factory=list)
    check: UnlockCheck | None = None


class RoadmapService:
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
        self.tracker = RoadmapProgressTracker(engine, clock)
        self.notifier = notifier or ProgressNotifier(None)
        self.timezone = timezone
        self._clock = clock

    async def get_graph(self, course_id: str) -> RoadmapGraph:
        return RoadmapGraph(course_id, await self.store.load_roadmap_levels(course_id))

    async def _load_account(self, user_id: str) -> ProgressAccount:
        account = await self.store.load_account(user_id)
        if account is None:
            account = ProgressAccount.new(user_id, local_today(self._clock, self.timezone))
        return account

    async def _load_progress(self, user_id: str, graph: RoadmapGraph) -> UserRoadmapProgress:
        progress = await self.store.load_roadmap_progress(user_id, graph.course_id)
        if progress is None:
            progress = self.tracker.start(user_id, graph)
        return progress

    async def _run(self, operation: Callable[[], Any]) -> Any:
        try:
            result = await operation()
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise
        return result

    # --- Actions ---

    async def get_progress(self, user_id: str, course_id: str) -> UserRoadmapProgress:
        """Roadmap progress, created with the first level unlocked on first read."""

        async def op() -> UserRoadmapProgress:
            graph = await self.get_graph(course_id)
            progress = await self._load_progress(user_id, graph)
            if progress.version == 0:
                await self.store.save_roadmap_progress(progress, 0)
            return progress

        return await self._run(op)

    async def check_unlock(self, user_id: str, course_id: str, level_id: str) -> UnlockCheck:
        graph = await self.get_graph(course_id)
        level = graph.get(level_id)
        progress = await self._load_progress(user_id, graph)
        account = await self._load_account(user_id)
        return self.tracker.check_unlock_eligibility(progress, level, account)

    async def unlock(
        self, user_id: str, course_id: str, level_id: str, force: bool = False
    ) -> UserRoadmapProgress:
        """Unlock a level after checking its requirements.

        ``force=True`` skips the requirement check (administrative override).
        """

        async def op() -> UserRoadmapProgress:
            graph = await self.get_graph(course_id)
            level = graph.get(level_id)
            progress = await self._load_progress(user_id, graph)
            expected_version = progress.version
            if not force:
                check = self.tracker.check_unlock_eligibility(
                    progress, level, await self._load_account(user_id)
                )
                if not check.eligible:
                    raise UnlockRequirementsNotMetError(
                        level_id, [reason.message for reason in check.unmet_reasons]
                    )
            else:
                logger.info("Force-unlocking level %s for user %s", level_id, user_id)
            updated = self.tracker.unlock_level(progress, level)
            if updated is not progress or expected_version == 0:
                await self.store.save_roadmap_progress(updated, expected_version)
            return updated

        return await self._run(op)

    async def complete(
        self,
        user_id: str,
        course_id: str,
        level_id: str,
        score: int | None = None,
        time_taken: int | None = None,
    ) -> RoadmapResult:
        """Complete a level, pay its rewards and evaluate achievements once."""

        async def op() -> RoadmapResult:
            graph = await self.get_graph(course_id)
            level = graph.get(level_id)
            progress = await self._load_progress(user_id, graph)
            account = await self._load_account(user_id)
            progress_version, account_version = progress.version, account.version
            account = self.engine.reset_daily_progress(
                account, local_today(self._clock, self.timezone)
            )

            updated, new_account, events = self.tracker.complete_level(
                progress, level, score, time_taken, account, graph=graph
            )
            if updated is progress:
                return RoadmapResult(progress=progress, account=account)

            new_account, unlocked = self.engine.evaluate_achievements(
                new_account,
                {"event_type": "level_completed", "course_id": course_id, "level_id": level_id},
            )
            events += unlocked
            await self.store.save_roadmap_progress(updated, progress_version)
            await self.store.save_account(new_account, account_version)
            return RoadmapResult(progress=updated, account=new_account, events=events)

        result = await self._run(op)
        if result.events:
            logger.info(
                "User %s completed level %s of %s (%d events)",
                user_id, level_id, course_id, len(result.events),
            )
            await self.notifier.publish(user_id, result.events)
        return result

    async def update_lesson_progress(
        self,
        user_id: str,
        course_id: str,
        level_id: str,
        lesson_id: str,
        total_lessons: int | None = None,
    ) -> UserRoadmapProgress:
        async def op() -> UserRoadmapProgress:
            graph = await self.get_graph(course_id)
            level = graph.get(level_id)
            progress = await self._load_progress(user_id, graph)
            expected_version = progress.version
            updated = self.tracker.update_level_progress(progress, level, lesson_id, total_lessons)
            await self.store.save_roadmap_progress(updated, expected_version)
            return updated

        return await self._run(op)

    async def handle(
        self,
        user_id: str,
        course_id: str,
        level_id: str,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> RoadmapResult:
        """Dispatch a roadmap action by name."""
        payload = payload or {}
        if action == "check_unlock":
            check = await self.check_unlock(user_id, course_id, level_id)
            progress = await self.store.load_roadmap_progress(user_id, course_id)
            return RoadmapResult(
                progress=progress or UserRoadmapProgress(user_id=user_id, course_id=course_id),
                check=check,
            )
        if action == "unlock":
            progress = await self.unlock(
                user_id, course_id, level_id, force=bool(payload.get("force", False))
            )
            return RoadmapResult(progress=progress)
        if action == "complete":
            return await self.complete(
                user_id,
                course_id,
                level_id,
                score=payload.get("score"),
                time_taken=payload.get("time_taken"),
            )
        if action == "update_lesson_progress":
            if "lesson_id" not in payload:
                raise InvalidEventError("update_lesson_progress requires lesson_id")
            progress = await self.update_lesson_progress(
                user_id,
                course_id,
                level_id,
                payload["lesson_id"],
                total_lessons=payload.get("total_lessons"),
            )
            return RoadmapResult(progress=progress)
        raise InvalidEventError(f"Unknown roadmap action {action!r}; expected one of {ROADMAP_ACTIONS}")
