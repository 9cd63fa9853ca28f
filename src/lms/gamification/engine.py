"""Progression engine — XP, cups, streaks, daily goals and achievements.

Every public method works on a deep copy of the account it is given and
returns the new account together with the events it triggered. Nothing here
touches storage; persisting the result is the caller's job.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any

from lms.exceptions import (
    InvalidEventError,
    InvalidGrantError,
    MalformedStateError,
    OutOfOrderEventError,
)
from lms.gamification.account import (
    AchievementUnlocked,
    LevelUp,
    ProgressAccount,
    ProgressEvent,
    StreakUpdated,
    UnlockedAchievement,
)
from lms.gamification.catalog import AchievementCatalog, AchievementDefinition
from lms.gamification.level_curve import next_threshold
from lms.gamification.predicates import evaluate

LESSON_XP = 25
QUIZ_XP = 50
DAILY_CHECKIN_XP = 10

EVENT_TYPES = ("lesson_completed", "quiz_passed", "daily_checkin", "level_completed")

STREAK_MILESTONES = (3, 7, 14, 30, 60, 100, 180, 365)

DEFAULT_MAX_LEVEL_UPS = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_positive(kind: str, amount: Any) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidGrantError(kind, amount)


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidEventError(f"Invalid activity_date: {value!r}") from None


def _payload_int(payload: dict[str, Any], key: str, default: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidEventError(f"Event field {key!r} must be a non-negative integer")
    return value


class ProgressionEngine:
    """Applies grants, streak transitions and achievement unlocks to accounts."""

    def __init__(
        self,
        catalog: AchievementCatalog,
        clock: Callable[[], datetime] = utc_now,
        max_level_ups: int = DEFAULT_MAX_LEVEL_UPS,
    ) -> None:
        self.catalog = catalog
        self._clock = clock
        self.max_level_ups = max_level_ups

    # --- Invariants ---

    def check_invariants(self, account: ProgressAccount) -> None:
        """Raise MalformedStateError if the account violates a stored invariant."""
        problems = []
        if account.level < 1:
            problems.append(f"level={account.level}")
        if account.xp < 0:
            problems.append(f"xp={account.xp}")
        if account.xp_to_next_level <= 0:
            problems.append(f"xp_to_next_level={account.xp_to_next_level}")
        elif account.xp >= account.xp_to_next_level:
            problems.append(f"xp={account.xp} not below xp_to_next_level={account.xp_to_next_level}")
        if account.cups < 0:
            problems.append(f"cups={account.cups}")
        if account.current_streak < 0 or account.longest_streak < account.current_streak:
            problems.append(
                f"streak current={account.current_streak} longest={account.longest_streak}"
            )
        if len(account.achievement_codes()) != len(account.unlocked_achievements):
            problems.append("duplicate unlocked achievements")
        if problems:
            raise MalformedStateError(
                f"Account {account.user_id} is malformed: " + ", ".join(problems)
            )

    def _copy(self, account: ProgressAccount) -> ProgressAccount:
        self.check_invariants(account)
        return copy.deepcopy(account)

    # --- XP and cups ---

    def grant_xp(
        self, account: ProgressAccount, amount: int, source: str = "general"
    ) -> tuple[ProgressAccount, list[ProgressEvent]]:
        """Add XP and resolve any number of level-ups, one LevelUp per level gained."""
        _require_positive("XP", amount)
        updated = self._copy(account)
        events = self._apply_xp(updated, amount)
        return updated, events

    def _apply_xp(self, account: ProgressAccount, amount: int) -> list[ProgressEvent]:
        account.xp += amount
        account.total_xp_earned += amount
        account.today_progress.xp_earned += amount

        events: list[ProgressEvent] = []
        while account.xp >= account.xp_to_next_level:
            if len(events) >= self.max_level_ups:
                raise MalformedStateError(
                    f"Account {account.user_id} exceeded {self.max_level_ups} level-ups in one grant "
                    f"(xp_to_next_level={account.xp_to_next_level})"
                )
            account.xp -= account.xp_to_next_level
            account.level += 1
            account.xp_to_next_level = next_threshold(account.xp_to_next_level)
            events.append(LevelUp(new_level=account.level))
        return events

    def grant_cups(self, account: ProgressAccount, amount: int) -> ProgressAccount:
        _require_positive("Cups", amount)
        updated = self._copy(account)
        self._apply_cups(updated, amount)
        return updated

    @staticmethod
    def _apply_cups(account: ProgressAccount, amount: int) -> None:
        account.cups += amount
        account.total_cups_earned += amount

    # --- Achievements ---

    def unlock_achievement(
        self, account: ProgressAccount, code: str
    ) -> tuple[ProgressAccount, list[ProgressEvent]]:
        """Unlock an achievement directly, bypassing its predicate.

        No-op if already unlocked. The achievement's own reward is granted
        without re-running achievement evaluation.
        """
        definition = self.catalog.get(code)
        updated = self._copy(account)
        events = self._unlock(updated, definition)
        return updated, events

    def _unlock(
        self, account: ProgressAccount, definition: AchievementDefinition
    ) -> list[ProgressEvent]:
        if account.has_achievement(definition.code):
            return []

        account.unlocked_achievements.append(
            UnlockedAchievement(code=definition.code, unlocked_at=self._clock(), progress=100)
        )
        events: list[ProgressEvent] = [
            AchievementUnlocked(
                code=definition.code,
                xp_reward=definition.xp_reward,
                cups_reward=definition.cups_reward,
            )
        ]
        if definition.xp_reward > 0:
            events += self._apply_xp(account, definition.xp_reward)
        if definition.cups_reward > 0:
            self._apply_cups(account, definition.cups_reward)
        return events

    def evaluate_achievements(
        self, account: ProgressAccount, context: dict[str, Any] | None = None
    ) -> tuple[ProgressAccount, list[ProgressEvent]]:
        """Unlock every active achievement whose predicate holds.

        Predicates are all checked against the account as it was before any
        reward from this pass is applied, so unlock order never matters and
        rewards cannot cascade into further unlocks within the same call.
        """
        updated = self._copy(account)
        events = self._evaluate(updated, context or {})
        return updated, events

    def _evaluate(self, account: ProgressAccount, context: dict[str, Any]) -> list[ProgressEvent]:
        satisfied = [
            definition
            for definition in self.catalog.active()
            if not account.has_achievement(definition.code)
            and evaluate(definition.predicate, account, context)
        ]
        events: list[ProgressEvent] = []
        for definition in satisfied:
            events += self._unlock(account, definition)
        return events

    # --- Streaks and daily progress ---

    def update_streak(self, account: ProgressAccount, activity_date: date) -> ProgressAccount:
        updated, _ = self.update_streak_with_events(account, activity_date)
        return updated

    def update_streak_with_events(
        self, account: ProgressAccount, activity_date: date
    ) -> tuple[ProgressAccount, list[ProgressEvent]]:
        updated = self._copy(account)
        events = self._apply_streak(updated, activity_date)
        return updated, events

    @staticmethod
    def _apply_streak(account: ProgressAccount, activity_date: date) -> list[ProgressEvent]:
        if isinstance(activity_date, datetime):
            activity_date = activity_date.date()

        last = account.last_activity_date
        if last is None:
            account.current_streak = 1
        else:
            gap = (activity_date - last).days
            if gap < 0:
                raise OutOfOrderEventError(activity_date, last)
            if gap == 0:
                return []
            if gap == 1:
                account.current_streak += 1
            else:
                account.current_streak = 1

        account.longest_streak = max(account.longest_streak, account.current_streak)
        account.last_activity_date = activity_date
        milestone = account.current_streak if account.current_streak in STREAK_MILESTONES else None
        return [
            StreakUpdated(
                current_streak=account.current_streak,
                longest_streak=account.longest_streak,
                milestone=milestone,
            )
        ]

    def reset_daily_progress(self, account: ProgressAccount, today: date) -> ProgressAccount:
        updated = self._copy(account)
        self._apply_daily_reset(updated, today)
        return updated

    @staticmethod
    def _apply_daily_reset(account: ProgressAccount, today: date) -> bool:
        progress = account.today_progress
        if progress.last_reset_date is not None and today <= progress.last_reset_date:
            return False
        progress.xp_earned = 0
        progress.minutes_studied = 0
        progress.lessons_completed = 0
        progress.last_reset_date = today
        return True

    def update_daily_goals(
        self,
        account: ProgressAccount,
        xp_goal: int | None = None,
        minutes_goal: int | None = None,
        lessons_goal: int | None = None,
    ) -> ProgressAccount:
        updated = self._copy(account)
        goals = updated.daily_goals
        if xp_goal is not None:
            _require_positive("XP goal", xp_goal)
            goals.xp_goal = xp_goal
        if minutes_goal is not None:
            _require_positive("Minutes goal", minutes_goal)
            goals.minutes_goal = minutes_goal
        if lessons_goal is not None:
            _require_positive("Lessons goal", lessons_goal)
            goals.lessons_goal = lessons_goal
        return updated

    @staticmethod
    def daily_goals_progress(account: ProgressAccount) -> dict[str, float]:
        """Percentage of each daily goal reached, capped at 100."""
        today, goals = account.today_progress, account.daily_goals

        def pct(value: int, goal: int) -> float:
            return round(min(value / goal * 100, 100.0), 1) if goal > 0 else 100.0

        return {
            "xp": pct(today.xp_earned, goals.xp_goal),
            "minutes": pct(today.minutes_studied, goals.minutes_goal),
            "lessons": pct(today.lessons_completed, goals.lessons_goal),
        }

    # --- Inbound learning events ---

    def apply_event(
        self,
        account: ProgressAccount,
        event_type: str,
        payload: dict[str, Any] | None = None,
        today: date | None = None,
    ) -> tuple[ProgressAccount, list[ProgressEvent]]:
        """Apply one learning event end to end.

        Order: daily reset, streak, event-specific counters and XP, then one
        bounded achievement evaluation pass. An activity dated before the
        last activity leaves the streak alone; a late check-in is rejected.
        """
        if event_type not in EVENT_TYPES:
            raise InvalidEventError(f"Unknown event type: {event_type!r}")
        if payload is not None and not isinstance(payload, dict):
            raise InvalidEventError(f"{event_type} payload must be an object")
        payload = dict(payload or {})
        today = today or self._clock().date()
        activity_date = _as_date(payload.get("activity_date")) or today

        updated = self._copy(account)
        events: list[ProgressEvent] = []
        self._apply_daily_reset(updated, today)
        try:
            events += self._apply_streak(updated, activity_date)
        except OutOfOrderEventError:
            # A check-in exists only for the streak; late learning still counts.
            if event_type == "daily_checkin":
                raise

        if event_type == "lesson_completed":
            xp = _payload_int(payload, "xp", LESSON_XP)
            self._record_study(updated, _payload_int(payload, "minutes", 0))
            updated.stats.total_lessons_completed += 1
            updated.today_progress.lessons_completed += 1
        elif event_type == "quiz_passed":
            xp = _payload_int(payload, "xp", QUIZ_XP)
            self._record_study(updated, _payload_int(payload, "minutes", 0))
            self._record_quiz(updated, payload.get("score"))
        elif event_type == "daily_checkin":
            xp = _payload_int(payload, "xp", DAILY_CHECKIN_XP)
        else:
            xp = _payload_int(payload, "xp", 0)
            updated.stats.total_levels_completed += 1
            if payload.get("course_completed"):
                updated.stats.total_courses_completed += 1

        if xp > 0:
            events += self._apply_xp(updated, xp)

        events += self._evaluate(updated, {**payload, "event_type": event_type})
        return updated, events

    @staticmethod
    def _record_study(account: ProgressAccount, minutes: int) -> None:
        account.stats.total_learning_minutes += minutes
        account.today_progress.minutes_studied += minutes

    @staticmethod
    def _record_quiz(account: ProgressAccount, score: Any) -> None:
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 100:
            raise InvalidEventError("quiz_passed requires a score between 0 and 100")
        stats = account.stats
        stats.total_quizzes_passed += 1
        n = stats.total_quizzes_passed
        stats.average_quiz_score = round((stats.average_quiz_score * (n - 1) + score) / n, 2)
        if score == 100:
            stats.perfect_quizzes += 1
