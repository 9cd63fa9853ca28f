"""Progress account record and the events the engine emits."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, ClassVar, Union

from lms.gamification.level_curve import BASE_XP_TO_NEXT_LEVEL


def _parse_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class DailyGoals:
    xp_goal: int = 50
    minutes_goal: int = 30
    lessons_goal: int = 3


@dataclass
class TodayProgress:
    """Counters reset at the local-day boundary."""

    xp_earned: int = 0
    minutes_studied: int = 0
    lessons_completed: int = 0
    last_reset_date: date | None = None


@dataclass
class AccountStats:
    """Lifetime learning counters used by achievement predicates."""

    total_learning_minutes: int = 0
    total_lessons_completed: int = 0
    total_courses_completed: int = 0
    total_quizzes_passed: int = 0
    average_quiz_score: float = 0.0
    perfect_quizzes: int = 0
    total_levels_completed: int = 0


@dataclass
class UnlockedAchievement:
    code: str
    unlocked_at: datetime
    progress: int = 100


@dataclass
class ProgressAccount:
    """Per-user XP, level, cups, streak, daily goals and unlocked achievements.

    ``version`` is the optimistic concurrency token: 0 means the account has
    never been persisted.
    """

    user_id: str
    level: int = 1
    xp: int = 0
    xp_to_next_level: int = BASE_XP_TO_NEXT_LEVEL
    total_xp_earned: int = 0
    cups: int = 0
    total_cups_earned: int = 0
    unlocked_achievements: list[UnlockedAchievement] = field(default_factory=list)
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None
    daily_goals: DailyGoals = field(default_factory=DailyGoals)
    today_progress: TodayProgress = field(default_factory=TodayProgress)
    stats: AccountStats = field(default_factory=AccountStats)
    version: int = 0

    @classmethod
    def new(cls, user_id: str, today: date) -> ProgressAccount:
        """Fresh account, created lazily on the user's first progression event."""
        return cls(user_id=user_id, today_progress=TodayProgress(last_reset_date=today))

    def has_achievement(self, code: str) -> bool:
        return any(a.code == code for a in self.unlocked_achievements)

    def achievement_codes(self) -> set[str]:
        return {a.code for a in self.unlocked_achievements}

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation (dates as ISO strings)."""
        data = asdict(self)
        data["last_activity_date"] = (
            self.last_activity_date.isoformat() if self.last_activity_date else None
        )
        data["today_progress"]["last_reset_date"] = (
            self.today_progress.last_reset_date.isoformat()
            if self.today_progress.last_reset_date
            else None
        )
        data["unlocked_achievements"] = [
            {"code": a.code, "unlocked_at": a.unlocked_at.isoformat(), "progress": a.progress}
            for a in self.unlocked_achievements
        ]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProgressAccount:
        today = dict(data.get("today_progress") or {})
        today["last_reset_date"] = _parse_date(today.get("last_reset_date"))
        return cls(
            user_id=data["user_id"],
            level=data.get("level", 1),
            xp=data.get("xp", 0),
            xp_to_next_level=data.get("xp_to_next_level", BASE_XP_TO_NEXT_LEVEL),
            total_xp_earned=data.get("total_xp_earned", 0),
            cups=data.get("cups", 0),
            total_cups_earned=data.get("total_cups_earned", 0),
            unlocked_achievements=[
                UnlockedAchievement(
                    code=a["code"],
                    unlocked_at=_parse_datetime(a["unlocked_at"]),
                    progress=a.get("progress", 100),
                )
                for a in data.get("unlocked_achievements") or []
            ],
            current_streak=data.get("current_streak", 0),
            longest_streak=data.get("longest_streak", 0),
            last_activity_date=_parse_date(data.get("last_activity_date")),
            daily_goals=DailyGoals(**(data.get("daily_goals") or {})),
            today_progress=TodayProgress(**today),
            stats=AccountStats(**(data.get("stats") or {})),
            version=data.get("version", 0),
        )


# --- Events ---


@dataclass(frozen=True)
class LevelUp:
    new_level: int

    kind: ClassVar[str] = "level_up"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.kind, **asdict(self)}


@dataclass(frozen=True)
class AchievementUnlocked:
    code: str
    xp_reward: int = 0
    cups_reward: int = 0

    kind: ClassVar[str] = "achievement_unlocked"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.kind, **asdict(self)}


@dataclass(frozen=True)
class StreakUpdated:
    current_streak: int
    longest_streak: int
    milestone: int | None = None

    kind: ClassVar[str] = "streak_updated"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.kind, **asdict(self)}


ProgressEvent = Union[LevelUp, AchievementUnlocked, StreakUpdated]
