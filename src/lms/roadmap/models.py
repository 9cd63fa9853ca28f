"""Roadmap level definitions and per-user roadmap progress records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from lms.exceptions import CatalogLookupError

DIFFICULTIES = ("beginner", "intermediate", "advanced", "expert")


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class UnlockRequirements:
    previous_level_id: str | None = None
    min_xp: int = 0
    min_cups: int = 0
    required_achievement_codes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Achievement codes are upper-case everywhere they are referenced.
        object.__setattr__(
            self,
            "required_achievement_codes",
            tuple(code.upper() for code in self.required_achievement_codes),
        )


@dataclass(frozen=True)
class LevelRewards:
    xp: int = 0
    cups: int = 0
    badge_achievement_code: str | None = None

    def __post_init__(self) -> None:
        if self.badge_achievement_code:
            object.__setattr__(self, "badge_achievement_code", self.badge_achievement_code.upper())


@dataclass(frozen=True)
class LessonRef:
    lesson_id: str
    order: int = 0
    is_required: bool = True


@dataclass(frozen=True)
class RoadmapLevel:
    """One gated stage of a course roadmap."""

    id: str
    course_id: str
    level_number: int
    title: str
    description: str = ""
    difficulty: str = "beginner"
    estimated_duration: int = 0
    is_active: bool = True
    unlock_requirements: UnlockRequirements = field(default_factory=UnlockRequirements)
    rewards: LevelRewards = field(default_factory=LevelRewards)
    lessons: tuple[LessonRef, ...] = ()

    def __post_init__(self) -> None:
        if self.difficulty not in DIFFICULTIES:
            raise CatalogLookupError(f"Unknown difficulty {self.difficulty!r} for level {self.id}")
        if self.rewards.xp < 0 or self.rewards.cups < 0:
            raise CatalogLookupError(f"Roadmap level {self.id} has a negative reward")

    @property
    def lesson_ids(self) -> list[str]:
        return [ref.lesson_id for ref in sorted(self.lessons, key=lambda r: r.order)]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoadmapLevel:
        req = data.get("unlock_requirements") or {}
        rewards = data.get("rewards") or {}
        return cls(
            id=data["id"],
            course_id=data["course_id"],
            level_number=data["level_number"],
            title=data["title"],
            description=data.get("description", ""),
            difficulty=data.get("difficulty", "beginner"),
            estimated_duration=data.get("estimated_duration", 0),
            is_active=data.get("is_active", True),
            unlock_requirements=UnlockRequirements(
                previous_level_id=req.get("previous_level_id"),
                min_xp=req.get("min_xp", 0),
                min_cups=req.get("min_cups", 0),
                required_achievement_codes=tuple(req.get("required_achievement_codes") or ()),
            ),
            rewards=LevelRewards(
                xp=rewards.get("xp", 0),
                cups=rewards.get("cups", 0),
                badge_achievement_code=rewards.get("badge_achievement_code"),
            ),
            lessons=tuple(
                LessonRef(
                    lesson_id=lesson["lesson_id"],
                    order=lesson.get("order", i),
                    is_required=lesson.get("is_required", True),
                )
                for i, lesson in enumerate(data.get("lessons") or ())
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        req = self.unlock_requirements
        return {
            "id": self.id,
            "course_id": self.course_id,
            "level_number": self.level_number,
            "title": self.title,
            "description": self.description,
            "difficulty": self.difficulty,
            "estimated_duration": self.estimated_duration,
            "is_active": self.is_active,
            "unlock_requirements": {
                "previous_level_id": req.previous_level_id,
                "min_xp": req.min_xp,
                "min_cups": req.min_cups,
                "required_achievement_codes": list(req.required_achievement_codes),
            },
            "rewards": {
                "xp": self.rewards.xp,
                "cups": self.rewards.cups,
                "badge_achievement_code": self.rewards.badge_achievement_code,
            },
            "lessons": [
                {"lesson_id": ref.lesson_id, "order": ref.order, "is_required": ref.is_required}
                for ref in self.lessons
            ],
        }


# --- User progress ---


@dataclass
class UnlockedLevel:
    level_id: str
    unlocked_at: datetime


@dataclass
class CompletedLevel:
    level_id: str
    completed_at: datetime
    score: int | None = None
    time_taken: int | None = None


@dataclass
class LevelProgress:
    completed_lesson_ids: list[str] = field(default_factory=list)
    total_lessons: int = 0
    progress_percentage: int = 0
    started_at: datetime | None = None


@dataclass
class UserRoadmapProgress:
    """A user's position on one course roadmap. ``version`` 0 means unsaved."""

    user_id: str
    course_id: str
    current_level_id: str | None = None
    unlocked_levels: list[UnlockedLevel] = field(default_factory=list)
    completed_levels: list[CompletedLevel] = field(default_factory=list)
    level_progress: dict[str, LevelProgress] = field(default_factory=dict)
    total_xp_earned: int = 0
    total_cups_earned: int = 0
    version: int = 0

    def is_unlocked(self, level_id: str) -> bool:
        return any(u.level_id == level_id for u in self.unlocked_levels)

    def is_completed(self, level_id: str) -> bool:
        return any(c.level_id == level_id for c in self.completed_levels)

    def completed_level_ids(self) -> set[str]:
        return {c.level_id for c in self.completed_levels}

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "current_level_id": self.current_level_id,
            "unlocked_levels": [
                {"level_id": u.level_id, "unlocked_at": _iso(u.unlocked_at)}
                for u in self.unlocked_levels
            ],
            "completed_levels": [
                {
                    "level_id": c.level_id,
                    "completed_at": _iso(c.completed_at),
                    "score": c.score,
                    "time_taken": c.time_taken,
                }
                for c in self.completed_levels
            ],
            "level_progress": {
                level_id: {
                    "completed_lesson_ids": list(p.completed_lesson_ids),
                    "total_lessons": p.total_lessons,
                    "progress_percentage": p.progress_percentage,
                    "started_at": _iso(p.started_at),
                }
                for level_id, p in self.level_progress.items()
            },
            "total_xp_earned": self.total_xp_earned,
            "total_cups_earned": self.total_cups_earned,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserRoadmapProgress:
        return cls(
            user_id=data["user_id"],
            course_id=data["course_id"],
            current_level_id=data.get("current_level_id"),
            unlocked_levels=[
                UnlockedLevel(level_id=u["level_id"], unlocked_at=_parse_datetime(u["unlocked_at"]))
                for u in data.get("unlocked_levels") or []
            ],
            completed_levels=[
                CompletedLevel(
                    level_id=c["level_id"],
                    completed_at=_parse_datetime(c["completed_at"]),
                    score=c.get("score"),
                    time_taken=c.get("time_taken"),
                )
                for c in data.get("completed_levels") or []
            ],
            level_progress={
                level_id: LevelProgress(
                    completed_lesson_ids=list(p.get("completed_lesson_ids") or []),
                    total_lessons=p.get("total_lessons", 0),
                    progress_percentage=p.get("progress_percentage", 0),
                    started_at=_parse_datetime(p.get("started_at")),
                )
                for level_id, p in (data.get("level_progress") or {}).items()
            },
            total_xp_earned=data.get("total_xp_earned", 0),
            total_cups_earned=data.get("total_cups_earned", 0),
            version=data.get("version", 0),
        )
