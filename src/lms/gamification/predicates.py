"""Achievement unlock predicates.

Each predicate kind is its own frozen dataclass with typed parameters. The
catalog stores them as JSON ``{"kind": ..., <params>}``; ``parse_predicate``
and ``predicate_to_dict`` convert between the two.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, Union

from lms.exceptions import CatalogLookupError, MalformedStateError
from lms.gamification.account import ProgressAccount


@dataclass(frozen=True)
class StreakAtLeast:
    days: int
    kind: ClassVar[str] = "streak_at_least"


@dataclass(frozen=True)
class LessonsCompletedAtLeast:
    count: int
    kind: ClassVar[str] = "lessons_completed_at_least"


@dataclass(frozen=True)
class QuizzesPassedAtLeast:
    count: int
    kind: ClassVar[str] = "quizzes_passed_at_least"


@dataclass(frozen=True)
class PerfectQuizzesAtLeast:
    count: int
    kind: ClassVar[str] = "perfect_quizzes_at_least"


@dataclass(frozen=True)
class QuizScoreAtLeast:
    """Satisfied by the triggering quiz itself, not by lifetime stats."""

    score: int
    kind: ClassVar[str] = "quiz_score_at_least"


@dataclass(frozen=True)
class LevelAtLeast:
    level: int
    kind: ClassVar[str] = "level_at_least"


@dataclass(frozen=True)
class TotalXpAtLeast:
    xp: int
    kind: ClassVar[str] = "total_xp_at_least"


@dataclass(frozen=True)
class LearningMinutesAtLeast:
    minutes: int
    kind: ClassVar[str] = "learning_minutes_at_least"


@dataclass(frozen=True)
class CoursesCompletedAtLeast:
    count: int
    kind: ClassVar[str] = "courses_completed_at_least"


@dataclass(frozen=True)
class LevelsCompletedAtLeast:
    count: int
    kind: ClassVar[str] = "levels_completed_at_least"


@dataclass(frozen=True)
class EventOccurred:
    event_type: str
    kind: ClassVar[str] = "event"


@dataclass(frozen=True)
class Manual:
    """Never satisfied by evaluation; unlocked directly (e.g. roadmap badges)."""

    kind: ClassVar[str] = "manual"


Predicate = Union[
    StreakAtLeast,
    LessonsCompletedAtLeast,
    QuizzesPassedAtLeast,
    PerfectQuizzesAtLeast,
    QuizScoreAtLeast,
    LevelAtLeast,
    TotalXpAtLeast,
    LearningMinutesAtLeast,
    CoursesCompletedAtLeast,
    LevelsCompletedAtLeast,
    EventOccurred,
    Manual,
]

PREDICATE_TYPES: dict[str, type] = {
    cls.kind: cls
    for cls in (
        StreakAtLeast,
        LessonsCompletedAtLeast,
        QuizzesPassedAtLeast,
        PerfectQuizzesAtLeast,
        QuizScoreAtLeast,
        LevelAtLeast,
        TotalXpAtLeast,
        LearningMinutesAtLeast,
        CoursesCompletedAtLeast,
        LevelsCompletedAtLeast,
        EventOccurred,
        Manual,
    )
}


def parse_predicate(data: dict[str, Any]) -> Predicate:
    """Build a typed predicate from its JSON form.

    Raises CatalogLookupError for an unknown kind or a bad parameter.
    """
    kind = data.get("kind")
    cls = PREDICATE_TYPES.get(kind)  # type: ignore[arg-type]
    if cls is None:
        raise CatalogLookupError(f"Unknown achievement predicate kind: {kind!r}")

    params: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            raise CatalogLookupError(f"Predicate {kind!r} is missing parameter {f.name!r}")
        value = data[f.name]
        if f.type == "int":
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise CatalogLookupError(
                    f"Predicate {kind!r} parameter {f.name!r} must be a non-negative integer"
                )
        elif not isinstance(value, str) or not value:
            raise CatalogLookupError(f"Predicate {kind!r} parameter {f.name!r} must be a string")
        params[f.name] = value
    return cls(**params)


def predicate_to_dict(predicate: Predicate) -> dict[str, Any]:
    return {"kind": predicate.kind, **asdict(predicate)}


def evaluate(predicate: Predicate, account: ProgressAccount, context: dict[str, Any]) -> bool:
    """Evaluate a predicate against account state and the triggering event context."""
    stats = account.stats
    if isinstance(predicate, StreakAtLeast):
        return account.current_streak >= predicate.days
    if isinstance(predicate, LessonsCompletedAtLeast):
        return stats.total_lessons_completed >= predicate.count
    if isinstance(predicate, QuizzesPassedAtLeast):
        return stats.total_quizzes_passed >= predicate.count
    if isinstance(predicate, PerfectQuizzesAtLeast):
        return stats.perfect_quizzes >= predicate.count
    if isinstance(predicate, QuizScoreAtLeast):
        if context.get("event_type") != "quiz_passed":
            return False
        score = context.get("score")
        return isinstance(score, (int, float)) and score >= predicate.score
    if isinstance(predicate, LevelAtLeast):
        return account.level >= predicate.level
    if isinstance(predicate, TotalXpAtLeast):
        return account.total_xp_earned >= predicate.xp
    if isinstance(predicate, LearningMinutesAtLeast):
        return stats.total_learning_minutes >= predicate.minutes
    if isinstance(predicate, CoursesCompletedAtLeast):
        return stats.total_courses_completed >= predicate.count
    if isinstance(predicate, LevelsCompletedAtLeast):
        return stats.total_levels_completed >= predicate.count
    if isinstance(predicate, EventOccurred):
        return context.get("event_type") == predicate.event_type
    if isinstance(predicate, Manual):
        return False
    raise MalformedStateError(f"Unhandled predicate type: {type(predicate).__name__}")
