"""Pydantic request/response models for progression endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel

from lms.gamification.account import ProgressAccount, ProgressEvent
from lms.gamification.catalog import AchievementDefinition
from lms.gamification.engine import ProgressionEngine
from lms.gamification.predicates import predicate_to_dict


# --- Achievements ---


class AchievementResponse(BaseModel):
    code: str
    name: str
    description: str
    type: str
    category: str
    icon: str
    rarity: str
    xp_reward: int
    cups_reward: int
    is_active: bool = True
    is_secret: bool = False
    sort_order: int = 0
    predicate: dict[str, Any] = {}

    @classmethod
    def from_definition(cls, definition: AchievementDefinition) -> AchievementResponse:
        return cls(
            code=definition.code,
            name=definition.name,
            description=definition.description,
            type=definition.type,
            category=definition.category,
            icon=definition.icon,
            rarity=definition.rarity,
            xp_reward=definition.xp_reward,
            cups_reward=definition.cups_reward,
            is_active=definition.is_active,
            is_secret=definition.is_secret,
            sort_order=definition.sort_order,
            predicate=predicate_to_dict(definition.predicate),
        )


class AchievementUpsert(BaseModel):
    name: str
    category: str
    description: str = ""
    type: str = "badge"
    icon: str = ""
    rarity: str = "common"
    xp_reward: int = 0
    cups_reward: int = 0
    predicate: dict[str, Any] = {"kind": "manual"}
    is_active: bool = True
    is_secret: bool = False
    sort_order: int = 0


class AchievementListResponse(BaseModel):
    achievements: list[AchievementResponse]
    total: int


class AvailableAchievementResponse(AchievementResponse):
    unlocked: bool = False
    unlocked_at: datetime | None = None


class AvailableAchievementsResponse(BaseModel):
    achievements: list[AvailableAchievementResponse]
    total_available: int
    total_unlocked: int


class UnlockedAchievementResponse(BaseModel):
    code: str
    unlocked_at: datetime
    progress: int = 100


# --- Progress ---


class DailyGoalsResponse(BaseModel):
    xp_goal: int
    minutes_goal: int
    lessons_goal: int


class TodayProgressResponse(BaseModel):
    xp_earned: int
    minutes_studied: int
    lessons_completed: int
    last_reset_date: date | None = None


class StatsResponse(BaseModel):
    total_learning_minutes: int
    total_lessons_completed: int
    total_courses_completed: int
    total_quizzes_passed: int
    average_quiz_score: float
    perfect_quizzes: int
    total_levels_completed: int


class ProgressResponse(BaseModel):
    user_id: str
    level: int
    xp: int
    xp_to_next_level: int
    total_xp_earned: int
    cups: int
    total_cups_earned: int
    current_streak: int
    longest_streak: int
    last_activity_date: date | None = None
    daily_goals: DailyGoalsResponse
    today_progress: TodayProgressResponse
    daily_goals_progress: dict[str, float]
    stats: StatsResponse
    unlocked_achievements: list[UnlockedAchievementResponse]
    version: int

    @classmethod
    def from_account(cls, account: ProgressAccount) -> ProgressResponse:
        data = account.to_dict()
        return cls(
            **{k: v for k, v in data.items() if k != "unlocked_achievements"},
            unlocked_achievements=[
                UnlockedAchievementResponse(code=a.code, unlocked_at=a.unlocked_at, progress=a.progress)
                for a in account.unlocked_achievements
            ],
            daily_goals_progress=ProgressionEngine.daily_goals_progress(account),
        )


# --- Events ---


class LearningEventRequest(BaseModel):
    event_type: str
    payload: dict[str, Any] = {}


class EventResultResponse(BaseModel):
    progress: ProgressResponse
    events: list[dict[str, Any]]

    @classmethod
    def build(cls, account: ProgressAccount, events: list[ProgressEvent]) -> EventResultResponse:
        return cls(
            progress=ProgressResponse.from_account(account),
            events=[event.to_payload() for event in events],
        )


class DailyGoalsUpdate(BaseModel):
    xp_goal: int | None = None
    minutes_goal: int | None = None
    lessons_goal: int | None = None


# --- Leaderboard ---


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    value: int
    level: int


class LeaderboardResponse(BaseModel):
    metric: str
    entries: list[LeaderboardEntry]


class UserRankingResponse(BaseModel):
    user_id: str
    rank: int | None = None
    level: int
    total_xp_earned: int
    cups: int
    current_streak: int


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    xp_required: int
    cumulative: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]
