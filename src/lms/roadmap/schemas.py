"""Pydantic models for roadmap endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from lms.gamification.schemas import ProgressResponse
from lms.roadmap.models import RoadmapLevel, UserRoadmapProgress
from lms.roadmap.service import RoadmapResult
from lms.roadmap.tracker import UnlockCheck


class RoadmapLevelResponse(BaseModel):
    id: str
    course_id: str
    level_number: int
    title: str
    description: str
    difficulty: str
    estimated_duration: int
    is_active: bool
    unlock_requirements: dict[str, Any]
    rewards: dict[str, Any]
    lessons: list[dict[str, Any]]

    @classmethod
    def from_level(cls, level: RoadmapLevel) -> RoadmapLevelResponse:
        return cls(**level.to_dict())


class RoadmapResponse(BaseModel):
    course_id: str
    levels: list[RoadmapLevelResponse]
    total_levels: int


class RoadmapLevelUpsert(BaseModel):
    level_number: int
    title: str
    description: str = ""
    difficulty: str = "beginner"
    estimated_duration: int = 0
    is_active: bool = True
    unlock_requirements: dict[str, Any] = {}
    rewards: dict[str, Any] = {}
    lessons: list[dict[str, Any]] = []


class UnlockedLevelResponse(BaseModel):
    level_id: str
    unlocked_at: datetime


class CompletedLevelResponse(BaseModel):
    level_id: str
    completed_at: datetime
    score: int | None = None
    time_taken: int | None = None


class LevelProgressResponse(BaseModel):
    completed_lesson_ids: list[str]
    total_lessons: int
    progress_percentage: int
    started_at: datetime | None = None


class RoadmapProgressResponse(BaseModel):
    user_id: str
    course_id: str
    current_level_id: str | None = None
    unlocked_levels: list[UnlockedLevelResponse]
    completed_levels: list[CompletedLevelResponse]
    level_progress: dict[str, LevelProgressResponse]
    total_xp_earned: int
    total_cups_earned: int
    version: int

    @classmethod
    def from_progress(cls, progress: UserRoadmapProgress) -> RoadmapProgressResponse:
        return cls(**progress.to_dict())


class UnmetReasonResponse(BaseModel):
    code: str
    message: str


class UnlockCheckResponse(BaseModel):
    level_id: str
    eligible: bool
    already_unlocked: bool
    unmet_reasons: list[UnmetReasonResponse]

    @classmethod
    def from_check(cls, level_id: str, check: UnlockCheck) -> UnlockCheckResponse:
        return cls(
            level_id=level_id,
            eligible=check.eligible,
            already_unlocked=check.already_unlocked,
            unmet_reasons=[UnmetReasonResponse(code=r.code, message=r.message) for r in check.unmet_reasons],
        )


class UnlockRequest(BaseModel):
    force: bool = False


class CompleteLevelRequest(BaseModel):
    score: int | None = None
    time_taken: int | None = None


class LessonProgressRequest(BaseModel):
    total_lessons: int | None = None


class CompleteLevelResponse(BaseModel):
    roadmap: RoadmapProgressResponse
    progress: ProgressResponse | None = None
    events: list[dict[str, Any]]

    @classmethod
    def from_result(cls, result: RoadmapResult) -> CompleteLevelResponse:
        return cls(
            roadmap=RoadmapProgressResponse.from_progress(result.progress),
            progress=ProgressResponse.from_account(result.account) if result.account else None,
            events=[event.to_payload() for event in result.events],
        )
