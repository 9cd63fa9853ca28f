"""Roadmap API endpoints — course roadmaps and per-user roadmap progress."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from lms.config import get_settings
from lms.dependencies import get_roadmap_service
from lms.exceptions import CatalogLookupError, MalformedStateError
from lms.gamification.retry import retry_on_conflict
from lms.roadmap.graph import RoadmapGraph
from lms.roadmap.models import RoadmapLevel
from lms.roadmap.schemas import (
    CompleteLevelRequest,
    CompleteLevelResponse,
    LessonProgressRequest,
    RoadmapLevelResponse,
    RoadmapLevelUpsert,
    RoadmapProgressResponse,
    RoadmapResponse,
    UnlockCheckResponse,
    UnlockRequest,
)
from lms.roadmap.service import RoadmapService

router = APIRouter(prefix="/api/v1", tags=["Roadmap"])


# ── Course roadmaps ──


@router.get("/courses/{course_id}/roadmap", response_model=RoadmapResponse)
async def get_roadmap(course_id: str, service: RoadmapService = Depends(get_roadmap_service)):
    graph = await service.get_graph(course_id)
    return RoadmapResponse(
        course_id=course_id,
        levels=[RoadmapLevelResponse.from_level(level) for level in graph],
        total_levels=len(graph),
    )


@router.put("/courses/{course_id}/roadmap/levels/{level_id}", response_model=RoadmapLevelResponse)
async def put_roadmap_level(
    course_id: str,
    level_id: str,
    body: RoadmapLevelUpsert,
    service: RoadmapService = Depends(get_roadmap_service),
):
    """Create or replace a roadmap level. The resulting roadmap must stay consistent."""
    try:
        level = RoadmapLevel.from_dict({**body.model_dump(), "id": level_id, "course_id": course_id})
    except CatalogLookupError as e:
        raise HTTPException(status_code=422, detail=e.detail) from None

    existing = [lvl for lvl in await service.store.load_roadmap_levels(course_id) if lvl.id != level_id]
    try:
        RoadmapGraph(course_id, [*existing, level])
    except MalformedStateError as e:
        raise HTTPException(status_code=422, detail=e.detail) from None

    try:
        await service.store.save_roadmap_level(level)
        await service.store.commit()
    except Exception:
        await service.store.rollback()
        raise
    return RoadmapLevelResponse.from_level(level)


# ── User roadmap progress ──


@router.get("/users/{user_id}/roadmaps/{course_id}", response_model=RoadmapProgressResponse)
async def get_roadmap_progress(
    user_id: str, course_id: str, service: RoadmapService = Depends(get_roadmap_service)
):
    """Roadmap progress; the first level is unlocked on first access."""
    progress = await retry_on_conflict(
        lambda: service.get_progress(user_id, course_id),
        attempts=get_settings().conflict_retry_attempts,
    )
    return RoadmapProgressResponse.from_progress(progress)


@router.get(
    "/users/{user_id}/roadmaps/{course_id}/levels/{level_id}/check-unlock",
    response_model=UnlockCheckResponse,
)
async def check_level_unlock(
    user_id: str,
    course_id: str,
    level_id: str,
    service: RoadmapService = Depends(get_roadmap_service),
):
    check = await service.check_unlock(user_id, course_id, level_id)
    return UnlockCheckResponse.from_check(level_id, check)


@router.post(
    "/users/{user_id}/roadmaps/{course_id}/levels/{level_id}/unlock",
    response_model=RoadmapProgressResponse,
)
async def unlock_level(
    user_id: str,
    course_id: str,
    level_id: str,
    body: UnlockRequest | None = None,
    service: RoadmapService = Depends(get_roadmap_service),
):
    force = body.force if body else False
    progress = await retry_on_conflict(
        lambda: service.unlock(user_id, course_id, level_id, force=force),
        attempts=get_settings().conflict_retry_attempts,
    )
    return RoadmapProgressResponse.from_progress(progress)


@router.post(
    "/users/{user_id}/roadmaps/{course_id}/levels/{level_id}/complete",
    response_model=CompleteLevelResponse,
)
async def complete_level(
    user_id: str,
    course_id: str,
    level_id: str,
    body: CompleteLevelRequest,
    service: RoadmapService = Depends(get_roadmap_service),
):
    result = await retry_on_conflict(
        lambda: service.complete(
            user_id, course_id, level_id, score=body.score, time_taken=body.time_taken
        ),
        attempts=get_settings().conflict_retry_attempts,
    )
    return CompleteLevelResponse.from_result(result)


@router.post(
    "/users/{user_id}/roadmaps/{course_id}/levels/{level_id}/lessons/{lesson_id}",
    response_model=RoadmapProgressResponse,
)
async def complete_lesson_in_level(
    user_id: str,
    course_id: str,
    level_id: str,
    lesson_id: str,
    body: LessonProgressRequest | None = None,
    service: RoadmapService = Depends(get_roadmap_service),
):
    total_lessons = body.total_lessons if body else None
    progress = await retry_on_conflict(
        lambda: service.update_lesson_progress(
            user_id, course_id, level_id, lesson_id, total_lessons=total_lessons
        ),
        attempts=get_settings().conflict_retry_attempts,
    )
    return RoadmapProgressResponse.from_progress(progress)
