"""Progression API endpoints — achievements, progress, events, leaderboard."""

from __future__ import annotations

import dataclasses

from fastapi import APIRouter, Depends, HTTPException, Query

from lms.config import get_settings
from lms.dependencies import (
    get_catalog_registry,
    get_progression_engine,
    get_progression_service,
    get_store,
)
from lms.exceptions import CatalogLookupError
from lms.gamification.catalog import AchievementDefinition, CatalogRegistry
from lms.gamification.engine import ProgressionEngine
from lms.gamification.leaderboard import get_user_ranking, list_top_accounts
from lms.gamification.level_curve import level_table
from lms.gamification.retry import retry_on_conflict
from lms.gamification.schemas import (
    AchievementListResponse,
    AchievementResponse,
    AchievementUpsert,
    AllLevelsResponse,
    AvailableAchievementResponse,
    AvailableAchievementsResponse,
    DailyGoalsUpdate,
    EventResultResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    LearningEventRequest,
    LevelEntry,
    ProgressResponse,
    UserRankingResponse,
)
from lms.gamification.service import ProgressionService, save_achievement
from lms.store.base import ProgressStore

router = APIRouter(prefix="/api/v1", tags=["Progression"])


# ── Catalog ──


@router.get("/achievements", response_model=AchievementListResponse)
async def list_achievements(
    category: str | None = Query(None),
    type: str | None = Query(None),  # noqa: A002
    rarity: str | None = Query(None),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    """List active, non-secret achievements in display order."""
    definitions = engine.catalog.list(category=category, type=type, rarity=rarity)
    return AchievementListResponse(
        achievements=[AchievementResponse.from_definition(d) for d in definitions],
        total=len(definitions),
    )


@router.get("/achievements/{code}", response_model=AchievementResponse)
async def get_achievement(code: str, engine: ProgressionEngine = Depends(get_progression_engine)):
    definition = engine.catalog.get(code)
    if definition.is_secret or not definition.is_active:
        raise CatalogLookupError(f"Achievement not found: {code}")
    return AchievementResponse.from_definition(definition)


@router.put("/achievements/{code}", response_model=AchievementResponse)
async def put_achievement(
    code: str,
    body: AchievementUpsert,
    store: ProgressStore = Depends(get_store),
    registry: CatalogRegistry = Depends(get_catalog_registry),
):
    """Create or replace an achievement definition; the live catalog is swapped on success."""
    try:
        definition = AchievementDefinition.from_dict({**body.model_dump(), "code": code})
    except CatalogLookupError as e:
        raise HTTPException(status_code=422, detail=e.detail) from None
    await save_achievement(store, registry, definition)
    return AchievementResponse.from_definition(definition)


@router.delete("/achievements/{code}", response_model=AchievementResponse)
async def deactivate_achievement(
    code: str,
    store: ProgressStore = Depends(get_store),
    registry: CatalogRegistry = Depends(get_catalog_registry),
):
    """Deactivate an achievement. Users who already unlocked it keep it."""
    definition = dataclasses.replace(registry.get().get(code), is_active=False)
    await save_achievement(store, registry, definition)
    return AchievementResponse.from_definition(definition)


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels(max_level: int = Query(50, ge=1, le=200)):
    """XP required per level and cumulative XP to reach it."""
    return AllLevelsResponse(levels=[LevelEntry(**row) for row in level_table(max_level)])


# ── Per-user progress ──


@router.get("/users/{user_id}/progress", response_model=ProgressResponse)
async def get_progress(
    user_id: str, service: ProgressionService = Depends(get_progression_service)
):
    account = await service.get_progress(user_id)
    return ProgressResponse.from_account(account)


@router.post("/users/{user_id}/events", response_model=EventResultResponse)
async def post_learning_event(
    user_id: str,
    body: LearningEventRequest,
    service: ProgressionService = Depends(get_progression_service),
):
    """Apply a learning event (lesson_completed, quiz_passed, daily_checkin, level_completed)."""
    result = await retry_on_conflict(
        lambda: service.handle_event(user_id, body.event_type, body.payload),
        attempts=get_settings().conflict_retry_attempts,
    )
    return EventResultResponse.build(result.account, result.events)


@router.get(
    "/users/{user_id}/achievements/available",
    response_model=AvailableAchievementsResponse,
)
async def get_available_achievements(
    user_id: str, service: ProgressionService = Depends(get_progression_service)
):
    """Non-secret achievements plus secret ones the user already unlocked."""
    items = [
        AvailableAchievementResponse(
            **AchievementResponse.from_definition(definition).model_dump(),
            unlocked=unlocked_at is not None,
            unlocked_at=unlocked_at,
        )
        for definition, unlocked_at in await service.available_achievements(user_id)
    ]
    return AvailableAchievementsResponse(
        achievements=items,
        total_available=len(items),
        total_unlocked=sum(1 for i in items if i.unlocked),
    )


@router.put("/users/{user_id}/daily-goals", response_model=ProgressResponse)
async def put_daily_goals(
    user_id: str,
    body: DailyGoalsUpdate,
    service: ProgressionService = Depends(get_progression_service),
):
    account = await retry_on_conflict(
        lambda: service.update_daily_goals(
            user_id,
            xp_goal=body.xp_goal,
            minutes_goal=body.minutes_goal,
            lessons_goal=body.lessons_goal,
        ),
        attempts=get_settings().conflict_retry_attempts,
    )
    return ProgressResponse.from_account(account)


# ── Leaderboard ──


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    metric: str = Query("xp"),
    limit: int | None = Query(None),
    store: ProgressStore = Depends(get_store),
):
    """Top accounts by xp, cups or streak."""
    settings = get_settings()
    entries = await list_top_accounts(
        store,
        metric,
        limit if limit is not None else settings.leaderboard_default_limit,
        max_limit=settings.leaderboard_max_limit,
    )
    return LeaderboardResponse(
        metric=metric, entries=[LeaderboardEntry(**entry) for entry in entries]
    )


@router.get("/users/{user_id}/ranking", response_model=UserRankingResponse)
async def get_ranking(user_id: str, store: ProgressStore = Depends(get_store)):
    return UserRankingResponse(**await get_user_ranking(store, user_id))
