"""SQLAlchemy-backed ProgressStore.

Writes go into the session's transaction; ``commit()`` makes them durable.
Version checks run as conditional UPDATEs, so a concurrent writer that got
there first makes the UPDATE match no row.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.models import (
    AchievementDefinitionRow,
    ProgressAccountRow,
    RoadmapLevelRow,
    UserRoadmapProgressRow,
)
from lms.exceptions import ConcurrencyConflictError, InvalidLeaderboardQueryError
from lms.gamification.account import ProgressAccount
from lms.gamification.catalog import AchievementCatalog, AchievementDefinition
from lms.roadmap.models import RoadmapLevel, UserRoadmapProgress
from lms.store.base import LEADERBOARD_COLUMNS


def _account_values(account: ProgressAccount) -> dict[str, Any]:
    data = account.to_dict()
    return {
        "level": account.level,
        "xp": account.xp,
        "xp_to_next_level": account.xp_to_next_level,
        "total_xp_earned": account.total_xp_earned,
        "cups": account.cups,
        "total_cups_earned": account.total_cups_earned,
        "current_streak": account.current_streak,
        "longest_streak": account.longest_streak,
        "last_activity_date": account.last_activity_date,
        "unlocked_achievements": data["unlocked_achievements"],
        "daily_goals": data["daily_goals"],
        "today_progress": data["today_progress"],
        "stats": data["stats"],
    }


def _row_to_account(row: ProgressAccountRow) -> ProgressAccount:
    return ProgressAccount.from_dict(
        {
            "user_id": row.user_id,
            "level": row.level,
            "xp": row.xp,
            "xp_to_next_level": row.xp_to_next_level,
            "total_xp_earned": row.total_xp_earned,
            "cups": row.cups,
            "total_cups_earned": row.total_cups_earned,
            "current_streak": row.current_streak,
            "longest_streak": row.longest_streak,
            "last_activity_date": row.last_activity_date,
            "unlocked_achievements": row.unlocked_achievements,
            "daily_goals": row.daily_goals,
            "today_progress": row.today_progress,
            "stats": row.stats,
            "version": row.version,
        }
    )


def _progress_values(progress: UserRoadmapProgress) -> dict[str, Any]:
    data = progress.to_dict()
    return {
        "current_level_id": progress.current_level_id,
        "unlocked_levels": data["unlocked_levels"],
        "completed_levels": data["completed_levels"],
        "level_progress": data["level_progress"],
        "total_xp_earned": progress.total_xp_earned,
        "total_cups_earned": progress.total_cups_earned,
    }


def _row_to_progress(row: UserRoadmapProgressRow) -> UserRoadmapProgress:
    return UserRoadmapProgress.from_dict(
        {
            "user_id": row.user_id,
            "course_id": row.course_id,
            "current_level_id": row.current_level_id,
            "unlocked_levels": row.unlocked_levels,
            "completed_levels": row.completed_levels,
            "level_progress": row.level_progress,
            "total_xp_earned": row.total_xp_earned,
            "total_cups_earned": row.total_cups_earned,
            "version": row.version,
        }
    )


class SqlProgressStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Accounts ---

    async def load_account(self, user_id: str) -> ProgressAccount | None:
        result = await self.session.execute(
            select(ProgressAccountRow)
            .where(ProgressAccountRow.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _row_to_account(row) if row else None

    async def save_account(self, account: ProgressAccount, expected_version: int) -> None:
        values = _account_values(account)
        if expected_version == 0:
            self.session.add(
                ProgressAccountRow(user_id=account.user_id, version=1, **values)
            )
            try:
                await self.session.flush()
            except IntegrityError:
                raise ConcurrencyConflictError(
                    f"Account {account.user_id} already exists"
                ) from None
        else:
            result = await self.session.execute(
                update(ProgressAccountRow)
                .where(
                    ProgressAccountRow.user_id == account.user_id,
                    ProgressAccountRow.version == expected_version,
                )
                .values(version=expected_version + 1, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConcurrencyConflictError(
                    f"Account {account.user_id} is not at version {expected_version}"
                )
        account.version = expected_version + 1

    # --- Roadmap ---

    async def load_roadmap_progress(
        self, user_id: str, course_id: str
    ) -> UserRoadmapProgress | None:
        result = await self.session.execute(
            select(UserRoadmapProgressRow)
            .where(
                UserRoadmapProgressRow.user_id == user_id,
                UserRoadmapProgressRow.course_id == course_id,
            )
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _row_to_progress(row) if row else None

    async def save_roadmap_progress(
        self, progress: UserRoadmapProgress, expected_version: int
    ) -> None:
        values = _progress_values(progress)
        if expected_version == 0:
            self.session.add(
                UserRoadmapProgressRow(
                    user_id=progress.user_id,
                    course_id=progress.course_id,
                    version=1,
                    **values,
                )
            )
            try:
                await self.session.flush()
            except IntegrityError:
                raise ConcurrencyConflictError(
                    f"Roadmap progress for {progress.user_id}/{progress.course_id} already exists"
                ) from None
        else:
            result = await self.session.execute(
                update(UserRoadmapProgressRow)
                .where(
                    UserRoadmapProgressRow.user_id == progress.user_id,
                    UserRoadmapProgressRow.course_id == progress.course_id,
                    UserRoadmapProgressRow.version == expected_version,
                )
                .values(version=expected_version + 1, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConcurrencyConflictError(
                    f"Roadmap progress for {progress.user_id}/{progress.course_id} "
                    f"is not at version {expected_version}"
                )
        progress.version = expected_version + 1

    async def load_roadmap_levels(self, course_id: str) -> list[RoadmapLevel]:
        result = await self.session.execute(
            select(RoadmapLevelRow)
            .where(RoadmapLevelRow.course_id == course_id)
            .order_by(RoadmapLevelRow.level_number)
            .execution_options(populate_existing=True)
        )
        return [
            RoadmapLevel.from_dict(
                {
                    "id": row.id,
                    "course_id": row.course_id,
                    "level_number": row.level_number,
                    "title": row.title,
                    "description": row.description,
                    "difficulty": row.difficulty,
                    "estimated_duration": row.estimated_duration,
                    "is_active": row.is_active,
                    "unlock_requirements": row.unlock_requirements,
                    "rewards": row.rewards,
                    "lessons": row.lessons,
                }
            )
            for row in result.scalars().all()
        ]

    async def save_roadmap_level(self, level: RoadmapLevel) -> None:
        await self.session.merge(RoadmapLevelRow(**level.to_dict()))
        await self.session.flush()

    # --- Catalog ---

    async def load_achievement_catalog(self) -> AchievementCatalog:
        result = await self.session.execute(
            select(AchievementDefinitionRow).execution_options(populate_existing=True)
        )
        return AchievementCatalog(
            AchievementDefinition.from_dict(
                {
                    "code": row.code,
                    "name": row.name,
                    "description": row.description,
                    "type": row.type,
                    "category": row.category,
                    "icon": row.icon,
                    "rarity": row.rarity,
                    "xp_reward": row.xp_reward,
                    "cups_reward": row.cups_reward,
                    "predicate": row.predicate,
                    "is_active": row.is_active,
                    "is_secret": row.is_secret,
                    "sort_order": row.sort_order,
                }
            )
            for row in result.scalars().all()
        )

    async def save_achievement_definition(self, definition: AchievementDefinition) -> None:
        await self.session.merge(AchievementDefinitionRow(**definition.to_dict()))
        await self.session.flush()

    # --- Leaderboard ---

    async def list_top_accounts(self, metric: str, limit: int) -> list[ProgressAccount]:
        column_name = LEADERBOARD_COLUMNS.get(metric)
        if column_name is None:
            raise InvalidLeaderboardQueryError(f"Unknown leaderboard metric: {metric!r}")
        column = getattr(ProgressAccountRow, column_name)
        result = await self.session.execute(
            select(ProgressAccountRow)
            .order_by(desc(column), ProgressAccountRow.user_id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [_row_to_account(row) for row in result.scalars().all()]

    async def count_accounts_above(self, total_xp_earned: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(ProgressAccountRow)
            .where(ProgressAccountRow.total_xp_earned > total_xp_earned)
        )
        return result.scalar_one()

    # --- Unit of work ---

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
