"""ORM models for progression state.

Leaderboard-facing counters live in their own columns so ranking queries can
use indexes; nested records (achievements, goals, stats, roadmap lists) are
stored as JSON documents.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from lms.db.base import Base, JSONType


# ---------------------------------------------------------------------------
# Progress accounts
# ---------------------------------------------------------------------------


class ProgressAccountRow(Base):
    """One row per user. ``version`` is the optimistic concurrency token."""

    __tablename__ = "progress_accounts"
    __table_args__ = (
        Index("ix_progress_accounts_total_xp", "total_xp_earned"),
        Index("ix_progress_accounts_cups", "cups"),
        Index("ix_progress_accounts_current_streak", "current_streak"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    xp_to_next_level: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="100")
    total_xp_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    cups: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    total_cups_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    unlocked_achievements: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    daily_goals: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    today_progress: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    stats: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


# ---------------------------------------------------------------------------
# Achievement catalog
# ---------------------------------------------------------------------------


class AchievementDefinitionRow(Base):
    __tablename__ = "achievement_definitions"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="badge")
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    icon: Mapped[str] = mapped_column(String(64), nullable=False, server_default="")
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, server_default="common")
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    cups_reward: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    predicate: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    is_secret: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


# ---------------------------------------------------------------------------
# Roadmaps
# ---------------------------------------------------------------------------


class RoadmapLevelRow(Base):
    __tablename__ = "roadmap_levels"
    __table_args__ = (Index("ix_roadmap_levels_course", "course_id", "level_number"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    level_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False, server_default="beginner")
    estimated_duration: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    unlock_requirements: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    rewards: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    lessons: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)


class UserRoadmapProgressRow(Base):
    __tablename__ = "user_roadmap_progress"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_level_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    unlocked_levels: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    completed_levels: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    level_progress: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    total_xp_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    total_cups_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
