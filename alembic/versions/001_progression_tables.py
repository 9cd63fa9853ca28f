"""Progression tables.

Creates progress_accounts, achievement_definitions, roadmap_levels and
user_roadmap_progress.

Revision ID: 001_progression_tables
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progression_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Progress Accounts ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS progress_accounts (
            user_id VARCHAR(64) PRIMARY KEY,
            level INTEGER NOT NULL DEFAULT 1,
            xp BIGINT NOT NULL DEFAULT 0,
            xp_to_next_level BIGINT NOT NULL DEFAULT 100,
            total_xp_earned BIGINT NOT NULL DEFAULT 0,
            cups BIGINT NOT NULL DEFAULT 0,
            total_cups_earned BIGINT NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity_date DATE,
            unlocked_achievements JSONB NOT NULL DEFAULT '[]',
            daily_goals JSONB NOT NULL DEFAULT '{}',
            today_progress JSONB NOT NULL DEFAULT '{}',
            stats JSONB NOT NULL DEFAULT '{}',
            version INTEGER NOT NULL DEFAULT 1,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (level >= 1),
            CHECK (xp >= 0 AND xp < xp_to_next_level),
            CHECK (cups >= 0),
            CHECK (longest_streak >= current_streak AND current_streak >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_progress_accounts_total_xp
        ON progress_accounts(total_xp_earned)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_progress_accounts_cups
        ON progress_accounts(cups)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_progress_accounts_current_streak
        ON progress_accounts(current_streak)
    """)

    # --- Achievement Definitions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievement_definitions (
            code VARCHAR(64) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            type VARCHAR(16) NOT NULL DEFAULT 'badge',
            category VARCHAR(16) NOT NULL,
            icon VARCHAR(64) NOT NULL DEFAULT '',
            rarity VARCHAR(16) NOT NULL DEFAULT 'common',
            xp_reward INTEGER NOT NULL DEFAULT 0,
            cups_reward INTEGER NOT NULL DEFAULT 0,
            predicate JSONB NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true,
            is_secret BOOLEAN NOT NULL DEFAULT false,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)

    # --- Roadmap Levels ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS roadmap_levels (
            id VARCHAR(64) PRIMARY KEY,
            course_id VARCHAR(64) NOT NULL,
            level_number INTEGER NOT NULL,
            title VARCHAR(200) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            difficulty VARCHAR(16) NOT NULL DEFAULT 'beginner',
            estimated_duration INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            unlock_requirements JSONB NOT NULL DEFAULT '{}',
            rewards JSONB NOT NULL DEFAULT '{}',
            lessons JSONB NOT NULL DEFAULT '[]'
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_roadmap_levels_course
        ON roadmap_levels(course_id, level_number)
    """)

    # --- User Roadmap Progress ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_roadmap_progress (
            user_id VARCHAR(64) NOT NULL,
            course_id VARCHAR(64) NOT NULL,
            current_level_id VARCHAR(64),
            unlocked_levels JSONB NOT NULL DEFAULT '[]',
            completed_levels JSONB NOT NULL DEFAULT '[]',
            level_progress JSONB NOT NULL DEFAULT '{}',
            total_xp_earned BIGINT NOT NULL DEFAULT 0,
            total_cups_earned BIGINT NOT NULL DEFAULT 0,
            version INTEGER NOT NULL DEFAULT 1,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (user_id, course_id)
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_roadmap_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS roadmap_levels CASCADE")
    op.execute("DROP TABLE IF EXISTS achievement_definitions CASCADE")
    op.execute("DROP TABLE IF EXISTS progress_accounts CASCADE")
