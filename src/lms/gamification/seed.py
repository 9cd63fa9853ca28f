"""Default achievement catalog seeded on startup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lms.gamification.catalog import AchievementCatalog, AchievementDefinition

if TYPE_CHECKING:
    from lms.store.base import ProgressStore

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Learning milestones
    {
        "code": "FIRST_LESSON",
        "name": "First Steps",
        "description": "Complete your very first lesson",
        "type": "milestone",
        "category": "learning",
        "icon": "footprints",
        "rarity": "common",
        "xp_reward": 20,
        "cups_reward": 1,
        "predicate": {"kind": "lessons_completed_at_least", "count": 1},
        "sort_order": 1,
    },
    {
        "code": "LESSONS_10",
        "name": "Getting Started",
        "description": "Complete 10 lessons",
        "type": "milestone",
        "category": "learning",
        "icon": "rocket",
        "rarity": "common",
        "xp_reward": 50,
        "cups_reward": 2,
        "predicate": {"kind": "lessons_completed_at_least", "count": 10},
        "sort_order": 2,
    },
    {
        "code": "LESSONS_100",
        "name": "Century",
        "description": "Complete 100 lessons",
        "type": "trophy",
        "category": "learning",
        "icon": "hundred",
        "rarity": "rare",
        "xp_reward": 200,
        "cups_reward": 10,
        "predicate": {"kind": "lessons_completed_at_least", "count": 100},
        "sort_order": 3,
    },
    {
        "code": "STUDY_10_HOURS",
        "name": "Deep Focus",
        "description": "Study for 10 hours in total",
        "type": "badge",
        "category": "learning",
        "icon": "hourglass",
        "rarity": "rare",
        "xp_reward": 100,
        "cups_reward": 5,
        "predicate": {"kind": "learning_minutes_at_least", "minutes": 600},
        "sort_order": 4,
    },
    # Quizzes
    {
        "code": "FIRST_QUIZ",
        "name": "Quiz Taker",
        "description": "Pass your first quiz",
        "type": "badge",
        "category": "learning",
        "icon": "clipboard",
        "rarity": "common",
        "xp_reward": 20,
        "cups_reward": 1,
        "predicate": {"kind": "quizzes_passed_at_least", "count": 1},
        "sort_order": 10,
    },
    {
        "code": "PERFECT_QUIZ",
        "name": "Flawless",
        "description": "Score 100% on a quiz",
        "type": "badge",
        "category": "perfection",
        "icon": "sparkles",
        "rarity": "rare",
        "xp_reward": 50,
        "cups_reward": 3,
        "predicate": {"kind": "quiz_score_at_least", "score": 100},
        "sort_order": 11,
    },
    {
        "code": "PERFECTIONIST",
        "name": "Perfectionist",
        "description": "Score 100% on 10 quizzes",
        "type": "trophy",
        "category": "perfection",
        "icon": "gem",
        "rarity": "epic",
        "xp_reward": 250,
        "cups_reward": 15,
        "predicate": {"kind": "perfect_quizzes_at_least", "count": 10},
        "sort_order": 12,
    },
    # Streaks
    {
        "code": "STREAK_3",
        "name": "On a Roll",
        "description": "Learn 3 days in a row",
        "type": "badge",
        "category": "streak",
        "icon": "flame",
        "rarity": "common",
        "xp_reward": 30,
        "cups_reward": 1,
        "predicate": {"kind": "streak_at_least", "days": 3},
        "sort_order": 20,
    },
    {
        "code": "STREAK_7",
        "name": "Consistent",
        "description": "Learn 7 days in a row",
        "type": "badge",
        "category": "streak",
        "icon": "fire",
        "rarity": "rare",
        "xp_reward": 100,
        "cups_reward": 5,
        "predicate": {"kind": "streak_at_least", "days": 7},
        "sort_order": 21,
    },
    {
        "code": "STREAK_30",
        "name": "Dedicated",
        "description": "Learn 30 days in a row",
        "type": "trophy",
        "category": "streak",
        "icon": "muscle",
        "rarity": "epic",
        "xp_reward": 500,
        "cups_reward": 25,
        "predicate": {"kind": "streak_at_least", "days": 30},
        "sort_order": 22,
    },
    {
        "code": "STREAK_365",
        "name": "Legendary Learner",
        "description": "Learn every day for a year",
        "type": "trophy",
        "category": "streak",
        "icon": "crown",
        "rarity": "legendary",
        "xp_reward": 5000,
        "cups_reward": 200,
        "predicate": {"kind": "streak_at_least", "days": 365},
        "sort_order": 23,
    },
    # Levels and completion
    {
        "code": "LEVEL_5",
        "name": "Rising Scholar",
        "description": "Reach level 5",
        "type": "milestone",
        "category": "completion",
        "icon": "star",
        "rarity": "common",
        "xp_reward": 0,
        "cups_reward": 5,
        "predicate": {"kind": "level_at_least", "level": 5},
        "sort_order": 30,
    },
    {
        "code": "LEVEL_10",
        "name": "Honor Student",
        "description": "Reach level 10",
        "type": "milestone",
        "category": "completion",
        "icon": "medal",
        "rarity": "rare",
        "xp_reward": 0,
        "cups_reward": 15,
        "predicate": {"kind": "level_at_least", "level": 10},
        "sort_order": 31,
    },
    {
        "code": "FIRST_ROADMAP_LEVEL",
        "name": "Pathfinder",
        "description": "Complete your first roadmap level",
        "type": "badge",
        "category": "completion",
        "icon": "map",
        "rarity": "common",
        "xp_reward": 25,
        "cups_reward": 2,
        "predicate": {"kind": "levels_completed_at_least", "count": 1},
        "sort_order": 32,
    },
    {
        "code": "FIRST_COURSE",
        "name": "Graduate",
        "description": "Complete an entire course",
        "type": "trophy",
        "category": "completion",
        "icon": "graduation-cap",
        "rarity": "rare",
        "xp_reward": 150,
        "cups_reward": 10,
        "predicate": {"kind": "courses_completed_at_least", "count": 1},
        "sort_order": 33,
    },
    # Special
    {
        "code": "EARLY_BIRD",
        "name": "Early Bird",
        "description": "Check in for your daily practice",
        "type": "special",
        "category": "streak",
        "icon": "sunrise",
        "rarity": "common",
        "xp_reward": 10,
        "cups_reward": 0,
        "predicate": {"kind": "event", "event_type": "daily_checkin"},
        "sort_order": 40,
    },
    {
        "code": "XP_10K",
        "name": "Knowledge Hoarder",
        "description": "Earn 10,000 XP in total",
        "type": "special",
        "category": "learning",
        "icon": "vault",
        "rarity": "epic",
        "xp_reward": 0,
        "cups_reward": 50,
        "predicate": {"kind": "total_xp_at_least", "xp": 10_000},
        "is_secret": True,
        "sort_order": 41,
    },
]


def default_catalog() -> AchievementCatalog:
    """Build the default catalog from the seed data."""
    return AchievementCatalog(AchievementDefinition.from_dict(d) for d in ACHIEVEMENT_SEED_DATA)


async def seed_achievements(store: ProgressStore) -> int:
    """Upsert the default achievement definitions. Returns number seeded."""
    seeded = 0
    for definition in default_catalog():
        await store.save_achievement_definition(definition)
        seeded += 1
    await store.commit()
    logger.info("Seeded %d achievement definitions", seeded)
    return seeded
