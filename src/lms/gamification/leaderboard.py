"""Leaderboard reads served straight from the progress store."""

from __future__ import annotations

from typing import Any

from lms.exceptions import InvalidLeaderboardQueryError
from lms.store.base import LEADERBOARD_COLUMNS, ProgressStore


def clamp_limit(limit: int, max_limit: int) -> int:
    return max(1, min(limit, max_limit))


async def list_top_accounts(
    store: ProgressStore, metric: str, limit: int, max_limit: int = 100
) -> list[dict[str, Any]]:
    """Ranked entries for ``metric`` (xp, cups or streak), ties broken by user id."""
    if metric not in LEADERBOARD_COLUMNS:
        raise InvalidLeaderboardQueryError(
            f"Unknown leaderboard metric {metric!r}; expected one of {sorted(LEADERBOARD_COLUMNS)}"
        )
    column = LEADERBOARD_COLUMNS[metric]
    accounts = await store.list_top_accounts(metric, clamp_limit(limit, max_limit))
    return [
        {
            "rank": i,
            "user_id": account.user_id,
            "value": getattr(account, column),
            "level": account.level,
        }
        for i, account in enumerate(accounts, start=1)
    ]


async def get_user_ranking(store: ProgressStore, user_id: str) -> dict[str, Any]:
    """Global XP rank for one user; rank is None if the user has no account yet."""
    account = await store.load_account(user_id)
    if account is None:
        return {
            "user_id": user_id,
            "rank": None,
            "level": 1,
            "total_xp_earned": 0,
            "cups": 0,
            "current_streak": 0,
        }
    above = await store.count_accounts_above(account.total_xp_earned)
    return {
        "user_id": user_id,
        "rank": above + 1,
        "level": account.level,
        "total_xp_earned": account.total_xp_earned,
        "cups": account.cups,
        "current_streak": account.current_streak,
    }
