"""Level curve: XP needed per level and cumulative thresholds.

Level 1 needs 100 XP to advance; every level after needs floor(previous * 1.5).
"""

from __future__ import annotations

BASE_XP_TO_NEXT_LEVEL = 100
GROWTH_NUMERATOR = 3
GROWTH_DENOMINATOR = 2


def next_threshold(xp_to_next_level: int) -> int:
    """floor(xp_to_next_level * 1.5), in integer arithmetic."""
    return xp_to_next_level * GROWTH_NUMERATOR // GROWTH_DENOMINATOR


def xp_to_next_level(level: int) -> int:
    """XP required to advance from ``level`` to ``level + 1``."""
    if level < 1:
        raise ValueError(f"Level must be >= 1 (got {level})")
    required = BASE_XP_TO_NEXT_LEVEL
    for _ in range(level - 1):
        required = next_threshold(required)
    return required


def cumulative_xp_for_level(level: int) -> int:
    """Total XP earned from zero to reach the start of ``level``."""
    if level < 1:
        raise ValueError(f"Level must be >= 1 (got {level})")
    total = 0
    required = BASE_XP_TO_NEXT_LEVEL
    for _ in range(level - 1):
        total += required
        required = next_threshold(required)
    return total


def level_table(max_level: int = 50) -> list[dict]:
    """Level definitions for display: level, xp_required, cumulative."""
    table = []
    cumulative = 0
    required = BASE_XP_TO_NEXT_LEVEL
    for level in range(1, max_level + 1):
        table.append({"level": level, "xp_required": required, "cumulative": cumulative})
        cumulative += required
        required = next_threshold(required)
    return table


def compute_level(total_xp: int) -> dict:
    """Compute level info from lifetime XP.

    Matches what the engine's level-up loop produces for an account that
    earned ``total_xp`` starting from level 1.
    """
    if total_xp < 0:
        raise ValueError(f"Total XP must be >= 0 (got {total_xp})")
    level = 1
    remaining = total_xp
    required = BASE_XP_TO_NEXT_LEVEL
    while remaining >= required:
        remaining -= required
        level += 1
        required = next_threshold(required)

    return {
        "level": level,
        "xp_into_level": remaining,
        "xp_for_level": required,
        "next_level": level + 1,
        "progress_percent": round(remaining / required * 100, 1),
    }
