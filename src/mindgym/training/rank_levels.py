"""Rank level thresholds and computation.

These values MUST match the client rank table (levels 1-7).
"""

from __future__ import annotations

RANK_THRESHOLDS: list[dict] = [
    {"level": 1, "title": "Novice", "xp_required": 0},
    {"level": 2, "title": "Awakened", "xp_required": 500},
    {"level": 3, "title": "Agile", "xp_required": 2500},
    {"level": 4, "title": "Logical", "xp_required": 10000},
    {"level": 5, "title": "Profound", "xp_required": 25000},
    {"level": 6, "title": "Master", "xp_required": 50000},
    {"level": 7, "title": "Transcendent", "xp_required": 80000},
]


def rank_level(xp: int) -> int:
    """Rank level for a total XP amount. Always derive from stored xp."""
    level = 1
    for tier in RANK_THRESHOLDS:
        if xp >= tier["xp_required"]:
            level = tier["level"]
    return level


def compute_rank(xp: int) -> dict:
    """Rank level plus title and progress toward the next level."""
    xp = max(0, xp)
    level = rank_level(xp)
    current = RANK_THRESHOLDS[level - 1]
    next_tier = RANK_THRESHOLDS[min(level, len(RANK_THRESHOLDS) - 1)]

    xp_into_level = xp - current["xp_required"]
    xp_for_level = next_tier["xp_required"] - current["xp_required"]

    # At max level, avoid division by zero
    if xp_for_level == 0:
        xp_for_level = 1

    return {
        "level": level,
        "title": current["title"],
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_level,
        "next_level": next_tier["level"],
        "next_title": next_tier["title"],
    }
