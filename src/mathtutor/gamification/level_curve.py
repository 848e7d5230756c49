"""Level curve and rank titles.

Level 1 spans 0-99 XP. Each further level costs ``100 * (level - 1) * 1.5 + 100``
XP on top of the previous one, so level 2 starts at 100, level 3 at 350,
level 4 at 750. There is no level cap; the curve is evaluated iteratively.
"""

from __future__ import annotations

from mathtutor.errors import InvalidInputError

FIRST_LEVEL_COST = 100

RANK_TITLES: list[dict] = [
    {"title": "Novice", "badge": "I", "color": "#94a3b8", "min_level": 1},
    {"title": "Apprentice", "badge": "II", "color": "#60a5fa", "min_level": 3},
    {"title": "Scholar", "badge": "III", "color": "#34d399", "min_level": 6},
    {"title": "Expert", "badge": "IV", "color": "#fbbf24", "min_level": 10},
    {"title": "Master", "badge": "V", "color": "#f59e0b", "min_level": 15},
    {"title": "Grandmaster", "badge": "VI", "color": "#8b5cf6", "min_level": 20},
    {"title": "Legend", "badge": "VII", "color": "#ec4899", "min_level": 30},
    {"title": "Mythical", "badge": "VIII", "color": "#06b6d4", "min_level": 50},
    {"title": "Immortal", "badge": "IX", "color": "#d946ef", "min_level": 100},
]


def _level_cost(level: int) -> int:
    """XP needed to go from ``level`` to ``level + 1``."""
    return round(100 * (level - 1) * 1.5 + FIRST_LEVEL_COST)


def level_for(total_xp: int) -> tuple[int, int]:
    """Return ``(level, xp_to_next_level)`` for a cumulative XP total."""
    if total_xp < 0:
        raise InvalidInputError(f"total_xp must be non-negative, got {total_xp}")

    level = 1
    threshold = FIRST_LEVEL_COST
    accumulated = 0
    while accumulated + threshold <= total_xp:
        accumulated += threshold
        level += 1
        threshold = _level_cost(level)
    return level, threshold - (total_xp - accumulated)


def rank_for_level(level: int) -> dict:
    """Rank tier (title, badge, color) for a level. Levels below 1 get the first tier."""
    current = RANK_TITLES[0]
    for tier in RANK_TITLES:
        if level >= tier["min_level"]:
            current = tier
    return current


def compute_level(total_xp: int) -> dict:
    """Full level view for API responses."""
    level, xp_to_next = level_for(total_xp)
    xp_for_level = _level_cost(level)
    return {
        "level": level,
        "xp_to_next_level": xp_to_next,
        "xp_into_level": xp_for_level - xp_to_next,
        "xp_for_level": xp_for_level,
        "rank_title": rank_for_level(level)["title"],
    }


def level_thresholds(up_to: int) -> list[dict]:
    """Cumulative XP at which each of levels 1..up_to starts."""
    thresholds = []
    cumulative = 0
    for level in range(1, up_to + 1):
        thresholds.append({
            "level": level,
            "xp_required": _level_cost(level - 1) if level > 1 else 0,
            "cumulative": cumulative,
            "rank_title": rank_for_level(level)["title"],
        })
        cumulative += _level_cost(level)
    return thresholds
