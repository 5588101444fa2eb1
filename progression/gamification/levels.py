"""
Level calculation

Single source of truth for mapping points to levels. Every level shown or
stored anywhere is computed here.

Leveling curve: a flat 1000 points per level, starting at level 1.
- 0-999 points: level 1
- 1000-1999 points: level 2
- ...
"""

POINTS_PER_LEVEL = 1000


def level_of(points: int) -> int:
    """Level for a point total"""
    if points < 0:
        raise ValueError(f"Point totals are never negative, got {points}")
    return points // POINTS_PER_LEVEL + 1


def points_to_next_level(points: int) -> int:
    """Points still needed to reach the next level (always at least 1)"""
    return level_of(points) * POINTS_PER_LEVEL - points


def level_progress(points: int) -> dict[str, int]:
    """
    Level breakdown for display

    Returns:
        {
            'level': int,
            'points_in_level': int,
            'points_to_next_level': int,
            'next_level_at': int
        }
    """
    level = level_of(points)
    return {
        "level": level,
        "points_in_level": points - (level - 1) * POINTS_PER_LEVEL,
        "points_to_next_level": points_to_next_level(points),
        "next_level_at": level * POINTS_PER_LEVEL,
    }
