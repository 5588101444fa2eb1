"""
Gamification components of the progression engine

- Points ledger and levels
- Daily writing streaks
- Achievement catalog and unlocks
- Leaderboard ranking
"""

from progression.gamification.levels import level_of, points_to_next_level, level_progress
from progression.gamification.points_ledger import PointsLedger
from progression.gamification.streak_system import StreakTracker, advance_streak
from progression.gamification.achievement_system import AchievementCatalog, AchievementUnlocker
from progression.gamification.leaderboard import LeaderboardRanker, age_band_for

__all__ = [
    "level_of",
    "points_to_next_level",
    "level_progress",
    "PointsLedger",
    "StreakTracker",
    "advance_streak",
    "AchievementCatalog",
    "AchievementUnlocker",
    "LeaderboardRanker",
    "age_band_for",
]
