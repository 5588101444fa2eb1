"""
Database queries.

Module organization:
- progression.py: progression records, point audit trail, achievement
  catalog and unlocks, leaderboard ranking, streak statistics
"""

from progression.db.queries.progression import (
    insert_user_progression,
    select_user_progression,
    lock_user_progression,
    update_points,
    update_streak,
    insert_point_transaction,
    select_point_transactions,
    select_achievement,
    select_achievements,
    upsert_achievement,
    insert_unlock,
    select_unlocks,
    cohort_clause,
    select_ranked,
    count_ranked_ahead,
    select_streak_summary,
    select_top_streaks,
)

__all__ = [
    "insert_user_progression",
    "select_user_progression",
    "lock_user_progression",
    "update_points",
    "update_streak",
    "insert_point_transaction",
    "select_point_transactions",
    "select_achievement",
    "select_achievements",
    "upsert_achievement",
    "insert_unlock",
    "select_unlocks",
    "cohort_clause",
    "select_ranked",
    "count_ranked_ahead",
    "select_streak_summary",
    "select_top_streaks",
]
