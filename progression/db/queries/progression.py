"""Progression database queries

Every function takes an open cursor so callers decide the transaction
boundary. Mutating functions expect to run inside a transaction that already
holds the user's row lock (see ``lock_user_progression``).
"""
import json
import logging
from typing import Optional

from psycopg import AsyncCursor

from progression.models.progression import (
    AchievementDefinition,
    LeaderboardFilter,
    PointTransaction,
    UserAchievementUnlock,
    UserProgressionState,
)

logger = logging.getLogger(__name__)

_PROGRESSION_COLUMNS = """
    user_id, total_points, level, streak, longest_streak,
    last_active_date, story_count, age, is_active
"""

_ACHIEVEMENT_COLUMNS = "id, name, description, category, points_reward, sort_order, is_active, criteria"


# ==========================================
# User progression
# ==========================================

async def insert_user_progression(cur: AsyncCursor, user_id: str) -> bool:
    """
    Create a zeroed progression record

    Returns:
        True if created, False if the user already had one
    """
    await cur.execute(
        """
        INSERT INTO user_progression (user_id)
        VALUES (%s)
        ON CONFLICT (user_id) DO NOTHING
        RETURNING user_id
        """,
        (user_id,)
    )
    created = await cur.fetchone() is not None
    if created:
        logger.info(f"Created progression record for user {user_id}")
    return created


async def select_user_progression(cur: AsyncCursor, user_id: str) -> Optional[dict]:
    """Plain snapshot read, no lock"""
    await cur.execute(
        f"""
        SELECT {_PROGRESSION_COLUMNS}
        FROM user_progression
        WHERE user_id = %s
        """,
        (user_id,)
    )
    return await cur.fetchone()


async def lock_user_progression(cur: AsyncCursor, user_id: str) -> Optional[dict]:
    """
    Read a user's record and hold its row lock until the transaction ends

    Concurrent units of work for the same user queue here, which is what
    makes the read-compare-write of points and streak atomic.
    """
    await cur.execute(
        f"""
        SELECT {_PROGRESSION_COLUMNS}
        FROM user_progression
        WHERE user_id = %s
        FOR UPDATE
        """,
        (user_id,)
    )
    return await cur.fetchone()


async def update_points(cur: AsyncCursor, user_id: str, total_points: int, level: int) -> None:
    await cur.execute(
        """
        UPDATE user_progression
        SET total_points = %s,
            level = %s,
            updated_at = CURRENT_TIMESTAMP
        WHERE user_id = %s
        """,
        (total_points, level, user_id)
    )


async def update_streak(
    cur: AsyncCursor,
    user_id: str,
    streak: int,
    longest_streak: int,
    last_active_date
) -> None:
    await cur.execute(
        """
        UPDATE user_progression
        SET streak = %s,
            longest_streak = %s,
            last_active_date = %s,
            updated_at = CURRENT_TIMESTAMP
        WHERE user_id = %s
        """,
        (streak, longest_streak, last_active_date, user_id)
    )


# ==========================================
# Point audit trail
# ==========================================

async def insert_point_transaction(cur: AsyncCursor, transaction: PointTransaction) -> None:
    await cur.execute(
        """
        INSERT INTO point_transactions
            (user_id, amount, requested_amount, reason, resulting_total, created_at)
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        (
            transaction.user_id,
            transaction.amount,
            transaction.requested_amount,
            transaction.reason,
            transaction.resulting_total,
            transaction.timestamp,
        )
    )


async def select_point_transactions(cur: AsyncCursor, user_id: str, limit: int) -> list[dict]:
    """Most recent transactions first"""
    await cur.execute(
        """
        SELECT user_id, amount, requested_amount, reason, resulting_total,
               created_at AS timestamp
        FROM point_transactions
        WHERE user_id = %s
        ORDER BY created_at DESC, id DESC
        LIMIT %s
        """,
        (user_id, limit)
    )
    return await cur.fetchall()


# ==========================================
# Achievements
# ==========================================

async def select_achievement(cur: AsyncCursor, achievement_id: str) -> Optional[dict]:
    await cur.execute(
        f"""
        SELECT {_ACHIEVEMENT_COLUMNS}
        FROM achievements
        WHERE id = %s
        """,
        (achievement_id,)
    )
    return await cur.fetchone()


async def select_achievements(
    cur: AsyncCursor,
    category: Optional[str] = None,
    include_inactive: bool = False
) -> list[dict]:
    conditions = []
    params: list = []
    if not include_inactive:
        conditions.append("is_active")
    if category is not None:
        conditions.append("category = %s")
        params.append(category)
    where = " AND ".join(conditions) if conditions else "TRUE"

    await cur.execute(
        f"""
        SELECT {_ACHIEVEMENT_COLUMNS}
        FROM achievements
        WHERE {where}
        ORDER BY sort_order, id
        """,
        params
    )
    return await cur.fetchall()


async def upsert_achievement(cur: AsyncCursor, definition: AchievementDefinition) -> None:
    await cur.execute(
        """
        INSERT INTO achievements
            (id, name, description, category, points_reward, sort_order, is_active, criteria)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (id) DO UPDATE
        SET name = EXCLUDED.name,
            description = EXCLUDED.description,
            category = EXCLUDED.category,
            points_reward = EXCLUDED.points_reward,
            sort_order = EXCLUDED.sort_order,
            is_active = EXCLUDED.is_active,
            criteria = EXCLUDED.criteria
        """,
        (
            definition.id,
            definition.name,
            definition.description,
            definition.category,
            definition.points_reward,
            definition.sort_order,
            definition.is_active,
            json.dumps(definition.criteria.model_dump()) if definition.criteria else None,
        )
    )


async def insert_unlock(cur: AsyncCursor, unlock: UserAchievementUnlock) -> bool:
    """
    Record an unlock unless one already exists for the pair

    Returns:
        True if inserted, False if the user already had it
    """
    await cur.execute(
        """
        INSERT INTO user_achievements (user_id, achievement_id, unlocked_at, context)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT (user_id, achievement_id) DO NOTHING
        RETURNING achievement_id
        """,
        (
            unlock.user_id,
            unlock.achievement_id,
            unlock.unlocked_at,
            json.dumps(unlock.context) if unlock.context is not None else None,
        )
    )
    return await cur.fetchone() is not None


async def select_unlocks(cur: AsyncCursor, user_id: str) -> list[dict]:
    await cur.execute(
        """
        SELECT user_id, achievement_id, unlocked_at, context
        FROM user_achievements
        WHERE user_id = %s
        ORDER BY unlocked_at DESC
        """,
        (user_id,)
    )
    return await cur.fetchall()


# ==========================================
# Leaderboard
# ==========================================

def cohort_clause(flt: LeaderboardFilter) -> tuple[str, list]:
    """Translate a leaderboard filter into a WHERE fragment and its parameters"""
    conditions = []
    params: list = []
    if not flt.include_inactive:
        conditions.append("is_active")
    if flt.min_age is not None:
        conditions.append("age >= %s")
        params.append(flt.min_age)
    if flt.max_age is not None:
        conditions.append("age <= %s")
        params.append(flt.max_age)
    return (" AND ".join(conditions) if conditions else "TRUE"), params


async def select_ranked(cur: AsyncCursor, flt: LeaderboardFilter) -> list[dict]:
    where, params = cohort_clause(flt)
    await cur.execute(
        f"""
        SELECT {_PROGRESSION_COLUMNS}
        FROM user_progression
        WHERE {where}
        ORDER BY total_points DESC, level DESC, story_count DESC, user_id COLLATE "C" ASC
        LIMIT %s
        """,
        [*params, flt.limit]
    )
    return await cur.fetchall()


async def count_ranked_ahead(
    cur: AsyncCursor,
    state: UserProgressionState,
    flt: LeaderboardFilter
) -> int:
    """Count cohort members ordered strictly before ``state``"""
    where, params = cohort_clause(flt)
    points, level, stories = state.total_points, state.level, state.story_count
    await cur.execute(
        f"""
        SELECT COUNT(*) AS ahead
        FROM user_progression
        WHERE {where}
          AND (
                total_points > %s
             OR (total_points = %s AND level > %s)
             OR (total_points = %s AND level = %s AND story_count > %s)
             OR (total_points = %s AND level = %s AND story_count = %s
                 AND user_id COLLATE "C" < %s)
          )
        """,
        [
            *params,
            points,
            points, level,
            points, level, stories,
            points, level, stories, state.user_id,
        ]
    )
    row = await cur.fetchone()
    return row["ahead"] if row else 0


# ==========================================
# Streak statistics
# ==========================================

async def select_streak_summary(cur: AsyncCursor) -> dict:
    """Count, sum and maximum of live streaks among active users"""
    await cur.execute(
        """
        SELECT COUNT(*) AS active,
               COALESCE(SUM(streak), 0) AS total_days,
               COALESCE(MAX(streak), 0) AS longest
        FROM user_progression
        WHERE streak > 0 AND is_active
        """
    )
    return await cur.fetchone()


async def select_top_streaks(cur: AsyncCursor, limit: int) -> list[dict]:
    await cur.execute(
        """
        SELECT user_id, streak
        FROM user_progression
        WHERE streak > 0 AND is_active
        ORDER BY streak DESC, user_id COLLATE "C" ASC
        LIMIT %s
        """,
        (limit,)
    )
    return await cur.fetchall()
