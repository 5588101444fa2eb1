"""Progression tables

Creates tables and indexes if they don't exist. Safe to call multiple times.
"""
import logging

from progression.db.connection import Database, db as default_db

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS user_progression (
        user_id TEXT PRIMARY KEY,
        total_points INTEGER NOT NULL DEFAULT 0 CHECK (total_points >= 0),
        level INTEGER NOT NULL DEFAULT 1 CHECK (level >= 1),
        streak INTEGER NOT NULL DEFAULT 0 CHECK (streak >= 0),
        longest_streak INTEGER NOT NULL DEFAULT 0 CHECK (longest_streak >= 0),
        last_active_date DATE,
        story_count INTEGER NOT NULL DEFAULT 0 CHECK (story_count >= 0),
        age INTEGER,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_user_progression_ranking
        ON user_progression (total_points DESC, level DESC, story_count DESC, user_id COLLATE "C")
    """,
    """
    CREATE TABLE IF NOT EXISTS achievements (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        description TEXT NOT NULL DEFAULT '',
        category TEXT NOT NULL,
        points_reward INTEGER NOT NULL DEFAULT 0 CHECK (points_reward >= 0),
        sort_order INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        criteria JSONB
    )
    """,
    "ALTER TABLE achievements ADD COLUMN IF NOT EXISTS criteria JSONB",
    # The primary key is the unlock-once gate
    """
    CREATE TABLE IF NOT EXISTS user_achievements (
        user_id TEXT NOT NULL REFERENCES user_progression (user_id),
        achievement_id TEXT NOT NULL REFERENCES achievements (id),
        unlocked_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        context JSONB,
        PRIMARY KEY (user_id, achievement_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS point_transactions (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES user_progression (user_id),
        amount INTEGER NOT NULL,
        requested_amount INTEGER NOT NULL,
        reason TEXT NOT NULL,
        resulting_total INTEGER NOT NULL CHECK (resulting_total >= 0),
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_user_progression_streak
        ON user_progression (streak DESC)
        WHERE streak > 0 AND is_active
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_point_transactions_user
        ON point_transactions (user_id, created_at DESC)
    """,
]


async def ensure_schema(database: Database = default_db) -> None:
    """Create progression tables and indexes"""
    async with database.connection() as conn:
        async with conn.transaction():
            async with conn.cursor() as cur:
                for statement in SCHEMA_STATEMENTS:
                    await cur.execute(statement)
    logger.info("Progression schema ensured")
