"""
Progression storage

``ProgressionStore`` is the seam between the engine and its backing store.
Mutations go through ``unit_of_work(user_id)``: a transaction holding the
user's row lock, inside which points, streak, audit entries and unlock rows
commit together or not at all. Unlock uniqueness is enforced by the
``(user_id, achievement_id)`` primary key, not by application checks.
"""
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncContextManager, AsyncGenerator, NamedTuple, Optional, Protocol

import psycopg

from progression.db import queries
from progression.db.connection import Database, db as default_db
from progression.exceptions import NotFoundError, wrap_storage_exception
from progression.models.progression import (
    AchievementDefinition,
    LeaderboardFilter,
    PointTransaction,
    StreakLeader,
    UserAchievementUnlock,
    UserProgressionState,
)

logger = logging.getLogger(__name__)


class StreakSummary(NamedTuple):
    """Aggregate over live streaks of active users"""
    active: int
    total_days: int
    longest: int


class ProgressionUnitOfWork(Protocol):
    """Row-locked view of one user's record; writes commit on clean exit"""

    state: UserProgressionState

    async def save_points(self, total_points: int, level: int) -> None: ...

    async def save_streak(self, streak: int, longest_streak: int, last_active_date: Optional[date]) -> None: ...

    async def append_transaction(self, transaction: PointTransaction) -> None: ...

    async def insert_unlock(self, unlock: UserAchievementUnlock) -> bool: ...


class ProgressionStore(Protocol):
    """Storage primitives the engine needs"""

    def unit_of_work(self, user_id: str) -> AsyncContextManager[ProgressionUnitOfWork]: ...

    async def create_user(self, user_id: str) -> UserProgressionState: ...

    async def get_user(self, user_id: str) -> Optional[UserProgressionState]: ...

    async def get_achievement(self, achievement_id: str) -> Optional[AchievementDefinition]: ...

    async def list_achievements(
        self, category: Optional[str] = None, include_inactive: bool = False
    ) -> list[AchievementDefinition]: ...

    async def save_achievement(self, definition: AchievementDefinition) -> None: ...

    async def list_unlocks(self, user_id: str) -> list[UserAchievementUnlock]: ...

    async def list_transactions(self, user_id: str, limit: int) -> list[PointTransaction]: ...

    async def top_ranked(self, flt: LeaderboardFilter) -> list[UserProgressionState]: ...

    async def count_ranked_ahead(self, state: UserProgressionState, flt: LeaderboardFilter) -> int: ...

    async def streak_summary(self) -> StreakSummary: ...

    async def top_streaks(self, limit: int) -> list[StreakLeader]: ...


class _PostgresUnitOfWork:
    """Writes through the cursor of a transaction that holds the row lock"""

    def __init__(self, cur: psycopg.AsyncCursor, state: UserProgressionState):
        self._cur = cur
        self.state = state

    async def save_points(self, total_points: int, level: int) -> None:
        await queries.update_points(self._cur, self.state.user_id, total_points, level)
        self.state = self.state.model_copy(update={"total_points": total_points, "level": level})

    async def save_streak(self, streak: int, longest_streak: int, last_active_date: Optional[date]) -> None:
        await queries.update_streak(self._cur, self.state.user_id, streak, longest_streak, last_active_date)
        self.state = self.state.model_copy(update={
            "streak": streak,
            "longest_streak": longest_streak,
            "last_active_date": last_active_date,
        })

    async def append_transaction(self, transaction: PointTransaction) -> None:
        await queries.insert_point_transaction(self._cur, transaction)

    async def insert_unlock(self, unlock: UserAchievementUnlock) -> bool:
        return await queries.insert_unlock(self._cur, unlock)


class PostgresProgressionStore:
    """ProgressionStore backed by PostgreSQL via the shared connection pool"""

    def __init__(self, database: Database = default_db):
        self.database = database

    @asynccontextmanager
    async def unit_of_work(self, user_id: str) -> AsyncGenerator[_PostgresUnitOfWork, None]:
        try:
            async with self.database.connection() as conn:
                async with conn.transaction():
                    async with conn.cursor() as cur:
                        row = await queries.lock_user_progression(cur, user_id)
                        if row is None:
                            raise NotFoundError(
                                f"No progression record for user {user_id}",
                                record_type="User",
                                record_id=user_id,
                                user_id=user_id,
                                operation="unit_of_work"
                            )
                        yield _PostgresUnitOfWork(cur, UserProgressionState(**row))
        except psycopg.Error as e:
            raise wrap_storage_exception(e, operation="unit_of_work", user_id=user_id) from e

    @asynccontextmanager
    async def _cursor(self, operation: str, user_id: Optional[str] = None):
        try:
            async with self.database.connection() as conn:
                async with conn.cursor() as cur:
                    yield cur
        except psycopg.Error as e:
            raise wrap_storage_exception(e, operation=operation, user_id=user_id) from e

    async def create_user(self, user_id: str) -> UserProgressionState:
        async with self._cursor("create_user", user_id) as cur:
            await queries.insert_user_progression(cur, user_id)
            row = await queries.select_user_progression(cur, user_id)
        return UserProgressionState(**row)

    async def get_user(self, user_id: str) -> Optional[UserProgressionState]:
        async with self._cursor("get_user", user_id) as cur:
            row = await queries.select_user_progression(cur, user_id)
        return UserProgressionState(**row) if row else None

    async def get_achievement(self, achievement_id: str) -> Optional[AchievementDefinition]:
        async with self._cursor("get_achievement") as cur:
            row = await queries.select_achievement(cur, achievement_id)
        return AchievementDefinition(**row) if row else None

    async def list_achievements(
        self, category: Optional[str] = None, include_inactive: bool = False
    ) -> list[AchievementDefinition]:
        async with self._cursor("list_achievements") as cur:
            rows = await queries.select_achievements(cur, category, include_inactive)
        return [AchievementDefinition(**row) for row in rows]

    async def save_achievement(self, definition: AchievementDefinition) -> None:
        async with self._cursor("save_achievement") as cur:
            await queries.upsert_achievement(cur, definition)

    async def list_unlocks(self, user_id: str) -> list[UserAchievementUnlock]:
        async with self._cursor("list_unlocks", user_id) as cur:
            rows = await queries.select_unlocks(cur, user_id)
        return [UserAchievementUnlock(**row) for row in rows]

    async def list_transactions(self, user_id: str, limit: int) -> list[PointTransaction]:
        async with self._cursor("list_transactions", user_id) as cur:
            rows = await queries.select_point_transactions(cur, user_id, limit)
        return [PointTransaction(**row) for row in rows]

    async def top_ranked(self, flt: LeaderboardFilter) -> list[UserProgressionState]:
        async with self._cursor("top_ranked") as cur:
            rows = await queries.select_ranked(cur, flt)
        return [UserProgressionState(**row) for row in rows]

    async def count_ranked_ahead(self, state: UserProgressionState, flt: LeaderboardFilter) -> int:
        async with self._cursor("count_ranked_ahead", state.user_id) as cur:
            return await queries.count_ranked_ahead(cur, state, flt)

    async def streak_summary(self) -> StreakSummary:
        async with self._cursor("streak_summary") as cur:
            row = await queries.select_streak_summary(cur)
        return StreakSummary(row["active"], row["total_days"], row["longest"])

    async def top_streaks(self, limit: int) -> list[StreakLeader]:
        async with self._cursor("top_streaks") as cur:
            rows = await queries.select_top_streaks(cur, limit)
        return [StreakLeader(**row) for row in rows]
