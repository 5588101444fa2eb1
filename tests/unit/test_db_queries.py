"""Unit tests for database queries (progression/db/queries/progression.py)"""
import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest

from progression.db import queries
from progression.models.progression import (
    AchievementDefinition,
    LeaderboardFilter,
    PointTransaction,
    UserAchievementUnlock,
    UserProgressionState,
)


@pytest.fixture
def mock_cursor():
    cursor = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    return cursor


def _sql(cursor):
    return cursor.execute.call_args[0][0]


def _params(cursor):
    return cursor.execute.call_args[0][1]


# ============================================================================
# User progression
# ============================================================================

@pytest.mark.asyncio
async def test_insert_user_progression_new(mock_cursor):
    mock_cursor.fetchone.return_value = {"user_id": "writer-1"}

    created = await queries.insert_user_progression(mock_cursor, "writer-1")

    assert created is True
    assert "ON CONFLICT (user_id) DO NOTHING" in _sql(mock_cursor)


@pytest.mark.asyncio
async def test_insert_user_progression_existing(mock_cursor):
    created = await queries.insert_user_progression(mock_cursor, "writer-1")

    assert created is False


@pytest.mark.asyncio
async def test_lock_user_progression_takes_row_lock(mock_cursor):
    await queries.lock_user_progression(mock_cursor, "writer-1")

    assert "FOR UPDATE" in _sql(mock_cursor)
    assert _params(mock_cursor) == ("writer-1",)


@pytest.mark.asyncio
async def test_select_user_progression_does_not_lock(mock_cursor):
    await queries.select_user_progression(mock_cursor, "writer-1")

    assert "FOR UPDATE" not in _sql(mock_cursor)


@pytest.mark.asyncio
async def test_update_streak(mock_cursor):
    await queries.update_streak(mock_cursor, "writer-1", 4, 6, date(2024, 1, 11))

    assert "UPDATE user_progression" in _sql(mock_cursor)
    assert _params(mock_cursor) == (4, 6, date(2024, 1, 11), "writer-1")


# ============================================================================
# Audit trail
# ============================================================================

@pytest.mark.asyncio
async def test_insert_point_transaction(mock_cursor):
    stamp = datetime(2024, 1, 10, 12, tzinfo=timezone.utc)
    await queries.insert_point_transaction(mock_cursor, PointTransaction(
        user_id="writer-1", amount=-40, requested_amount=-100,
        reason="admin:correction", timestamp=stamp, resulting_total=0,
    ))

    assert "INSERT INTO point_transactions" in _sql(mock_cursor)
    assert _params(mock_cursor) == ("writer-1", -40, -100, "admin:correction", 0, stamp)


@pytest.mark.asyncio
async def test_select_point_transactions_newest_first(mock_cursor):
    await queries.select_point_transactions(mock_cursor, "writer-1", 20)

    assert "ORDER BY created_at DESC" in _sql(mock_cursor)
    assert _params(mock_cursor) == ("writer-1", 20)


# ============================================================================
# Achievements
# ============================================================================

@pytest.mark.asyncio
async def test_select_achievements_active_by_category(mock_cursor):
    await queries.select_achievements(mock_cursor, category="writing")

    sql = _sql(mock_cursor)
    assert "is_active AND category = %s" in sql
    assert "ORDER BY sort_order, id" in sql
    assert _params(mock_cursor) == ["writing"]


@pytest.mark.asyncio
async def test_upsert_achievement(mock_cursor):
    await queries.upsert_achievement(mock_cursor, AchievementDefinition(id="poet", category="writing"))

    assert "ON CONFLICT (id) DO UPDATE" in _sql(mock_cursor)
    assert _params(mock_cursor)[7] is None


@pytest.mark.asyncio
async def test_upsert_achievement_with_criteria(mock_cursor):
    definition = AchievementDefinition(
        id="week_streak", category="streak", criteria={"metric": "streak", "threshold": 7}
    )

    await queries.upsert_achievement(mock_cursor, definition)

    assert "criteria = EXCLUDED.criteria" in _sql(mock_cursor)
    assert json.loads(_params(mock_cursor)[7]) == {"metric": "streak", "threshold": 7}


@pytest.mark.asyncio
async def test_insert_unlock_first_time(mock_cursor):
    mock_cursor.fetchone.return_value = {"achievement_id": "poet"}
    unlock = UserAchievementUnlock(
        user_id="writer-1",
        achievement_id="poet",
        unlocked_at=datetime(2024, 1, 10, tzinfo=timezone.utc),
        context={"story_id": "s-1"},
    )

    inserted = await queries.insert_unlock(mock_cursor, unlock)

    assert inserted is True
    assert "ON CONFLICT (user_id, achievement_id) DO NOTHING" in _sql(mock_cursor)
    assert json.loads(_params(mock_cursor)[3]) == {"story_id": "s-1"}


@pytest.mark.asyncio
async def test_insert_unlock_duplicate(mock_cursor):
    unlock = UserAchievementUnlock(
        user_id="writer-1",
        achievement_id="poet",
        unlocked_at=datetime(2024, 1, 10, tzinfo=timezone.utc),
    )

    assert await queries.insert_unlock(mock_cursor, unlock) is False
    assert _params(mock_cursor)[3] is None


# ============================================================================
# Leaderboard
# ============================================================================

def test_cohort_clause_defaults_to_active():
    where, params = queries.cohort_clause(LeaderboardFilter())

    assert where == "is_active"
    assert params == []


def test_cohort_clause_with_ages():
    where, params = queries.cohort_clause(LeaderboardFilter(min_age=7, max_age=11, include_inactive=True))

    assert where == "age >= %s AND age <= %s"
    assert params == [7, 11]


@pytest.mark.asyncio
async def test_select_ranked_order_and_limit(mock_cursor):
    await queries.select_ranked(mock_cursor, LeaderboardFilter(min_age=7, limit=25))

    sql = _sql(mock_cursor)
    assert 'ORDER BY total_points DESC, level DESC, story_count DESC, user_id COLLATE "C" ASC' in sql
    assert _params(mock_cursor) == [7, 25]


@pytest.mark.asyncio
async def test_count_ranked_ahead(mock_cursor):
    mock_cursor.fetchone.return_value = {"ahead": 4}
    state = UserProgressionState(user_id="writer-1", total_points=300, level=1, story_count=2)

    ahead = await queries.count_ranked_ahead(mock_cursor, state, LeaderboardFilter())

    assert ahead == 4
    assert 'user_id COLLATE "C" < %s' in _sql(mock_cursor)
    assert _params(mock_cursor) == [300, 300, 1, 300, 1, 2, 300, 1, 2, "writer-1"]


# ============================================================================
# Streak statistics
# ============================================================================

@pytest.mark.asyncio
async def test_select_streak_summary(mock_cursor):
    mock_cursor.fetchone.return_value = {"active": 3, "total_days": 15, "longest": 9}

    row = await queries.select_streak_summary(mock_cursor)

    assert row["total_days"] == 15
    assert "WHERE streak > 0 AND is_active" in _sql(mock_cursor)


@pytest.mark.asyncio
async def test_select_top_streaks(mock_cursor):
    await queries.select_top_streaks(mock_cursor, 5)

    assert 'ORDER BY streak DESC, user_id COLLATE "C" ASC' in _sql(mock_cursor)
    assert _params(mock_cursor) == (5,)
