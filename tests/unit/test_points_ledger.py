"""Unit tests for the points ledger (progression/gamification/points_ledger.py)"""
import asyncio
import logging

import pytest

from progression.exceptions import InternalError, NotFoundError, ValidationError
from progression.gamification.points_ledger import PointsLedger


# ============================================================================
# Awards
# ============================================================================

@pytest.mark.asyncio
async def test_award_adds_points(ledger, seeded_store, test_user_id):
    result = await ledger.award(test_user_id, 150, "admin:bonus")

    assert result.new_total == 150
    assert result.points_awarded == 150
    assert result.previous_level == 1
    assert result.new_level == 1
    assert result.level_up is False
    assert result.clamped is False
    assert seeded_store.users[test_user_id].total_points == 150


@pytest.mark.asyncio
async def test_award_crossing_level_boundary(ledger, seeded_store, test_user_id):
    seeded_store.seed_user(test_user_id, total_points=999)

    result = await ledger.award(test_user_id, 1, "story:published")

    assert result.new_total == 1000
    assert result.previous_level == 1
    assert result.new_level == 2
    assert result.level_up is True
    assert seeded_store.users[test_user_id].level == 2


@pytest.mark.asyncio
async def test_award_crossing_into_level_three(ledger, seeded_store, test_user_id):
    seeded_store.seed_user(test_user_id, total_points=1999, level=2)

    result = await ledger.award(test_user_id, 1, "story:published")

    assert result.new_total == 2000
    assert result.previous_level == 2
    assert result.new_level == 3
    assert result.level_up is True
    assert seeded_store.users[test_user_id].level == 3


@pytest.mark.asyncio
async def test_award_trims_user_id(ledger, seeded_store, test_user_id):
    await ledger.award(f"  {test_user_id} ", 5, "story")

    assert seeded_store.users[test_user_id].total_points == 5


# ============================================================================
# Negative awards
# ============================================================================

@pytest.mark.asyncio
async def test_negative_award_deducts(ledger, seeded_store, test_user_id):
    seeded_store.seed_user(test_user_id, total_points=1200, level=2)

    result = await ledger.award(test_user_id, -300, "admin:correction")

    assert result.new_total == 900
    assert result.new_level == 1
    assert result.level_up is False
    assert result.clamped is False


@pytest.mark.asyncio
async def test_negative_award_clamps_at_zero(ledger, seeded_store, test_user_id, caplog):
    seeded_store.seed_user(test_user_id, total_points=40)

    with caplog.at_level(logging.WARNING):
        result = await ledger.award(test_user_id, -100, "admin:correction")

    assert result.new_total == 0
    assert result.points_awarded == -40
    assert result.clamped is True
    assert "ClampedError" in caplog.text

    [entry] = seeded_store.transactions_for(test_user_id)
    assert entry.amount == -40
    assert entry.requested_amount == -100
    assert entry.resulting_total == 0


# ============================================================================
# Validation
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, 1.5, True, "10"])
async def test_invalid_amount_rejected(ledger, seeded_store, test_user_id, amount):
    with pytest.raises(ValidationError) as exc_info:
        await ledger.award(test_user_id, amount, "story")

    assert exc_info.value.field == "amount"
    assert seeded_store.users[test_user_id].total_points == 0
    assert seeded_store.transactions == []


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id,reason,field", [
    ("", "story", "user_id"),
    ("   ", "story", "user_id"),
    ("writer-1", "  ", "reason"),
])
async def test_blank_identifiers_rejected(ledger, user_id, reason, field):
    with pytest.raises(ValidationError) as exc_info:
        await ledger.award(user_id, 10, reason)

    assert exc_info.value.field == field


@pytest.mark.asyncio
async def test_unknown_user_raises_not_found(ledger):
    with pytest.raises(NotFoundError):
        await ledger.award("nobody", 10, "story")


# ============================================================================
# Atomicity and audit trail
# ============================================================================

@pytest.mark.asyncio
async def test_concurrent_awards_are_not_lost(ledger, seeded_store, test_user_id):
    amounts = [7, 13, 25, 50, 100] * 20

    await asyncio.gather(*(ledger.award(test_user_id, a, "story") for a in amounts))

    state = seeded_store.users[test_user_id]
    assert state.total_points == sum(amounts)
    assert state.level == sum(amounts) // 1000 + 1
    assert len(seeded_store.transactions_for(test_user_id)) == len(amounts)


@pytest.mark.asyncio
async def test_audit_trail_sums_to_total(ledger, seeded_store, test_user_id):
    for amount in (300, -50, 800, -2000, 120):
        await ledger.award(test_user_id, amount, "admin:mixed")

    entries = seeded_store.transactions_for(test_user_id)
    total = seeded_store.users[test_user_id].total_points
    assert sum(e.amount for e in entries) == total == 120
    assert entries[-1].resulting_total == total


@pytest.mark.asyncio
async def test_failed_write_leaves_no_partial_state(ledger, seeded_store, test_user_id):
    seeded_store.fail_on_transaction = True

    with pytest.raises(InternalError):
        await ledger.award(test_user_id, 500, "story")

    assert seeded_store.users[test_user_id].total_points == 0
    assert seeded_store.transactions == []


# ============================================================================
# History
# ============================================================================

@pytest.mark.asyncio
async def test_history_newest_first(ledger, test_user_id):
    for amount in (1, 2, 3):
        await ledger.award(test_user_id, amount, f"story:{amount}")

    history = await ledger.history(test_user_id, limit=2)

    assert [h.amount for h in history] == [3, 2]


@pytest.mark.asyncio
async def test_history_default_limit(seeded_store, test_user_id):
    ledger = PointsLedger(seeded_store)
    for _ in range(60):
        await ledger.award(test_user_id, 1, "story")

    history = await ledger.history(test_user_id)

    assert len(history) == 50


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -1])
async def test_history_rejects_non_positive_limit(ledger, test_user_id, limit):
    await ledger.award(test_user_id, 5, "story")

    with pytest.raises(ValidationError) as exc_info:
        await ledger.history(test_user_id, limit=limit)

    assert exc_info.value.field == "limit"
