"""
Points Ledger

Source of truth for a user's point total. Every change to ``total_points``
goes through here and is applied inside a per-user unit of work together with
its audit entry, so concurrent awards never lose updates.

Rules:
- Amounts are non-zero integers; negatives are administrative corrections
- Totals never go below zero (clamped, logged, still succeeds)
- Level is recomputed from the new total on every change
"""

from typing import List, Optional
import logging

from progression.config import POINT_HISTORY_LIMIT
from progression.db.store import ProgressionStore, ProgressionUnitOfWork
from progression.exceptions import ClampedError
from progression.gamification.levels import level_of
from progression.models.progression import AwardResult, PointTransaction
from progression.observability import metrics
from progression.utils.datetime_helpers import now_utc
from progression.validators import HistoryInput, PointAwardInput, validate_input

logger = logging.getLogger(__name__)


class PointsLedger:
    """Atomic point increments and decrements"""

    def __init__(self, store: ProgressionStore):
        self.store = store

    async def award(self, user_id: str, amount: int, reason: str) -> AwardResult:
        """
        Apply ``amount`` to a user's total in its own unit of work

        Args:
            user_id: User identifier
            amount: Non-zero points delta
            reason: Label recorded in the audit trail

        Returns:
            AwardResult with the committed total and level change

        Raises:
            ValidationError: amount is zero or not an int, or ids are blank
            NotFoundError: user has no progression record
        """
        params = validate_input(
            PointAwardInput, "award_points",
            user_id=user_id, amount=amount, reason=reason
        )

        async with self.store.unit_of_work(params.user_id) as uow:
            result = await self.apply(uow, params.amount, params.reason)

        self.observe(result, params.reason)
        return result

    async def apply(self, uow: ProgressionUnitOfWork, amount: int, reason: str) -> AwardResult:
        """
        Apply a delta inside a caller-owned unit of work

        Used by streak bonuses and achievement rewards so the points commit
        with the write that earned them. Metrics are left to the caller, to be
        recorded once the unit of work has committed.
        """
        state = uow.state
        previous_total = state.total_points
        previous_level = level_of(previous_total)

        new_total = max(previous_total + amount, 0)
        applied = new_total - previous_total
        clamped = applied != amount
        new_level = level_of(new_total)

        if clamped:
            ClampedError(
                f"Award of {amount} would take user {state.user_id} below zero; clamped to 0",
                requested_amount=amount,
                applied_amount=applied,
                user_id=state.user_id,
                operation="award_points"
            )

        await uow.save_points(new_total, new_level)
        await uow.append_transaction(PointTransaction(
            user_id=state.user_id,
            amount=applied,
            requested_amount=amount,
            reason=reason,
            timestamp=now_utc(),
            resulting_total=new_total,
        ))

        level_up = new_level > previous_level

        logger.info(
            f"Applied {applied} points to user {state.user_id} for {reason}. "
            f"Total: {new_total}, Level: {new_level}"
        )
        if level_up:
            logger.info(f"User {state.user_id} leveled up from {previous_level} to {new_level}!")

        return AwardResult(
            new_total=new_total,
            points_awarded=applied,
            previous_level=previous_level,
            new_level=new_level,
            level_up=level_up,
            clamped=clamped,
        )

    def observe(self, result: AwardResult, reason: str) -> None:
        """Record metrics for a committed award"""
        # Counters only go up; corrections show in the audit trail instead
        if result.points_awarded > 0:
            metrics.points_awarded_total.labels(reason_type=metrics.reason_type(reason)).inc(result.points_awarded)
        if result.level_up:
            metrics.level_ups_total.inc()

    async def history(self, user_id: str, limit: Optional[int] = None) -> List[PointTransaction]:
        """
        Recent point transactions, newest first

        Args:
            user_id: User identifier
            limit: Maximum entries, at least 1 (defaults to POINT_HISTORY_LIMIT)

        Raises:
            ValidationError: blank user id or a limit below 1
        """
        params = validate_input(HistoryInput, "get_point_history", user_id=user_id, limit=limit)
        limit = params.limit if params.limit is not None else POINT_HISTORY_LIMIT
        return await self.store.list_transactions(params.user_id, limit)
