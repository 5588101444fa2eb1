"""
Writing Streak Tracking System

Tracks consecutive UTC calendar days with writing activity.

Transitions on each touch, with gap = today - last_active_date in days:
- First ever touch: streak starts at 1
- gap == 0, or gap < 0 (clock skew, stale write): no change
- gap == 1: streak continues (+1) and earns the streak bonus
- gap > 1: streak broken, restarts at 1

The read-compare-write runs inside the user's unit of work, so two touches
racing on the same day cannot both see yesterday's state and double count.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional
import logging

from progression.config import STREAK_BONUS_POINTS
from progression.db.store import ProgressionStore
from progression.exceptions import NotFoundError, ValidationError
from progression.gamification.points_ledger import PointsLedger
from progression.models.progression import AwardResult, StreakStatistics, StreakStatus, StreakTouch
from progression.observability import metrics
from progression.utils.datetime_helpers import as_utc_day
from progression.validators import UserInput, validate_input

logger = logging.getLogger(__name__)

STREAK_MILESTONES = (3, 7, 14, 30, 60, 100)

STARTED = "started"
CONTINUED = "continued"
BROKEN = "broken"
UNCHANGED = "unchanged"


@dataclass(frozen=True)
class StreakTransition:
    """Result of applying one day's activity to a streak"""
    outcome: str
    streak: int
    longest_streak: int
    gap: Optional[int]

    @property
    def changed(self) -> bool:
        return self.outcome != UNCHANGED

    @property
    def incremented(self) -> bool:
        return self.outcome in (STARTED, CONTINUED)


def advance_streak(
    streak: int,
    longest_streak: int,
    last_active_date: Optional[date],
    today: date
) -> StreakTransition:
    """
    Pure streak state machine

    Args:
        streak: Current streak
        longest_streak: Best streak so far
        last_active_date: Last qualifying day, None if never active
        today: Day of the new activity

    Returns:
        StreakTransition describing the new state
    """
    if last_active_date is None:
        return StreakTransition(STARTED, 1, max(longest_streak, 1), None)

    gap = (today - last_active_date).days

    if gap <= 0:
        return StreakTransition(UNCHANGED, streak, longest_streak, gap)

    if gap == 1:
        new_streak = streak + 1
        return StreakTransition(CONTINUED, new_streak, max(longest_streak, new_streak), gap)

    return StreakTransition(BROKEN, 1, max(longest_streak, 1), gap)


def milestone_for(transition: StreakTransition) -> Optional[int]:
    """Milestone reached by this transition, if any"""
    if transition.incremented and transition.streak in STREAK_MILESTONES:
        return transition.streak
    return None


class StreakTracker:
    """Per-user writing streak"""

    def __init__(
        self,
        store: ProgressionStore,
        ledger: PointsLedger,
        bonus_points: int = STREAK_BONUS_POINTS
    ):
        self.store = store
        self.ledger = ledger
        self.bonus_points = bonus_points

    async def touch(self, user_id: str, today: Optional[date] = None) -> StreakTouch:
        """
        Record writing activity for ``today``

        Args:
            user_id: User identifier
            today: Activity day (defaults to the current UTC day)

        Returns:
            StreakTouch with the new streak, whether it broke, and any bonus
        """
        params = validate_input(UserInput, "update_writing_streak", user_id=user_id)
        day = as_utc_day(today)
        award: Optional[AwardResult] = None

        async with self.store.unit_of_work(params.user_id) as uow:
            state = uow.state
            transition = advance_streak(state.streak, state.longest_streak, state.last_active_date, day)

            if transition.changed:
                await uow.save_streak(transition.streak, transition.longest_streak, day)
                if transition.incremented and self.bonus_points > 0:
                    award = await self.ledger.apply(uow, self.bonus_points, f"streak:{transition.streak}")

        metrics.streak_updates_total.labels(outcome=transition.outcome).inc()
        if award:
            self.ledger.observe(award, "streak")

        if transition.outcome == BROKEN:
            logger.warning(
                f"User {params.user_id} streak broken. "
                f"Was {state.streak}, gap was {transition.gap} days"
            )
        elif transition.changed:
            logger.info(
                f"Updated streak for user {params.user_id}: "
                f"{state.streak} → {transition.streak} days"
            )

        return StreakTouch(
            streak=transition.streak,
            previous_streak=state.streak,
            longest_streak=transition.longest_streak,
            streak_broken=transition.outcome == BROKEN,
            days_since_last_active=transition.gap,
            points_awarded=award.points_awarded if award else 0,
            milestone=milestone_for(transition),
            level_up=award.level_up if award else False,
        )

    async def status(self, user_id: str, today: Optional[date] = None) -> StreakStatus:
        """
        Where the user's streak stands on ``today``

        days_until_break is 1 when already active today, 0 when the user must
        write today to keep the streak, and -1 when there is no live streak.
        """
        params = validate_input(UserInput, "get_streak_status", user_id=user_id)
        state = await self.store.get_user(params.user_id)
        if state is None:
            raise NotFoundError(
                f"No progression record for user {params.user_id}",
                record_type="User",
                record_id=params.user_id,
                operation="get_streak_status"
            )

        day = as_utc_day(today)
        last = state.last_active_date
        gap = (day - last).days if last else None

        is_active_today = gap is not None and gap <= 0
        if is_active_today:
            days_until_break = 1
        elif gap == 1:
            days_until_break = 0
        else:
            days_until_break = -1

        return StreakStatus(
            current_streak=state.streak,
            longest_streak=state.longest_streak,
            last_active_date=last,
            is_active_today=is_active_today,
            days_until_break=days_until_break,
        )

    async def reset(self, user_id: str) -> int:
        """
        Administrative reset: streak to 0, last active day cleared

        Returns:
            The streak before the reset
        """
        params = validate_input(UserInput, "reset_streak", user_id=user_id)

        async with self.store.unit_of_work(params.user_id) as uow:
            previous = uow.state.streak
            await uow.save_streak(0, uow.state.longest_streak, None)

        metrics.streak_updates_total.labels(outcome="reset").inc()
        logger.info(f"Reset streak for user {params.user_id} (was {previous})")
        return previous

    async def statistics(self, top: int = 10) -> StreakStatistics:
        """
        Streak figures across active users with a live streak

        Args:
            top: Number of leading users to include

        Returns:
            StreakStatistics; average_streak is rounded to one decimal
        """
        if top < 1:
            raise ValidationError("top must be at least 1", field="top", value=top, operation="get_streak_statistics")

        summary = await self.store.streak_summary()
        leaders = await self.store.top_streaks(top)
        average = round(summary.total_days / summary.active, 1) if summary.active else 0.0

        return StreakStatistics(
            total_active_streaks=summary.active,
            average_streak=average,
            longest_current_streak=summary.longest,
            top_users=leaders,
        )
