"""
Leaderboard ranking

Order, strictly in this precedence:
1. total_points, descending
2. level, descending
3. story_count, descending
4. user_id, ascending (code-point order), so equal records always come out
   the same way

Reads take no locks and may trail a write that just committed.
"""

from typing import List, Optional
import logging

from progression.config import LEADERBOARD_MAX_LIMIT
from progression.db.store import ProgressionStore
from progression.exceptions import NotFoundError, ValidationError
from progression.models.progression import (
    LeaderboardEntry,
    LeaderboardFilter,
    UserProgressionState,
)
from progression.validators import UserInput, validate_input

logger = logging.getLogger(__name__)

# Bounds of the default cohort when a caller has no explicit age band
MIN_COHORT_AGE = 2
MAX_COHORT_AGE = 18
COHORT_AGE_SPREAD = 2


def rank_key(state: UserProgressionState) -> tuple:
    """Sort key implementing the full tie-break chain (ascending sort)"""
    return (-state.total_points, -state.level, -state.story_count, state.user_id)


def age_band_for(age: int) -> tuple[int, int]:
    """Default cohort: within two years of the requester, clamped to 2-18"""
    return (
        max(MIN_COHORT_AGE, age - COHORT_AGE_SPREAD),
        min(MAX_COHORT_AGE, age + COHORT_AGE_SPREAD),
    )


class LeaderboardRanker:
    """Ordered views over progression records"""

    def __init__(self, store: ProgressionStore, max_limit: int = LEADERBOARD_MAX_LIMIT):
        self.store = store
        self.max_limit = max_limit

    def _check_limit(self, flt: LeaderboardFilter) -> None:
        if flt.limit > self.max_limit:
            raise ValidationError(
                f"limit must be at most {self.max_limit}",
                field="limit",
                value=flt.limit,
                operation="get_leaderboard"
            )

    async def rank(self, flt: LeaderboardFilter) -> List[LeaderboardEntry]:
        """Top ``flt.limit`` records of the cohort, best first"""
        self._check_limit(flt)
        states = await self.store.top_ranked(flt)
        return [
            LeaderboardEntry(
                rank=position,
                user_id=state.user_id,
                total_points=state.total_points,
                level=state.level,
                story_count=state.story_count,
                streak=state.streak,
            )
            for position, state in enumerate(states, start=1)
        ]

    async def position_of(self, user_id: str, flt: LeaderboardFilter) -> Optional[int]:
        """
        1-based position of a user within the cohort

        Computed as 1 + the number of cohort records ordered strictly before
        the user, with a count query rather than a materialized ranking.
        None when the user does not belong to the cohort.

        Raises:
            NotFoundError: user has no progression record
        """
        params = validate_input(UserInput, "get_leaderboard", user_id=user_id)
        state = await self.store.get_user(params.user_id)
        if state is None:
            raise NotFoundError(
                f"No progression record for user {params.user_id}",
                record_type="User",
                record_id=params.user_id,
                operation="position_of"
            )
        return await self.position_of_state(state, flt)

    async def position_of_state(self, state: UserProgressionState, flt: LeaderboardFilter) -> Optional[int]:
        if not flt.matches(state):
            return None
        ahead = await self.store.count_ranked_ahead(state, flt)
        return ahead + 1
