"""
ProgressionManager - Progression Facade

The only entry point other subsystems call. Orchestrates the ledger, streak
tracker, achievement unlocker and leaderboard ranker, and shapes their
results. Holds no state beyond references to those components.

Side effects such as notifications or emails belong to the caller and run
after these calls return; their failure never undoes a committed award.
"""

import functools
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from progression.db.store import PostgresProgressionStore, ProgressionStore
from progression.exceptions import NotFoundError, ProgressionError
from progression.gamification.achievement_system import AchievementCatalog, AchievementUnlocker
from progression.gamification.leaderboard import LeaderboardRanker, age_band_for
from progression.gamification.levels import level_of, points_to_next_level
from progression.gamification.points_ledger import PointsLedger
from progression.gamification.streak_system import StreakTracker
from progression.models.progression import (
    AchievementDefinition,
    AwardResult,
    Leaderboard,
    LeaderboardFilter,
    PointTransaction,
    StreakStatistics,
    StreakStatus,
    StreakUpdate,
    UnlockResult,
    UserAchievements,
    UserProgression,
    UserProgressionState,
)
from progression.observability import metrics
from progression.validators import UserInput, validate_input

logger = logging.getLogger(__name__)


def _tracked(operation: str):
    """Count engine errors per operation before they propagate"""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except ProgressionError as e:
                metrics.errors_total.labels(error_type=type(e).__name__, operation=operation).inc()
                raise
        return wrapper
    return decorator


class ProgressionManager:
    """
    Facade over the progression engine.

    Responsibilities:
    - Point awards and administrative corrections
    - Writing streak updates and statistics
    - Achievement unlocks, criteria checks and listings
    - Leaderboards and a user's own rank
    - Progression snapshots
    """

    def __init__(
        self,
        store: ProgressionStore,
        streak_bonus_points: Optional[int] = None,
        leaderboard_max_limit: Optional[int] = None
    ):
        """
        Args:
            store: Storage implementing ProgressionStore
            streak_bonus_points: Override for STREAK_BONUS_POINTS
            leaderboard_max_limit: Override for LEADERBOARD_MAX_LIMIT
        """
        self.store = store
        self.ledger = PointsLedger(store)
        self.catalog = AchievementCatalog(store)
        self.unlocker = AchievementUnlocker(store, self.catalog, self.ledger)

        streak_kwargs = {} if streak_bonus_points is None else {"bonus_points": streak_bonus_points}
        self.streaks = StreakTracker(store, self.ledger, **streak_kwargs)

        ranker_kwargs = {} if leaderboard_max_limit is None else {"max_limit": leaderboard_max_limit}
        self.ranker = LeaderboardRanker(store, **ranker_kwargs)
        logger.debug("ProgressionManager initialized")

    @classmethod
    def from_database(cls, database=None, **kwargs) -> "ProgressionManager":
        """Manager over PostgreSQL using the shared pool (or ``database``)"""
        store = PostgresProgressionStore(database) if database is not None else PostgresProgressionStore()
        return cls(store, **kwargs)

    async def _require_user(self, user_id: str, operation: str) -> UserProgressionState:
        params = validate_input(UserInput, operation, user_id=user_id)
        state = await self.store.get_user(params.user_id)
        if state is None:
            raise NotFoundError(
                f"No progression record for user {params.user_id}",
                record_type="User",
                record_id=params.user_id,
                operation=operation
            )
        return state

    # ==========================================
    # Lifecycle
    # ==========================================

    @_tracked("create_user_progression")
    async def create_user_progression(self, user_id: str) -> UserProgression:
        """Create the zeroed record for a new account (idempotent)"""
        params = validate_input(UserInput, "create_user_progression", user_id=user_id)
        state = await self.store.create_user(params.user_id)
        return self._progression_view(state)

    # ==========================================
    # Points
    # ==========================================

    @_tracked("award_points")
    async def award_points(self, user_id: str, amount: int, reason: str) -> AwardResult:
        """
        Award (or, with a negative amount, deduct) points

        Raises:
            ValidationError: amount == 0 or blank identifiers
            NotFoundError: unknown user
        """
        return await self.ledger.award(user_id, amount, reason)

    @_tracked("get_point_history")
    async def get_point_history(self, user_id: str, limit: Optional[int] = None) -> List[PointTransaction]:
        await self._require_user(user_id, "get_point_history")
        return await self.ledger.history(user_id, limit)

    # ==========================================
    # Achievements
    # ==========================================

    @_tracked("unlock_achievement")
    async def unlock_achievement(
        self,
        user_id: str,
        achievement_id: str,
        context: Optional[Dict[str, Any]] = None
    ) -> UnlockResult:
        """
        Unlock an achievement once; repeats report already_unlocked

        Raises:
            NotFoundError: unknown or inactive achievement, or unknown user
        """
        return await self.unlocker.unlock(user_id, achievement_id, context)

    @_tracked("list_achievements")
    async def list_achievements(self, user_id: str, category: Optional[str] = None) -> UserAchievements:
        return await self.unlocker.user_achievements(user_id, category)

    @_tracked("register_achievement")
    async def register_achievement(self, definition: AchievementDefinition) -> None:
        await self.catalog.register(definition)

    @_tracked("check_achievements")
    async def check_achievements(self, user_id: str, event: Optional[str] = None) -> List[UnlockResult]:
        """
        Unlock achievements whose criteria the user now meets

        Callers report events the engine does not see itself, e.g.
        'story_completed' after the story count changes.
        """
        return await self.unlocker.check_and_unlock(user_id, event)

    # ==========================================
    # Streaks
    # ==========================================

    @_tracked("update_writing_streak")
    async def update_writing_streak(self, user_id: str, today: Optional[date] = None) -> StreakUpdate:
        """
        Record writing activity and advance the streak

        Args:
            user_id: User identifier
            today: Activity day, defaults to the current UTC day
        """
        touch = await self.streaks.touch(user_id, today)

        unlocked = []
        if touch.streak > touch.previous_streak:
            unlocked = await self.unlocker.check_and_unlock(user_id, "streak_updated")

        return StreakUpdate(
            streak=touch.streak,
            streak_broken=touch.streak_broken,
            points_awarded=touch.points_awarded,
            longest_streak=touch.longest_streak,
            milestone=touch.milestone,
            level_up=touch.level_up or any(r.level_up for r in unlocked),
            achievements_unlocked=[r.achievement.id for r in unlocked],
        )

    @_tracked("get_streak_status")
    async def get_streak_status(self, user_id: str, today: Optional[date] = None) -> StreakStatus:
        return await self.streaks.status(user_id, today)

    @_tracked("reset_streak")
    async def reset_streak(self, user_id: str) -> int:
        return await self.streaks.reset(user_id)

    @_tracked("get_streak_statistics")
    async def get_streak_statistics(self, top: int = 10) -> StreakStatistics:
        return await self.streaks.statistics(top)

    # ==========================================
    # Leaderboard
    # ==========================================

    @_tracked("get_leaderboard")
    async def get_leaderboard(
        self,
        requester_id: str,
        flt: Optional[LeaderboardFilter] = None
    ) -> Leaderboard:
        """
        Ranked cohort page plus the requester's own rank

        Without a filter the cohort is users within two years of the
        requester's age (or everyone, if the requester has no age on file).
        requester_rank is None when the requester is outside the cohort.
        """
        requester = await self._require_user(requester_id, "get_leaderboard")

        if flt is None:
            if requester.age is not None:
                min_age, max_age = age_band_for(requester.age)
                flt = LeaderboardFilter(min_age=min_age, max_age=max_age)
            else:
                flt = LeaderboardFilter()

        entries = await self.ranker.rank(flt)

        requester_rank = next((e.rank for e in entries if e.user_id == requester.user_id), None)
        if requester_rank is None:
            requester_rank = await self.ranker.position_of_state(requester, flt)

        return Leaderboard(entries=entries, requester_rank=requester_rank)

    # ==========================================
    # Snapshots
    # ==========================================

    @_tracked("get_user_progression")
    async def get_user_progression(self, user_id: str) -> UserProgression:
        state = await self._require_user(user_id, "get_user_progression")
        return self._progression_view(state)

    @staticmethod
    def _progression_view(state: UserProgressionState) -> UserProgression:
        return UserProgression(
            user_id=state.user_id,
            total_points=state.total_points,
            level=level_of(state.total_points),
            streak=state.streak,
            longest_streak=state.longest_streak,
            last_active_date=state.last_active_date,
            points_to_next_level=points_to_next_level(state.total_points),
        )


# Global manager instance (initialized by the embedding process)
_manager: Optional[ProgressionManager] = None


def get_progression_manager() -> ProgressionManager:
    """
    Get the global progression manager.

    Raises:
        RuntimeError: If not initialized (call init_progression_manager first)
    """
    if _manager is None:
        raise RuntimeError(
            "Progression manager not initialized. "
            "Call init_progression_manager() during startup before using it."
        )
    return _manager


def init_progression_manager(store: Optional[ProgressionStore] = None, **kwargs) -> ProgressionManager:
    """
    Initialize the global progression manager.

    Args:
        store: Storage to use; defaults to PostgreSQL over the shared pool
    """
    global _manager

    _manager = ProgressionManager(store or PostgresProgressionStore(), **kwargs)
    logger.info("Progression manager initialized")
    return _manager
