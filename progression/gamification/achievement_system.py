"""
Achievement System

Catalog of achievement definitions and the unlock-once operation.

An unlock inserts the (user, achievement) row first and credits the reward
only if that insert actually created the row. The storage layer's unique key
decides the winner when duplicate requests race, so exactly one of them is
credited and the rest report already_unlocked.
"""

from typing import Any, Dict, List, Optional
import logging

from progression.db.store import ProgressionStore
from progression.exceptions import NotFoundError, ValidationError
from progression.gamification.points_ledger import PointsLedger
from progression.models.progression import (
    AchievementDefinition,
    AchievementStatus,
    AwardResult,
    UnlockResult,
    UserAchievementUnlock,
    UserAchievements,
)
from progression.observability import metrics
from progression.utils.datetime_helpers import now_utc
from progression.validators import AchievementUnlockInput, UserInput, validate_input

logger = logging.getLogger(__name__)

# Progression metrics each event can move; criteria on other metrics are skipped
EVENT_METRICS = {
    "streak_updated": {"streak", "longest_streak"},
    "story_completed": {"story_count"},
    "points_awarded": {"total_points", "level"},
}


class AchievementCatalog:
    """Read access to achievement definitions"""

    def __init__(self, store: ProgressionStore):
        self.store = store

    async def list_active(self, category: Optional[str] = None) -> List[AchievementDefinition]:
        """Active achievements, ordered by sort_order then id"""
        return await self.store.list_achievements(category=category)

    async def get_active(self, achievement_id: str) -> Optional[AchievementDefinition]:
        """The definition, or None if unknown or inactive"""
        achievement = await self.store.get_achievement(achievement_id)
        if achievement is None or not achievement.is_active:
            return None
        return achievement

    async def register(self, definition: AchievementDefinition) -> None:
        """Insert or replace a definition (catalog seeding and admin edits)"""
        await self.store.save_achievement(definition)
        logger.info(f"Registered achievement {definition.id} ({definition.category}, {definition.points_reward} points)")


class AchievementUnlocker:
    """Idempotent achievement unlocks"""

    def __init__(self, store: ProgressionStore, catalog: AchievementCatalog, ledger: PointsLedger):
        self.store = store
        self.catalog = catalog
        self.ledger = ledger

    async def unlock(
        self,
        user_id: str,
        achievement_id: str,
        context: Optional[Dict[str, Any]] = None
    ) -> UnlockResult:
        """
        Unlock an achievement for a user, at most once

        Args:
            user_id: User identifier
            achievement_id: Catalog id
            context: Opaque data stored with the unlock (e.g. {'story_id': ...})

        Returns:
            UnlockResult; success=False with already_unlocked=True for repeats

        Raises:
            ValidationError: blank identifiers
            NotFoundError: unknown or inactive achievement, or unknown user
        """
        params = validate_input(
            AchievementUnlockInput, "unlock_achievement",
            user_id=user_id, achievement_id=achievement_id
        )

        achievement = await self.catalog.get_active(params.achievement_id)
        if achievement is None:
            raise NotFoundError(
                f"Achievement not found: {params.achievement_id}",
                record_type="Achievement",
                record_id=params.achievement_id,
                user_id=params.user_id,
                operation="unlock_achievement"
            )

        award: Optional[AwardResult] = None
        async with self.store.unit_of_work(params.user_id) as uow:
            inserted = await uow.insert_unlock(UserAchievementUnlock(
                user_id=params.user_id,
                achievement_id=achievement.id,
                unlocked_at=now_utc(),
                context=context,
            ))
            if inserted and achievement.points_reward > 0:
                award = await self.ledger.apply(uow, achievement.points_reward, f"achievement:{achievement.id}")
            current_level = uow.state.level

        if not inserted:
            metrics.duplicate_unlocks_total.inc()
            logger.info(f"User {params.user_id} already has achievement {achievement.id}")
            return UnlockResult(
                success=False,
                already_unlocked=True,
                achievement=achievement,
                points_awarded=0,
                new_level=current_level,
            )

        metrics.achievements_unlocked_total.labels(category=achievement.category).inc()
        if award:
            self.ledger.observe(award, "achievement")

        logger.info(
            f"User {params.user_id} unlocked achievement: {achievement.id} "
            f"({achievement.name or achievement.category}) +{achievement.points_reward} points"
        )

        return UnlockResult(
            success=True,
            already_unlocked=False,
            achievement=achievement,
            points_awarded=award.points_awarded if award else 0,
            new_level=award.new_level if award else current_level,
            level_up=award.level_up if award else False,
        )

    async def check_and_unlock(self, user_id: str, event: Optional[str] = None) -> List[UnlockResult]:
        """
        Unlock every active achievement whose criteria the user now meets

        Args:
            user_id: User identifier
            event: What just happened ('streak_updated', 'story_completed',
                'points_awarded'); limits the check to criteria that event
                can affect. None checks all criteria.

        Returns:
            Results of the unlocks this call won, in catalog order

        Raises:
            ValidationError: blank user id or unknown event
            NotFoundError: unknown user
        """
        params = validate_input(UserInput, "check_achievements", user_id=user_id)
        if event is not None and event not in EVENT_METRICS:
            raise ValidationError(
                f"Unknown achievement event: {event}",
                field="event",
                value=event,
                user_id=params.user_id,
                operation="check_achievements"
            )
        relevant = EVENT_METRICS.get(event) if event else None

        state = await self.store.get_user(params.user_id)
        if state is None:
            raise NotFoundError(
                f"No progression record for user {params.user_id}",
                record_type="User",
                record_id=params.user_id,
                operation="check_achievements"
            )

        owned = {u.achievement_id for u in await self.store.list_unlocks(params.user_id)}
        results = []
        for achievement in await self.catalog.list_active():
            criteria = achievement.criteria
            if criteria is None or achievement.id in owned:
                continue
            if relevant is not None and criteria.metric not in relevant:
                continue
            if not criteria.satisfied_by(state):
                continue

            # unlock() stays the gate, so a concurrent check cannot credit twice
            result = await self.unlock(params.user_id, achievement.id, {
                "event": event,
                "metric": criteria.metric,
                "value": getattr(state, criteria.metric),
            })
            if result.success:
                results.append(result)

        return results

    async def user_achievements(self, user_id: str, category: Optional[str] = None) -> UserAchievements:
        """
        Every active achievement with the user's unlock state

        Returns:
            UserAchievements ordered like the catalog, with counts and the
            points earned from unlocked achievements
        """
        params = validate_input(UserInput, "list_achievements", user_id=user_id)
        if await self.store.get_user(params.user_id) is None:
            raise NotFoundError(
                f"No progression record for user {params.user_id}",
                record_type="User",
                record_id=params.user_id,
                operation="list_achievements"
            )

        achievements = await self.catalog.list_active(category)
        unlocks = {u.achievement_id: u for u in await self.store.list_unlocks(params.user_id)}

        statuses = []
        points = 0
        for achievement in achievements:
            unlock = unlocks.get(achievement.id)
            if unlock:
                points += achievement.points_reward
            statuses.append(AchievementStatus(
                achievement=achievement,
                is_unlocked=unlock is not None,
                unlocked_at=unlock.unlocked_at if unlock else None,
            ))

        return UserAchievements(
            achievements=statuses,
            total_achievements=len(achievements),
            unlocked_count=sum(1 for s in statuses if s.is_unlocked),
            points_from_achievements=points,
        )
