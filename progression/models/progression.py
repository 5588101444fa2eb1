"""Progression models: stored records and operation results"""
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from progression.config import LEADERBOARD_DEFAULT_LIMIT


# ==========================================
# Stored records
# ==========================================

class UserProgressionState(BaseModel):
    """A user's points, level, streak and story-count snapshot"""
    user_id: str
    total_points: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_active_date: Optional[date] = None
    story_count: int = Field(default=0, ge=0)

    # Cohort attributes maintained outside the engine, read by leaderboard filters
    age: Optional[int] = None
    is_active: bool = True


class AchievementCriteria(BaseModel):
    """
    Unlock rule: the user's ``metric`` has reached ``threshold``

    Example: {"metric": "streak", "threshold": 7}
    """
    metric: Literal["streak", "longest_streak", "story_count", "total_points", "level"]
    threshold: int = Field(ge=1)

    def satisfied_by(self, state: "UserProgressionState") -> bool:
        return getattr(state, self.metric) >= self.threshold


class AchievementDefinition(BaseModel):
    """Immutable achievement catalog row"""
    id: str
    name: str = ""
    description: str = ""
    category: str
    points_reward: int = Field(default=0, ge=0)
    sort_order: int = 0
    is_active: bool = True
    # None: unlocked only by explicit calls
    criteria: Optional[AchievementCriteria] = None


class UserAchievementUnlock(BaseModel):
    """One-time unlock record, never modified"""
    user_id: str
    achievement_id: str
    unlocked_at: datetime
    context: Optional[dict[str, Any]] = None


class PointTransaction(BaseModel):
    """Append-only audit entry; ``amount`` is the delta actually applied"""
    user_id: str
    amount: int
    requested_amount: int
    reason: str
    timestamp: datetime
    resulting_total: int = Field(ge=0)


# ==========================================
# Operation results
# ==========================================

class AwardResult(BaseModel):
    """Outcome of a point award"""
    new_total: int
    points_awarded: int
    previous_level: int
    new_level: int
    level_up: bool
    clamped: bool = False


class StreakTouch(BaseModel):
    """Outcome of one streak state-machine transition"""
    streak: int
    previous_streak: int
    longest_streak: int
    streak_broken: bool
    days_since_last_active: Optional[int] = None
    points_awarded: int = 0
    milestone: Optional[int] = None
    level_up: bool = False


class StreakUpdate(BaseModel):
    """Facade-shaped result of a streak ping"""
    streak: int
    streak_broken: bool
    points_awarded: int
    longest_streak: int
    milestone: Optional[int] = None
    level_up: bool = False
    # Achievements unlocked by the new streak, already credited
    achievements_unlocked: list[str] = Field(default_factory=list)


class StreakLeader(BaseModel):
    user_id: str
    streak: int


class StreakStatistics(BaseModel):
    """Streak figures across all active users"""
    total_active_streaks: int
    average_streak: float
    longest_current_streak: int
    top_users: list[StreakLeader]


class StreakStatus(BaseModel):
    """Read-only view of where a user's streak stands today"""
    current_streak: int
    longest_streak: int
    last_active_date: Optional[date]
    is_active_today: bool
    days_until_break: int


class UnlockResult(BaseModel):
    """Outcome of an achievement unlock attempt"""
    success: bool
    already_unlocked: bool
    achievement: Optional[AchievementDefinition] = None
    points_awarded: int = 0
    new_level: Optional[int] = None
    level_up: bool = False


class AchievementStatus(BaseModel):
    """Catalog entry annotated with a user's unlock state"""
    achievement: AchievementDefinition
    is_unlocked: bool
    unlocked_at: Optional[datetime] = None


class UserAchievements(BaseModel):
    achievements: list[AchievementStatus]
    total_achievements: int
    unlocked_count: int
    points_from_achievements: int


class LeaderboardFilter(BaseModel):
    """Cohort predicate plus page size for leaderboard queries"""
    min_age: Optional[int] = Field(default=None, ge=0)
    max_age: Optional[int] = Field(default=None, ge=0)
    include_inactive: bool = False
    limit: int = Field(default=LEADERBOARD_DEFAULT_LIMIT, ge=1)

    def matches(self, state: UserProgressionState) -> bool:
        """Whether a progression record belongs to this cohort"""
        if not self.include_inactive and not state.is_active:
            return False
        if self.min_age is not None and (state.age is None or state.age < self.min_age):
            return False
        if self.max_age is not None and (state.age is None or state.age > self.max_age):
            return False
        return True


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    total_points: int
    level: int
    story_count: int
    streak: int


class Leaderboard(BaseModel):
    entries: list[LeaderboardEntry]
    requester_rank: Optional[int] = None


class UserProgression(BaseModel):
    """Facade view of a user's progression"""
    user_id: str
    total_points: int
    level: int
    streak: int
    longest_streak: int
    last_active_date: Optional[date]
    points_to_next_level: int
