"""
Prometheus metrics for the progression engine.

- Points: awards by reason type, level-ups
- Achievements: unlocks by category, duplicate unlock attempts
- Streaks: transitions by outcome
- Errors: engine errors by type and operation

The embedding process decides how metrics are exposed for scraping.
"""

import logging
from prometheus_client import Counter

logger = logging.getLogger(__name__)

# =============================================================================
# Points Metrics
# =============================================================================

points_awarded_total = Counter(
    "progression_points_awarded_total",
    "Total points credited to users",
    ["reason_type"],  # reason_type: achievement/streak/admin/...
)

level_ups_total = Counter(
    "progression_level_ups_total",
    "Total level-ups across all users",
)

# =============================================================================
# Achievement Metrics
# =============================================================================

achievements_unlocked_total = Counter(
    "progression_achievements_unlocked_total",
    "Total first-time achievement unlocks",
    ["category"],
)

duplicate_unlocks_total = Counter(
    "progression_duplicate_unlocks_total",
    "Unlock attempts for achievements the user already had",
)

# =============================================================================
# Streak Metrics
# =============================================================================

streak_updates_total = Counter(
    "progression_streak_updates_total",
    "Streak state-machine transitions",
    ["outcome"],  # outcome: started/continued/broken/unchanged/reset
)

# =============================================================================
# Error Metrics
# =============================================================================

errors_total = Counter(
    "progression_errors_total",
    "Errors raised by progression operations",
    ["error_type", "operation"],
)


def reason_type(reason: str) -> str:
    """Collapse a free-form reason like 'achievement:first_story' to a bounded label"""
    return reason.split(":", 1)[0].strip().lower() or "unknown"
