"""Global test fixtures for progression engine tests"""
import pytest
from datetime import date

from progression.gamification.achievement_system import AchievementCatalog, AchievementUnlocker
from progression.gamification.leaderboard import LeaderboardRanker
from progression.gamification.points_ledger import PointsLedger
from progression.gamification.streak_system import StreakTracker
from progression.services.progression_service import ProgressionManager
from fakes import InMemoryProgressionStore


# ============================================================================
# Storage Fixtures
# ============================================================================

@pytest.fixture
def store():
    """Empty in-memory store"""
    return InMemoryProgressionStore()


@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "writer-1"


@pytest.fixture
def seeded_store(store, test_user_id):
    """Store with one zeroed user and a small achievement catalog"""
    store.seed_user(test_user_id, age=9)
    store.seed_achievement("first_story", category="writing", name="First Story", points_reward=50, sort_order=1)
    store.seed_achievement("bookworm", category="reading", name="Bookworm", points_reward=100, sort_order=2)
    store.seed_achievement("hello", category="social", name="Hello", points_reward=0, sort_order=3)
    store.seed_achievement("retired", category="writing", points_reward=500, is_active=False)
    return store


# ============================================================================
# Component Fixtures
# ============================================================================

@pytest.fixture
def ledger(seeded_store):
    return PointsLedger(seeded_store)


@pytest.fixture
def catalog(seeded_store):
    return AchievementCatalog(seeded_store)


@pytest.fixture
def unlocker(seeded_store, catalog, ledger):
    return AchievementUnlocker(seeded_store, catalog, ledger)


@pytest.fixture
def streaks(seeded_store, ledger):
    return StreakTracker(seeded_store, ledger, bonus_points=10)


@pytest.fixture
def ranker(store):
    return LeaderboardRanker(store, max_limit=100)


@pytest.fixture
def manager(seeded_store):
    return ProgressionManager(seeded_store, streak_bonus_points=10)


# ============================================================================
# Dates
# ============================================================================

@pytest.fixture
def streak_day():
    """Reference day for streak scenarios"""
    return date(2024, 1, 10)
