"""Global test fixtures for stamp engine tests"""
import pytest

from foodpassport.gamification.engine import AchievementEngine
from foodpassport.gamification.memory_store import InMemoryStore
from foodpassport.integrations.fuzzy_matcher import LocalFuzzyMatcher


# ============================================================================
# Store & Engine Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-1"


@pytest.fixture
def store():
    """Fresh in-memory store"""
    return InMemoryStore()


@pytest.fixture
def engine(store):
    """Engine wired entirely to the in-memory store with local dish matching"""
    return AchievementEngine(
        meal_store=store,
        aggregate_store=store,
        achievement_store=store,
        challenge_store=store,
        fuzzy_matcher=LocalFuzzyMatcher(threshold=0.8),
        match_timeout=1.0,
    )
