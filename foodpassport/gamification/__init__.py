"""
Stamp engine for Food Passport

This module decides what a newly logged meal earns:
- Stamps (badges) from a fixed rule catalog
- Per-user aggregates behind count-based stamps
- Completion of personalized dish challenges

Entry point: AchievementEngine.evaluate_meal_event()
"""

from foodpassport.gamification.engine import AchievementEngine, AchievementUnlocked, ChallengeCompleted
from foodpassport.gamification.classifier import SignalBundle, classify_meal
from foodpassport.gamification.registry import ACHIEVEMENT_CATALOG, get_achievement_by_id, get_all_achievements
from foodpassport.gamification.memory_store import InMemoryStore

__all__ = [
    "AchievementEngine",
    "AchievementUnlocked",
    "ChallengeCompleted",
    "SignalBundle",
    "classify_meal",
    "ACHIEVEMENT_CATALOG",
    "get_achievement_by_id",
    "get_all_achievements",
    "InMemoryStore",
]
