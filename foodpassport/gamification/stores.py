"""
Store interfaces consumed by the stamp engine.

Persistence lives behind these protocols so the engine never depends on a
particular database. Two implementations ship: InMemoryStore
(foodpassport.gamification.memory_store) and the PostgreSQL stores in
foodpassport.db.stores.
"""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from foodpassport.models.achievement import UserAchievement
from foodpassport.models.aggregate import UserAggregate
from foodpassport.models.challenge import Challenge
from foodpassport.models.meal import MealEvent


@runtime_checkable
class MealStore(Protocol):
    async def get_recent_meals(self, user_id: str, limit: int = 10) -> list[MealEvent]:
        """Most recent meal events for a user, newest first"""
        ...

    async def has_meal_before(self, user_id: str, timestamp: datetime, meal_id: str) -> bool:
        """
        True when the user has a stored meal ordered before (timestamp, meal_id).

        Meals sharing a timestamp are ordered by id.
        """
        ...


@runtime_checkable
class AggregateStore(Protocol):
    async def get_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        ...

    async def put_aggregate(self, aggregate: UserAggregate, expected_version: Optional[int]) -> bool:
        """
        Compare-and-swap write.

        expected_version=None creates the record only if none exists.
        Otherwise the write succeeds only if the stored version equals
        expected_version, and the stored version becomes expected_version + 1.
        Returns False when the condition failed.
        """
        ...

    async def delete_aggregate(self, user_id: str) -> bool:
        ...


@runtime_checkable
class AchievementStore(Protocol):
    async def create_if_absent(self, user_achievement: UserAchievement) -> bool:
        """Insert unless (user_id, achievement_id) exists. True if this call inserted."""
        ...

    async def list_user_achievements(self, user_id: str) -> list[UserAchievement]:
        ...

    async def delete_user_achievements(self, user_id: str) -> int:
        ...


@runtime_checkable
class ChallengeStore(Protocol):
    async def list_active_challenges(self, user_id: str) -> list[Challenge]:
        """Active challenges, newest first"""
        ...

    async def complete_challenge(
        self,
        user_id: str,
        challenge_id: str,
        meal_id: str,
        dish_name: str,
        completed_at: datetime,
    ) -> Optional[Challenge]:
        """
        Move an active challenge to completed.

        Returns the completed challenge, or None if it was not active.
        Completed challenges never revert.
        """
        ...


@runtime_checkable
class FuzzyMatcher(Protocol):
    async def matches(
        self,
        challenge_dish_name: str,
        challenge_cuisine: Optional[str],
        new_dish_name: str,
        new_cuisine: Optional[str],
    ) -> bool:
        ...
