"""
In-memory store for meals, aggregates, stamps and challenges.

Implements every store protocol in foodpassport.gamification.stores. Each
operation runs under one asyncio.Lock, so conditional writes are atomic.
Nothing is persisted; use it for tests and local runs.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from foodpassport.models.achievement import UserAchievement
from foodpassport.models.aggregate import UserAggregate
from foodpassport.models.challenge import Challenge, ChallengeStatus
from foodpassport.models.meal import MealEvent

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC so they compare with aware ones
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryStore:
    """In-memory store (not persisted)"""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._meals: dict[str, list[MealEvent]] = {}
        self._aggregates: dict[str, UserAggregate] = {}
        self._user_achievements: dict[tuple[str, str], UserAchievement] = {}
        self._challenges: dict[str, dict[str, Challenge]] = {}

    # ==========================================
    # Meals
    # ==========================================

    async def record_meal(self, event: MealEvent) -> None:
        async with self._lock:
            self._meals.setdefault(event.user_id, []).append(event)

    async def get_recent_meals(self, user_id: str, limit: int = 10) -> list[MealEvent]:
        async with self._lock:
            meals = sorted(self._meals.get(user_id, []), key=lambda m: m.timestamp, reverse=True)
            return meals[:limit]

    async def has_meal_before(self, user_id: str, timestamp: datetime, meal_id: str) -> bool:
        cutoff = (_as_utc(timestamp), meal_id)
        async with self._lock:
            return any(
                (_as_utc(meal.timestamp), meal.id) < cutoff
                for meal in self._meals.get(user_id, [])
            )

    async def get_all_meals(self, user_id: str) -> list[MealEvent]:
        async with self._lock:
            return sorted(self._meals.get(user_id, []), key=lambda m: m.timestamp)

    # ==========================================
    # Aggregates
    # ==========================================

    async def get_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        async with self._lock:
            aggregate = self._aggregates.get(user_id)
            return aggregate.model_copy(deep=True) if aggregate else None

    async def put_aggregate(self, aggregate: UserAggregate, expected_version: Optional[int]) -> bool:
        async with self._lock:
            current = self._aggregates.get(aggregate.user_id)
            if expected_version is None:
                if current is not None:
                    return False
                new_version = 1
            else:
                if current is None or current.version != expected_version:
                    return False
                new_version = expected_version + 1
            self._aggregates[aggregate.user_id] = aggregate.model_copy(
                deep=True, update={"version": new_version}
            )
            logger.debug(f"Stored aggregate for {aggregate.user_id} at version {new_version}")
            return True

    async def delete_aggregate(self, user_id: str) -> bool:
        async with self._lock:
            return self._aggregates.pop(user_id, None) is not None

    # ==========================================
    # Stamps
    # ==========================================

    async def create_if_absent(self, user_achievement: UserAchievement) -> bool:
        key = (user_achievement.user_id, user_achievement.achievement_id)
        async with self._lock:
            if key in self._user_achievements:
                return False
            self._user_achievements[key] = user_achievement
            return True

    async def list_user_achievements(self, user_id: str) -> list[UserAchievement]:
        async with self._lock:
            return [ua for (uid, _), ua in self._user_achievements.items() if uid == user_id]

    async def delete_user_achievements(self, user_id: str) -> int:
        async with self._lock:
            keys = [key for key in self._user_achievements if key[0] == user_id]
            for key in keys:
                del self._user_achievements[key]
            return len(keys)

    # ==========================================
    # Challenges
    # ==========================================

    async def save_challenge(self, challenge: Challenge) -> None:
        async with self._lock:
            self._challenges.setdefault(challenge.user_id, {})[challenge.id] = challenge

    async def get_challenge(self, user_id: str, challenge_id: str) -> Optional[Challenge]:
        async with self._lock:
            return self._challenges.get(user_id, {}).get(challenge_id)

    async def list_active_challenges(self, user_id: str) -> list[Challenge]:
        async with self._lock:
            active = [c for c in self._challenges.get(user_id, {}).values() if c.is_active]
        # Newest first; stable for equal timestamps
        return sorted(
            active,
            key=lambda c: c.generated_at.timestamp() if c.generated_at else float("-inf"),
            reverse=True,
        )

    async def complete_challenge(
        self,
        user_id: str,
        challenge_id: str,
        meal_id: str,
        dish_name: str,
        completed_at: datetime,
    ) -> Optional[Challenge]:
        async with self._lock:
            challenge = self._challenges.get(user_id, {}).get(challenge_id)
            if challenge is None or not challenge.is_active:
                return None
            completed = challenge.model_copy(update={
                "status": ChallengeStatus.COMPLETED,
                "completed_at": completed_at,
                "completed_with_meal_id": meal_id,
                "completed_with_dish": dish_name,
            })
            self._challenges[user_id][challenge_id] = completed
            return completed
