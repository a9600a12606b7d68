"""
PostgreSQL-backed stores for the stamp engine.

PostgresStore adapts the query modules to the store protocols in
foodpassport.gamification.stores. Driver errors are wrapped as StoreError so
the engine can log and skip them per phase.
"""

import logging
from datetime import datetime
from typing import Optional

from foodpassport.db import queries
from foodpassport.exceptions import wrap_store_exception
from foodpassport.models.achievement import UserAchievement
from foodpassport.models.aggregate import UserAggregate
from foodpassport.models.challenge import Challenge
from foodpassport.models.meal import MealEvent

logger = logging.getLogger(__name__)


class PostgresStore:
    """Meal, aggregate, stamp and challenge store on the shared connection pool"""

    async def record_meal(self, event: MealEvent) -> None:
        try:
            await queries.save_meal_event(event)
        except Exception as e:
            raise wrap_store_exception(e, "save_meal_event", "meal", event.user_id)

    async def get_recent_meals(self, user_id: str, limit: int = 10) -> list[MealEvent]:
        try:
            return await queries.get_recent_meals(user_id, limit)
        except Exception as e:
            raise wrap_store_exception(e, "get_recent_meals", "meal", user_id)

    async def has_meal_before(self, user_id: str, timestamp: datetime, meal_id: str) -> bool:
        try:
            return await queries.has_meal_before(user_id, timestamp, meal_id)
        except Exception as e:
            raise wrap_store_exception(e, "has_meal_before", "meal", user_id)

    async def get_all_meals(self, user_id: str) -> list[MealEvent]:
        try:
            return await queries.get_all_meals(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "get_all_meals", "meal", user_id)

    async def get_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        try:
            return await queries.get_user_aggregate(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "get_user_aggregate", "aggregate", user_id)

    async def put_aggregate(self, aggregate: UserAggregate, expected_version: Optional[int]) -> bool:
        try:
            if expected_version is None:
                return await queries.insert_user_aggregate(aggregate)
            return await queries.update_user_aggregate(aggregate, expected_version)
        except Exception as e:
            raise wrap_store_exception(e, "put_aggregate", "aggregate", aggregate.user_id)

    async def delete_aggregate(self, user_id: str) -> bool:
        try:
            return await queries.delete_user_aggregate(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "delete_user_aggregate", "aggregate", user_id)

    async def create_if_absent(self, user_achievement: UserAchievement) -> bool:
        try:
            return await queries.create_user_achievement_if_absent(user_achievement)
        except Exception as e:
            raise wrap_store_exception(e, "create_user_achievement", "achievement", user_achievement.user_id)

    async def list_user_achievements(self, user_id: str) -> list[UserAchievement]:
        try:
            return await queries.get_user_achievements(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "get_user_achievements", "achievement", user_id)

    async def delete_user_achievements(self, user_id: str) -> int:
        try:
            return await queries.delete_user_achievements(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "delete_user_achievements", "achievement", user_id)

    async def save_challenge(self, challenge: Challenge) -> None:
        try:
            await queries.save_challenge(challenge)
        except Exception as e:
            raise wrap_store_exception(e, "save_challenge", "challenge", challenge.user_id)

    async def list_active_challenges(self, user_id: str) -> list[Challenge]:
        try:
            return await queries.get_active_challenges(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "get_active_challenges", "challenge", user_id)

    async def complete_challenge(
        self,
        user_id: str,
        challenge_id: str,
        meal_id: str,
        dish_name: str,
        completed_at: datetime,
    ) -> Optional[Challenge]:
        try:
            return await queries.complete_challenge(user_id, challenge_id, meal_id, dish_name, completed_at)
        except Exception as e:
            raise wrap_store_exception(e, "complete_challenge", "challenge", user_id)
