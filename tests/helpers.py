"""Shared helpers for stamp engine tests"""
from datetime import datetime, timezone
from itertools import count
from typing import Optional

from foodpassport.gamification.engine import AchievementEngine
from foodpassport.gamification.memory_store import InMemoryStore
from foodpassport.models.meal import GeoLocation, MealEvent, MealMetadata


PORTLAND_CENTER = (45.5051, -122.6750)
# ~50 km due east of Portland center
FIFTY_KM_FROM_PORTLAND = (45.5051, -122.0323)
NYC_CENTER = (40.7128, -74.0060)

# A Wednesday, so taco_tuesday stays locked unless a test asks for it
WEDNESDAY = datetime(2024, 5, 8, 12, 0, tzinfo=timezone.utc)
TUESDAY = datetime(2024, 5, 7, 12, 0, tzinfo=timezone.utc)

_meal_ids = count(1)


def make_meal(
    user_id: str = "user-1",
    meal: Optional[str] = "Cheeseburger",
    timestamp: datetime = WEDNESDAY,
    coords: Optional[tuple] = None,
    city: Optional[str] = None,
    restaurant: Optional[str] = None,
    timezone_name: Optional[str] = None,
    meal_id: Optional[str] = None,
    **metadata
) -> MealEvent:
    """Build a MealEvent; extra keyword arguments become MealMetadata fields"""
    location = None
    if coords is not None:
        location = GeoLocation(latitude=coords[0], longitude=coords[1], city=city)
    return MealEvent(
        id=meal_id or f"meal-{next(_meal_ids):06d}",
        user_id=user_id,
        timestamp=timestamp,
        location=location,
        metadata=MealMetadata(**metadata) if metadata else None,
        meal=meal,
        restaurant=restaurant,
        timezone=timezone_name,
    )


async def log_meal(engine: AchievementEngine, store: InMemoryStore, event: MealEvent):
    """Record a meal the way the service does, then evaluate it"""
    await store.record_meal(event)
    return await engine.evaluate_meal_event(event)


def unlocked_ids(result) -> list[str]:
    return [definition.id for definition in result.unlocked]
