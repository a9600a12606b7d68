"""Meal event queries"""
import json
import logging
from datetime import datetime
from typing import Optional
from foodpassport.db.connection import db
from foodpassport.models.meal import GeoLocation, MealEvent, MealMetadata

logger = logging.getLogger(__name__)

MEAL_COLUMNS = """
    id, user_id, occurred_at, latitude, longitude, city,
    metadata, meal, restaurant, timezone
"""


def _row_to_meal(row: dict) -> MealEvent:
    location = None
    if row.get("latitude") is not None and row.get("longitude") is not None:
        location = GeoLocation(
            latitude=row["latitude"],
            longitude=row["longitude"],
            city=row.get("city")
        )

    metadata = row.get("metadata")
    if isinstance(metadata, str):
        metadata = json.loads(metadata)

    return MealEvent(
        id=row["id"],
        user_id=row["user_id"],
        timestamp=row["occurred_at"],
        location=location,
        metadata=MealMetadata(**metadata) if metadata else None,
        meal=row.get("meal"),
        restaurant=row.get("restaurant"),
        timezone=row.get("timezone"),
    )


async def save_meal_event(event: MealEvent) -> None:
    """Store a meal event. Re-saving the same id is a no-op."""
    location = event.location
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO meal_events
                (id, user_id, occurred_at, latitude, longitude, city, metadata, meal, restaurant, timezone)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
                """,
                (
                    event.id,
                    event.user_id,
                    event.timestamp,
                    location.latitude if location else None,
                    location.longitude if location else None,
                    location.city if location else None,
                    json.dumps(event.metadata.model_dump()) if event.metadata else None,
                    event.meal,
                    event.restaurant,
                    event.timezone,
                )
            )
            await conn.commit()

    logger.info(f"Saved meal event {event.id} for user {event.user_id}")


async def get_recent_meals(user_id: str, limit: int = 10) -> list[MealEvent]:
    """Most recent meals for a user, newest first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {MEAL_COLUMNS}
                FROM meal_events
                WHERE user_id = %s
                ORDER BY occurred_at DESC
                LIMIT %s
                """,
                (user_id, limit)
            )
            rows = await cur.fetchall()
            return [_row_to_meal(row) for row in rows]


async def get_all_meals(user_id: str, since: Optional[datetime] = None) -> list[MealEvent]:
    """Full meal history for a user, oldest first (aggregate backfill)"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            if since is None:
                await cur.execute(
                    f"""
                    SELECT {MEAL_COLUMNS}
                    FROM meal_events
                    WHERE user_id = %s
                    ORDER BY occurred_at ASC
                    """,
                    (user_id,)
                )
            else:
                await cur.execute(
                    f"""
                    SELECT {MEAL_COLUMNS}
                    FROM meal_events
                    WHERE user_id = %s AND occurred_at >= %s
                    ORDER BY occurred_at ASC
                    """,
                    (user_id, since)
                )
            rows = await cur.fetchall()
            return [_row_to_meal(row) for row in rows]


async def has_meal_before(user_id: str, timestamp: datetime, meal_id: str) -> bool:
    """Whether the user has a meal ordered before (timestamp, meal_id)"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT 1
                FROM meal_events
                WHERE user_id = %s
                  AND (occurred_at, id) < (%s, %s)
                LIMIT 1
                """,
                (user_id, timestamp, meal_id)
            )
            row = await cur.fetchone()
            return row is not None
