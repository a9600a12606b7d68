"""User aggregate queries (optimistic concurrency on the version column)"""
import logging
from typing import Optional
from foodpassport.db.connection import db
from foodpassport.models.aggregate import UserAggregate

logger = logging.getLogger(__name__)


async def get_user_aggregate(user_id: str) -> Optional[UserAggregate]:
    """
    Get a user's aggregate

    Returns:
        UserAggregate, or None if the user has no aggregate yet
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT user_id, cities, cuisines, sushi_meal_count, takeout_meal_count,
                       version, updated_at
                FROM user_aggregates
                WHERE user_id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()

    if not row:
        return None
    return UserAggregate(
        user_id=row["user_id"],
        cities=list(row["cities"] or []),
        cuisines=list(row["cuisines"] or []),
        sushi_meal_count=row["sushi_meal_count"],
        takeout_meal_count=row["takeout_meal_count"],
        version=row["version"],
        updated_at=row["updated_at"],
    )


async def insert_user_aggregate(aggregate: UserAggregate) -> bool:
    """Create the aggregate at version 1 unless one already exists"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO user_aggregates
                (user_id, cities, cuisines, sushi_meal_count, takeout_meal_count, version, updated_at)
                VALUES (%s, %s, %s, %s, %s, 1, CURRENT_TIMESTAMP)
                ON CONFLICT (user_id) DO NOTHING
                RETURNING version
                """,
                (
                    aggregate.user_id,
                    aggregate.cities,
                    aggregate.cuisines,
                    aggregate.sushi_meal_count,
                    aggregate.takeout_meal_count,
                )
            )
            row = await cur.fetchone()
            await conn.commit()

    return row is not None


async def update_user_aggregate(aggregate: UserAggregate, expected_version: int) -> bool:
    """
    Overwrite the aggregate if nobody else wrote it since expected_version.

    Returns:
        True if the row was updated (version is now expected_version + 1)
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE user_aggregates
                SET cities = %s,
                    cuisines = %s,
                    sushi_meal_count = %s,
                    takeout_meal_count = %s,
                    version = version + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE user_id = %s AND version = %s
                RETURNING version
                """,
                (
                    aggregate.cities,
                    aggregate.cuisines,
                    aggregate.sushi_meal_count,
                    aggregate.takeout_meal_count,
                    aggregate.user_id,
                    expected_version,
                )
            )
            row = await cur.fetchone()
            await conn.commit()

    return row is not None


async def delete_user_aggregate(user_id: str) -> bool:
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM user_aggregates WHERE user_id = %s",
                (user_id,)
            )
            deleted = cur.rowcount > 0
            await conn.commit()

    return deleted
