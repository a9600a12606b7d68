"""Stamp (user achievement) queries"""
import logging
from foodpassport.db.connection import db
from foodpassport.models.achievement import UserAchievement

logger = logging.getLogger(__name__)


async def create_user_achievement_if_absent(user_achievement: UserAchievement) -> bool:
    """
    Insert a stamp unless the user already holds it.

    The (user_id, achievement_id) primary key makes this atomic, so two
    concurrent evaluations can never both insert.

    Returns:
        True if this call inserted the row
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO user_achievements (user_id, achievement_id, earned_at, meal_event_id)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id, achievement_id) DO NOTHING
                RETURNING achievement_id
                """,
                (
                    user_achievement.user_id,
                    user_achievement.achievement_id,
                    user_achievement.earned_at,
                    user_achievement.meal_event_id,
                )
            )
            row = await cur.fetchone()
            await conn.commit()

    return row is not None


async def get_user_achievements(user_id: str) -> list[UserAchievement]:
    """All stamps a user holds, most recent first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT user_id, achievement_id, earned_at, meal_event_id
                FROM user_achievements
                WHERE user_id = %s
                ORDER BY earned_at DESC
                """,
                (user_id,)
            )
            rows = await cur.fetchall()
            return [UserAchievement(**row) for row in rows]


async def delete_user_achievements(user_id: str) -> int:
    """Remove every stamp a user holds. Returns the number of rows deleted."""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM user_achievements WHERE user_id = %s",
                (user_id,)
            )
            deleted = cur.rowcount
            await conn.commit()

    logger.info(f"Deleted {deleted} stamps for user {user_id}")
    return deleted
