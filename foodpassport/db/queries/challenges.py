"""Dish challenge queries"""
import logging
from datetime import datetime
from typing import Optional
from foodpassport.db.connection import db
from foodpassport.models.challenge import Challenge

logger = logging.getLogger(__name__)

CHALLENGE_COLUMNS = """
    id, user_id, recommended_dish_name, cuisine_type, status, generated_at,
    completed_at, completed_with_meal_id, completed_with_dish
"""


async def save_challenge(challenge: Challenge) -> None:
    """Store a challenge produced by the challenge generator"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO user_challenges
                (id, user_id, recommended_dish_name, cuisine_type, status, generated_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
                """,
                (
                    challenge.id,
                    challenge.user_id,
                    challenge.recommended_dish_name,
                    challenge.cuisine_type,
                    challenge.status.value,
                    challenge.generated_at,
                )
            )
            await conn.commit()

    logger.info(f"Saved challenge {challenge.id} for user {challenge.user_id}")


async def get_active_challenges(user_id: str) -> list[Challenge]:
    """Active challenges, newest first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {CHALLENGE_COLUMNS}
                FROM user_challenges
                WHERE user_id = %s AND status = 'active'
                ORDER BY generated_at DESC NULLS LAST, id
                """,
                (user_id,)
            )
            rows = await cur.fetchall()
            return [Challenge(**row) for row in rows]


async def complete_challenge(
    user_id: str,
    challenge_id: str,
    meal_id: str,
    dish_name: str,
    completed_at: datetime
) -> Optional[Challenge]:
    """
    Mark an active challenge completed.

    The status filter makes the transition one-way: a challenge that is
    already completed is left untouched and None is returned.
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                UPDATE user_challenges
                SET status = 'completed',
                    completed_at = %s,
                    completed_with_meal_id = %s,
                    completed_with_dish = %s
                WHERE id = %s AND user_id = %s AND status = 'active'
                RETURNING {CHALLENGE_COLUMNS}
                """,
                (completed_at, meal_id, dish_name, challenge_id, user_id)
            )
            row = await cur.fetchone()
            await conn.commit()

    return Challenge(**row) if row else None
