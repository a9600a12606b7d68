"""
Challenge Matcher

Checks a newly logged dish against the user's active dish challenges and
completes the first one that matches. Matching is delegated to a
FuzzyMatcher under a caller-supplied timeout; a timeout or error counts as
"not completed" for that challenge and is never retried.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from foodpassport import config
from foodpassport.exceptions import wrap_store_exception
from foodpassport.gamification.classifier import SignalBundle
from foodpassport.gamification.stores import ChallengeStore, FuzzyMatcher
from foodpassport.models.challenge import Challenge
from foodpassport.models.meal import MealEvent
from foodpassport.observability.metrics import (
    challenge_match_failures_total,
    challenges_completed_total,
)

logger = logging.getLogger(__name__)


class ChallengeMatcher:
    """Completes at most one active challenge per meal event"""

    def __init__(
        self,
        challenge_store: ChallengeStore,
        fuzzy_matcher: FuzzyMatcher,
        timeout: Optional[float] = None,
    ):
        self.challenge_store = challenge_store
        self.fuzzy_matcher = fuzzy_matcher
        self.timeout = timeout or config.CHALLENGE_MATCH_TIMEOUT_SECONDS

    async def check_meal(self, event: MealEvent, signals: SignalBundle) -> Optional[Challenge]:
        """
        Match the event's dish against active challenges.

        Challenges are tried in store order (newest first). The first match
        is moved to completed and returned; later challenges are not checked.

        Raises:
            StoreError: if active challenges cannot be listed or the
                completion write fails
        """
        dish_name = (event.meal or "").strip()
        if not dish_name:
            logger.debug(f"Meal {event.id} has no dish name, skipping challenge check")
            return None

        try:
            active = await self.challenge_store.list_active_challenges(event.user_id)
        except Exception as e:
            raise wrap_store_exception(e, "list_active_challenges", "challenge", event.user_id)

        if not active:
            return None

        for challenge in active:
            if not await self._matches(challenge, dish_name, signals.cuisine):
                continue

            try:
                completed = await self.challenge_store.complete_challenge(
                    user_id=event.user_id,
                    challenge_id=challenge.id,
                    meal_id=event.id,
                    dish_name=dish_name,
                    completed_at=datetime.now(timezone.utc),
                )
            except Exception as e:
                raise wrap_store_exception(e, "complete_challenge", "challenge", event.user_id)

            if completed is None:
                # Completed concurrently by another event; this meal claims nothing
                logger.info(f"Challenge {challenge.id} was no longer active for user {event.user_id}")
                return None

            challenges_completed_total.inc()
            logger.info(
                f"User {event.user_id} completed challenge {challenge.id} "
                f"('{challenge.recommended_dish_name}') with '{dish_name}' (meal {event.id})"
            )
            return completed

        return None

    async def _matches(self, challenge: Challenge, dish_name: str, cuisine: Optional[str]) -> bool:
        try:
            return bool(await asyncio.wait_for(
                self.fuzzy_matcher.matches(
                    challenge.recommended_dish_name,
                    challenge.cuisine_type,
                    dish_name,
                    cuisine,
                ),
                timeout=self.timeout,
            ))
        except asyncio.TimeoutError:
            challenge_match_failures_total.labels(reason="timeout").inc()
            logger.warning(
                f"Fuzzy match timed out after {self.timeout}s for challenge {challenge.id}, "
                f"treating as not completed"
            )
        except Exception as e:
            challenge_match_failures_total.labels(reason="error").inc()
            logger.warning(
                f"Fuzzy match failed for challenge {challenge.id}: {e}, treating as not completed"
            )
        return False

    async def has_reached_challenge_limit(self, user_id: str, max_active: Optional[int] = None) -> bool:
        """True when the user already holds the maximum number of active challenges"""
        max_active = max_active or config.MAX_ACTIVE_CHALLENGES
        try:
            active = await self.challenge_store.list_active_challenges(user_id)
        except Exception:
            logger.error(f"Error checking challenge limit for user {user_id}", exc_info=True)
            return False
        logger.debug(f"User {user_id} has {len(active)} active challenges")
        return len(active) >= max_active

    async def has_active_challenge_for_dish(self, user_id: str, dish_name: str) -> bool:
        """Case-insensitive check for an active challenge with this dish"""
        try:
            active = await self.challenge_store.list_active_challenges(user_id)
        except Exception:
            logger.error(f"Error checking for duplicate challenge for user {user_id}", exc_info=True)
            return False
        wanted = dish_name.strip().lower()
        return any(c.recommended_dish_name.strip().lower() == wanted for c in active)


def is_challenge_expired(
    challenge: Challenge,
    now: Optional[datetime] = None,
    expiry_days: Optional[int] = None
) -> bool:
    """Challenges older than CHALLENGE_EXPIRY_DAYS are expired"""
    if challenge.generated_at is None:
        return False
    expiry_days = expiry_days or config.CHALLENGE_EXPIRY_DAYS
    now = now or datetime.now(timezone.utc)
    generated_at = challenge.generated_at
    if generated_at.tzinfo is None:
        generated_at = generated_at.replace(tzinfo=timezone.utc)
    return generated_at < now - timedelta(days=expiry_days)
