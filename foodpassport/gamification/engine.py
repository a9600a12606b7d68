"""
Stamp engine entry point

evaluate_meal_event() runs one "meal recorded" event through the full
pipeline:

    classify -> update aggregates -> evaluate rules -> match challenges

and returns what the event earned. Partial failures (a store outage, a
broken rule, a slow matcher) are logged and skipped; the call itself never
raises for them. Listeners registered with on_achievement_unlocked() and
on_challenge_completed() are notified in the background after the result is
decided.

Events for one user are evaluated one at a time, in arrival order. Events
for different users never wait on each other.
"""

import asyncio
import inspect
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from foodpassport.gamification.achievement_system import RuleContext, RuleEvaluator
from foodpassport.gamification.aggregates import AggregateTracker
from foodpassport.gamification.challenges import ChallengeMatcher
from foodpassport.gamification.classifier import SignalBundle, classify_meal
from foodpassport.gamification.registry import ACHIEVEMENT_CATALOG
from foodpassport.gamification.stores import (
    AchievementStore,
    AggregateStore,
    ChallengeStore,
    FuzzyMatcher,
    MealStore,
)
from foodpassport.models.achievement import AchievementDefinition
from foodpassport.models.aggregate import UserAggregate
from foodpassport.models.challenge import Challenge, EvaluationResult
from foodpassport.models.meal import MealEvent
from foodpassport.observability.metrics import meal_evaluation_duration_seconds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AchievementUnlocked:
    user_id: str
    achievement: AchievementDefinition
    meal_event_id: str


@dataclass(frozen=True)
class ChallengeCompleted:
    user_id: str
    challenge: Challenge
    meal_event_id: str


Listener = Callable[[Any], Any]


class AchievementEngine:
    """Evaluates meal events against the stamp catalog and dish challenges"""

    def __init__(
        self,
        meal_store: MealStore,
        aggregate_store: AggregateStore,
        achievement_store: AchievementStore,
        challenge_store: ChallengeStore,
        fuzzy_matcher: FuzzyMatcher,
        catalog: Iterable[AchievementDefinition] = ACHIEVEMENT_CATALOG,
        match_timeout: Optional[float] = None,
        aggregate_max_attempts: Optional[int] = None,
    ):
        self.aggregates = AggregateTracker(aggregate_store, max_attempts=aggregate_max_attempts)
        self.evaluator = RuleEvaluator(meal_store, achievement_store, catalog)
        self.challenges = ChallengeMatcher(
            challenge_store,
            fuzzy_matcher,
            timeout=match_timeout,
        )

        self._user_locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

        self._unlock_listeners: List[Listener] = []
        self._challenge_listeners: List[Listener] = []
        self._pending: set = set()

    # ==========================================
    # Listeners
    # ==========================================

    def on_achievement_unlocked(self, callback: Listener) -> Callable[[], None]:
        """
        Register a callback for AchievementUnlocked events.

        Callbacks may be plain functions or coroutine functions. They run in
        the background; their failures are logged and never affect
        evaluation. Returns a function that unregisters the callback.
        """
        return self._subscribe(self._unlock_listeners, callback)

    def on_challenge_completed(self, callback: Listener) -> Callable[[], None]:
        """Register a callback for ChallengeCompleted events. See on_achievement_unlocked()."""
        return self._subscribe(self._challenge_listeners, callback)

    @staticmethod
    def _subscribe(listeners: List[Listener], callback: Listener) -> Callable[[], None]:
        listeners.append(callback)

        def unsubscribe() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def _emit(self, listeners: List[Listener], payload: Any) -> None:
        for callback in list(listeners):
            task = asyncio.create_task(self._notify(callback, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    @staticmethod
    async def _notify(callback: Listener, payload: Any) -> None:
        try:
            result = callback(payload)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error(
                f"Listener {getattr(callback, '__name__', callback)!r} failed for "
                f"{payload.__class__.__name__}",
                exc_info=True
            )

    async def wait_for_listeners(self) -> None:
        """Wait until every scheduled listener call has finished (shutdown, tests)"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ==========================================
    # Evaluation
    # ==========================================

    @asynccontextmanager
    async def _user_lock(self, user_id: str):
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = self._user_locks[user_id] = asyncio.Lock()
        self._lock_holders[user_id] = self._lock_holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[user_id] -= 1
            if self._lock_holders[user_id] == 0:
                del self._lock_holders[user_id]
                del self._user_locks[user_id]

    async def evaluate_meal_event(self, event: MealEvent) -> EvaluationResult:
        """
        Evaluate one newly recorded meal.

        The meal store is expected to already contain the event (it is the
        record that triggered evaluation); first_post ignores it either way.

        Returns:
            EvaluationResult with the stamps newly stored for this event (in
            catalog order), the challenge it completed if any, and the ids of
            rules that failed.
        """
        start_time = time.time()
        try:
            async with self._user_lock(event.user_id):
                result = await self._evaluate(event)
        finally:
            meal_evaluation_duration_seconds.observe(time.time() - start_time)

        for definition in result.unlocked:
            self._emit(
                self._unlock_listeners,
                AchievementUnlocked(user_id=event.user_id, achievement=definition, meal_event_id=event.id),
            )
        if result.completed_challenge is not None:
            self._emit(
                self._challenge_listeners,
                ChallengeCompleted(
                    user_id=event.user_id,
                    challenge=result.completed_challenge,
                    meal_event_id=event.id,
                ),
            )
        return result

    async def _evaluate(self, event: MealEvent) -> EvaluationResult:
        user_id = event.user_id
        signals = classify_meal(event)

        aggregate = await self._record_aggregates(event, signals)

        try:
            earned_ids = await self.evaluator.get_earned_ids(user_id)
        except Exception:
            # create_if_absent still keeps stamps unique
            logger.warning(f"Could not load earned stamps for user {user_id}, evaluating all rules")
            earned_ids = frozenset()

        context = RuleContext(event=event, signals=signals, aggregate=aggregate, earned_ids=earned_ids)
        outcome = await self.evaluator.check_and_award_achievements(context)

        completed = None
        try:
            completed = await self.challenges.check_meal(event, signals)
        except Exception:
            logger.error(f"Challenge check failed for meal {event.id} (user {user_id})", exc_info=True)

        if outcome.unlocked or completed:
            logger.info(
                f"Meal {event.id} for user {user_id}: "
                f"{len(outcome.unlocked)} stamps unlocked, "
                f"challenge completed: {completed.id if completed else None}"
            )

        return EvaluationResult(
            unlocked=outcome.unlocked,
            completed_challenge=completed,
            failed_rules=outcome.failed,
        )

    async def _record_aggregates(self, event: MealEvent, signals: SignalBundle) -> UserAggregate:
        try:
            update = await self.aggregates.record_event(event.user_id, signals)
            return update.aggregate
        except Exception:
            logger.error(
                f"Aggregate update failed for meal {event.id} (user {event.user_id}), "
                f"using last stored aggregate",
                exc_info=True
            )

        try:
            return await self.aggregates.get(event.user_id)
        except Exception:
            logger.warning(f"Aggregate unreadable for user {event.user_id}, using an empty one")
            return UserAggregate(user_id=event.user_id)

    # ==========================================
    # User maintenance
    # ==========================================

    async def get_user_achievements(self, user_id: str, include_locked: bool = False) -> Dict:
        """User's stamps, with progress on locked ones when include_locked is set"""
        aggregate = await self.aggregates.get(user_id) if include_locked else None
        return await self.evaluator.get_user_achievements(
            user_id, aggregate=aggregate, include_locked=include_locked
        )

    async def rebuild_aggregates(self, user_id: str, meals: Iterable[MealEvent]) -> UserAggregate:
        """Backfill a user's aggregate from meal history"""
        async with self._user_lock(user_id):
            return await self.aggregates.rebuild_from_history(user_id, meals)

    async def reset_user(self, user_id: str) -> int:
        """
        Wipe a user's stamps and aggregate.

        Returns the number of stamps removed.
        """
        async with self._user_lock(user_id):
            cleared = await self.evaluator.clear_user_stamps(user_id)
            await self.aggregates.reset(user_id)
        logger.info(f"Reset stamp engine state for user {user_id}")
        return cleared
