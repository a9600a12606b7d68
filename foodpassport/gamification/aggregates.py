"""
Aggregate Tracking

Maintains the per-user incremental aggregates that count-based stamps read:
distinct cities, distinct cuisines, sushi meal count and takeout meal count.

Each update is a read-modify-write guarded by compare-and-swap on the
aggregate's version, so two concurrent events for the same user can never
lose an increment. Different users never contend.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from foodpassport import config
from foodpassport.exceptions import AggregateConflictError, wrap_store_exception
from foodpassport.gamification.classifier import SignalBundle, classify_meal
from foodpassport.gamification.stores import AggregateStore
from foodpassport.models.aggregate import AggregateUpdate, UserAggregate
from foodpassport.models.meal import MealEvent
from foodpassport.observability.metrics import aggregate_cas_conflicts_total

logger = logging.getLogger(__name__)


def apply_signals(aggregate: UserAggregate, signals: SignalBundle) -> AggregateUpdate:
    """
    Compute the aggregate after one meal. Does not touch the store.

    City and cuisine only count when new to the user's distinct set.
    """
    cities = list(aggregate.cities)
    cuisines = list(aggregate.cuisines)

    city_added = signals.city is not None and signals.city not in cities
    if city_added:
        cities.append(signals.city)

    cuisine_added = signals.cuisine is not None and signals.cuisine not in cuisines
    if cuisine_added:
        cuisines.append(signals.cuisine)

    updated = aggregate.model_copy(update={
        "cities": cities,
        "cuisines": cuisines,
        "sushi_meal_count": aggregate.sushi_meal_count + (1 if signals.is_sushi else 0),
        "takeout_meal_count": aggregate.takeout_meal_count + (1 if signals.is_takeout else 0),
        "updated_at": datetime.now(timezone.utc),
    })
    return AggregateUpdate(
        aggregate=updated,
        city_added=city_added,
        cuisine_added=cuisine_added,
        sushi_incremented=signals.is_sushi,
        takeout_incremented=signals.is_takeout,
    )


class AggregateTracker:
    """Aggregate store adapter used by the engine"""

    def __init__(self, store: AggregateStore, max_attempts: Optional[int] = None):
        self.store = store
        self.max_attempts = max_attempts or config.AGGREGATE_CAS_MAX_ATTEMPTS

    async def get(self, user_id: str) -> UserAggregate:
        """Current aggregate, or an empty one for users without history"""
        try:
            aggregate = await self.store.get_aggregate(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "get_aggregate", "aggregate", user_id)
        return aggregate or UserAggregate(user_id=user_id)

    async def record_event(self, user_id: str, signals: SignalBundle) -> AggregateUpdate:
        """
        Fold one meal's signals into the user's aggregate.

        Returns the post-update aggregate (including this meal) and which
        parts changed. Meals that change nothing skip the write.

        Raises:
            AggregateConflictError: if every CAS attempt lost a race
            StoreError: if the store itself failed
        """
        return await self._update(user_id, lambda current: apply_signals(current, signals))

    async def rebuild_from_history(self, user_id: str, meals: Iterable[MealEvent]) -> UserAggregate:
        """
        Recompute a user's aggregate from their full meal history.

        One-time backfill for users whose meals predate aggregate tracking.
        Replaces whatever counts are stored.
        """
        signal_list = [classify_meal(meal) for meal in meals]

        def rebuild(current: UserAggregate) -> AggregateUpdate:
            fresh = UserAggregate(user_id=user_id, version=current.version)
            update = AggregateUpdate(aggregate=fresh)
            for signals in signal_list:
                update = apply_signals(update.aggregate, signals)
            return update

        update = await self._update(user_id, rebuild, always_write=True)
        logger.info(
            f"Rebuilt aggregate for user {user_id} from {len(signal_list)} meals: "
            f"{update.aggregate.city_count} cities, {update.aggregate.cuisine_count} cuisines, "
            f"{update.aggregate.sushi_meal_count} sushi, {update.aggregate.takeout_meal_count} takeout"
        )
        return update.aggregate

    async def reset(self, user_id: str) -> bool:
        """Delete a user's aggregate (user-initiated data wipe)"""
        try:
            deleted = await self.store.delete_aggregate(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "delete_aggregate", "aggregate", user_id)
        logger.info(f"Reset aggregate for user {user_id} (existed: {deleted})")
        return deleted

    async def _update(
        self,
        user_id: str,
        compute: Callable[[UserAggregate], AggregateUpdate],
        always_write: bool = False,
    ) -> AggregateUpdate:
        for attempt in range(1, self.max_attempts + 1):
            try:
                stored = await self.store.get_aggregate(user_id)
            except Exception as e:
                raise wrap_store_exception(e, "get_aggregate", "aggregate", user_id)

            current = stored or UserAggregate(user_id=user_id)
            update = compute(current)

            if stored is not None and not update.changed and not always_write:
                return update

            expected_version = stored.version if stored is not None else None
            try:
                written = await self.store.put_aggregate(update.aggregate, expected_version)
            except Exception as e:
                raise wrap_store_exception(e, "put_aggregate", "aggregate", user_id)

            if written:
                new_version = 1 if expected_version is None else expected_version + 1
                update.aggregate.version = new_version
                return update

            aggregate_cas_conflicts_total.inc()
            logger.warning(
                f"Aggregate CAS conflict for user {user_id} "
                f"(attempt {attempt}/{self.max_attempts}), retrying"
            )

        raise AggregateConflictError(
            f"Could not update aggregate for user {user_id} after {self.max_attempts} attempts",
            attempts=self.max_attempts,
            user_id=user_id,
            operation="record_event",
        )
