"""
Achievement System

Evaluates the stamp catalog against a newly recorded meal and awards every
stamp whose rule now holds:
- First post (derived from the user's prior meal count)
- Places (geofences) and plates (classifier content predicates)
- Place + plate, plate + weekday
- Counters and distinct sets (read from the post-update aggregate)

Features:
- Each rule is evaluated in isolation; a failing rule never blocks others
- Unlocks are written with create-if-absent, so a stamp is stored once
- Progress tracking for locked stamps
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
import logging

from foodpassport.exceptions import wrap_store_exception
from foodpassport.gamification.classifier import SignalBundle
from foodpassport.gamification.geofence import within_region
from foodpassport.gamification.registry import ACHIEVEMENT_CATALOG
from foodpassport.gamification.stores import AchievementStore, MealStore
from foodpassport.models.achievement import AchievementDefinition, RuleKind, UserAchievement
from foodpassport.models.aggregate import UserAggregate
from foodpassport.models.meal import MealEvent
from foodpassport.observability.metrics import stamp_rule_failures_total, stamps_unlocked_total

logger = logging.getLogger(__name__)


@dataclass
class RuleContext:
    """Everything a rule may look at for one meal event"""
    event: MealEvent
    signals: SignalBundle
    aggregate: UserAggregate  # post-update, includes this event
    earned_ids: frozenset = field(default_factory=frozenset)


@dataclass
class AwardOutcome:
    unlocked: List[AchievementDefinition] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class RuleEvaluator:
    """Applies catalog rules to a meal event and persists unlocks"""

    def __init__(
        self,
        meal_store: MealStore,
        achievement_store: AchievementStore,
        catalog: Iterable[AchievementDefinition] = ACHIEVEMENT_CATALOG,
    ):
        self.meal_store = meal_store
        self.achievement_store = achievement_store
        self.catalog = tuple(catalog)

    async def evaluate_rule(self, definition: AchievementDefinition, context: RuleContext) -> bool:
        """
        Decide whether a single stamp is earned by this event.

        Already-earned stamps never evaluate true.
        """
        if definition.id in context.earned_ids:
            return False

        criteria = definition.criteria
        kind = criteria.kind

        if kind == RuleKind.FIRST_POST:
            return await self._is_first_post(context.event)

        elif kind == RuleKind.GEOFENCE:
            return within_region(context.event.location, criteria.region)

        elif kind == RuleKind.CONTENT_MATCH:
            return context.signals.has(criteria.content)

        elif kind == RuleKind.COMPOUND_GEOFENCE_CONTENT:
            return (
                within_region(context.event.location, criteria.region)
                and context.signals.has(criteria.content)
            )

        elif kind == RuleKind.CONTENT_AND_WEEKDAY:
            return (
                context.signals.day_of_week == criteria.weekday
                and context.signals.has(criteria.content)
            )

        elif kind == RuleKind.THRESHOLD_COUNT:
            return context.aggregate.counter_value(criteria.counter) >= criteria.threshold

        elif kind == RuleKind.DISTINCT_COUNT:
            return context.aggregate.distinct_size(criteria.distinct_set) >= criteria.threshold

        raise ValueError(f"Unsupported rule kind: {kind}")

    async def check_and_award_achievements(self, context: RuleContext) -> AwardOutcome:
        """
        Evaluate every catalog rule and store the ones that unlocked.

        Returns the newly stored stamps in catalog order, plus the ids of
        rules whose evaluation or write failed. A write that finds the stamp
        already stored is a silent no-op.
        """
        outcome = AwardOutcome()
        user_id = context.event.user_id

        for definition in self.catalog:
            try:
                earned = await self.evaluate_rule(definition, context)
            except Exception:
                logger.error(
                    f"Rule {definition.id} failed for user {user_id} on meal {context.event.id}",
                    exc_info=True
                )
                stamp_rule_failures_total.labels(achievement=definition.id).inc()
                outcome.failed.append(definition.id)
                continue

            logger.debug(f"Rule {definition.id} ({definition.kind.value}) for user {user_id}: {earned}")
            if not earned:
                continue

            user_achievement = UserAchievement(
                user_id=user_id,
                achievement_id=definition.id,
                earned_at=datetime.now(timezone.utc),
                meal_event_id=context.event.id,
            )
            try:
                inserted = await self.achievement_store.create_if_absent(user_achievement)
            except Exception:
                logger.error(
                    f"Could not store stamp {definition.id} for user {user_id}; "
                    f"not retrying for meal {context.event.id}",
                    exc_info=True
                )
                stamp_rule_failures_total.labels(achievement=definition.id).inc()
                outcome.failed.append(definition.id)
                continue

            if not inserted:
                logger.debug(f"User {user_id} already holds {definition.id}, skipping")
                continue

            stamps_unlocked_total.labels(achievement=definition.id).inc()
            outcome.unlocked.append(definition)
            logger.info(
                f"User {user_id} unlocked stamp: {definition.id} "
                f"({definition.name}) with meal {context.event.id}"
            )

        return outcome

    async def get_earned_ids(self, user_id: str) -> frozenset:
        try:
            earned = await self.achievement_store.list_user_achievements(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "list_user_achievements", "achievement", user_id)
        return frozenset(ua.achievement_id for ua in earned)

    async def get_user_achievements(
        self,
        user_id: str,
        aggregate: Optional[UserAggregate] = None,
        include_locked: bool = False
    ) -> Dict[str, object]:
        """
        Get user's stamps with progress

        Args:
            user_id: User ID
            aggregate: User's current aggregate, used for locked-stamp progress
            include_locked: Whether to include locked stamps with progress

        Returns:
            {
                'unlocked': [list of unlocked stamps],
                'locked': [list of locked stamps with progress] (if include_locked=True),
                'total_unlocked': int,
                'total_achievements': int
            }
        """
        try:
            user_achievements = await self.achievement_store.list_user_achievements(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "list_user_achievements", "achievement", user_id)

        catalog_by_id = {definition.id: definition for definition in self.catalog}
        unlocked = []
        unlocked_ids = set()
        for user_ach in user_achievements:
            definition = catalog_by_id.get(user_ach.achievement_id)
            if definition is None:
                logger.warning(f"User {user_id} holds unknown stamp {user_ach.achievement_id}")
                continue
            unlocked.append({
                'achievement_id': definition.id,
                'name': definition.name,
                'description': definition.description,
                'image': definition.image,
                'earned_at': user_ach.earned_at,
                'meal_event_id': user_ach.meal_event_id,
            })
            unlocked_ids.add(definition.id)

        # Most recent first
        unlocked.sort(key=lambda x: x['earned_at'], reverse=True)

        result = {
            'unlocked': unlocked,
            'total_unlocked': len(unlocked),
            'total_achievements': len(self.catalog),
        }

        if include_locked:
            aggregate = aggregate or UserAggregate(user_id=user_id)
            locked = []
            for definition in self.catalog:
                if definition.id in unlocked_ids:
                    continue
                locked.append({
                    'achievement_id': definition.id,
                    'name': definition.name,
                    'description': definition.description,
                    'image': definition.image,
                    'progress': calculate_achievement_progress(definition, aggregate),
                })
            # Closest to completion first
            locked.sort(key=lambda x: x['progress']['percentage'], reverse=True)
            result['locked'] = locked

        return result

    async def clear_user_stamps(self, user_id: str) -> int:
        """Delete every stamp a user holds. Returns how many were removed."""
        try:
            cleared = await self.achievement_store.delete_user_achievements(user_id)
        except Exception as e:
            raise wrap_store_exception(e, "delete_user_achievements", "achievement", user_id)
        logger.info(f"Cleared {cleared} stamps for user {user_id}")
        return cleared

    async def _is_first_post(self, event: MealEvent) -> bool:
        # Only meals ordered before this one count; later ones may already be
        # stored when events are synced in a batch
        return not await self.meal_store.has_meal_before(event.user_id, event.timestamp, event.id)


# ============================================
# Progress & Formatting
# ============================================

def calculate_achievement_progress(definition: AchievementDefinition, aggregate: UserAggregate) -> Dict:
    """
    Calculate progress toward a stamp

    Returns:
        {
            'current': int,
            'required': int,
            'percentage': int,
            'description': str
        }
    """
    criteria = definition.criteria

    if criteria.kind == RuleKind.THRESHOLD_COUNT:
        current = aggregate.counter_value(criteria.counter)
        required = criteria.threshold
    elif criteria.kind == RuleKind.DISTINCT_COUNT:
        current = aggregate.distinct_size(criteria.distinct_set)
        required = criteria.threshold
    else:
        # One-shot stamps are either earned or not
        current = 0
        required = 1

    current = min(current, required)
    percentage = min(100, int(current / required * 100)) if required > 0 else 0

    return {
        'current': current,
        'required': required,
        'percentage': percentage,
        'description': f"{current}/{required}"
    }


def format_achievement_unlock_message(definition: AchievementDefinition) -> str:
    """Format stamp unlock message for celebration"""
    return f"""🎉 NEW STAMP! 🎉

🛂 {definition.name}

{definition.description}"""
