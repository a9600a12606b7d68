"""Unit tests for the rule evaluator (foodpassport/gamification/achievement_system.py)"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

from foodpassport.gamification.achievement_system import (
    RuleContext,
    RuleEvaluator,
    calculate_achievement_progress,
    format_achievement_unlock_message,
)
from foodpassport.gamification.classifier import classify_meal
from foodpassport.gamification.registry import get_achievement_by_id
from foodpassport.models.achievement import UserAchievement
from foodpassport.models.aggregate import UserAggregate
from tests.helpers import FIFTY_KM_FROM_PORTLAND, NYC_CENTER, PORTLAND_CENTER, TUESDAY, WEDNESDAY, make_meal


def _context(event, aggregate=None, earned=()):
    return RuleContext(
        event=event,
        signals=classify_meal(event),
        aggregate=aggregate or UserAggregate(user_id=event.user_id),
        earned_ids=frozenset(earned),
    )


async def _rule(store, achievement_id, event, aggregate=None, earned=()):
    evaluator = RuleEvaluator(store, store)
    return await evaluator.evaluate_rule(
        get_achievement_by_id(achievement_id),
        _context(event, aggregate, earned),
    )


# ============================================================================
# Individual Rule Kinds
# ============================================================================

@pytest.mark.asyncio
async def test_first_post_true_for_first_meal(store):
    event = make_meal()
    await store.record_meal(event)
    assert await _rule(store, "first_bite", event) is True


@pytest.mark.asyncio
async def test_first_post_true_before_meal_is_stored(store):
    assert await _rule(store, "first_bite", make_meal()) is True


@pytest.mark.asyncio
async def test_first_post_false_with_prior_meal(store):
    await store.record_meal(make_meal(meal_id="earlier", timestamp=WEDNESDAY - timedelta(hours=2)))
    event = make_meal(meal_id="now")
    await store.record_meal(event)
    assert await _rule(store, "first_bite", event) is False


@pytest.mark.asyncio
async def test_first_post_ignores_later_meals_already_stored(store):
    """Offline sync stores a batch of meals before any of them is evaluated"""
    first = make_meal(meal_id="a", timestamp=WEDNESDAY)
    second = make_meal(meal_id="b", timestamp=WEDNESDAY + timedelta(hours=1))
    await store.record_meal(first)
    await store.record_meal(second)

    assert await _rule(store, "first_bite", first) is True
    assert await _rule(store, "first_bite", second) is False


@pytest.mark.asyncio
async def test_first_post_same_timestamp_ordered_by_id(store):
    first = make_meal(meal_id="a")
    second = make_meal(meal_id="b")
    await store.record_meal(second)
    await store.record_meal(first)

    assert await _rule(store, "first_bite", first) is True
    assert await _rule(store, "first_bite", second) is False


@pytest.mark.asyncio
async def test_geofence_rules(store):
    in_portland = make_meal(coords=PORTLAND_CENTER)
    in_nyc = make_meal(coords=NYC_CENTER)
    assert await _rule(store, "stumptown_starter", in_portland) is True
    assert await _rule(store, "stumptown_starter", in_nyc) is False
    assert await _rule(store, "big_apple_bite", in_nyc) is True
    assert await _rule(store, "stumptown_starter", make_meal()) is False


@pytest.mark.asyncio
async def test_already_earned_never_evaluates_true(store):
    event = make_meal(coords=PORTLAND_CENTER)
    assert await _rule(store, "stumptown_starter", event, earned=["stumptown_starter"]) is False


@pytest.mark.asyncio
async def test_content_match_seafood(store):
    assert await _rule(store, "catch_of_the_day", make_meal(meal="Spicy Tuna Roll")) is True
    assert await _rule(store, "catch_of_the_day", make_meal(meal="Cheeseburger")) is False


@pytest.mark.asyncio
async def test_plantlandia_requires_vegan_in_portland(store):
    vegan_portland = make_meal(meal="Buddha Bowl", coords=PORTLAND_CENTER, diet_type="vegan")
    vegan_far = make_meal(meal="Buddha Bowl", coords=FIFTY_KM_FROM_PORTLAND, diet_type="vegan")
    vegetarian_portland = make_meal(meal="Cheese Pizza", coords=PORTLAND_CENTER, diet_type="vegetarian")

    assert await _rule(store, "plantlandia", vegan_portland) is True
    assert await _rule(store, "plantlandia", vegan_far) is False
    assert await _rule(store, "plantlandia", vegetarian_portland) is False


@pytest.mark.asyncio
async def test_taco_tuesday(store):
    assert await _rule(store, "taco_tuesday", make_meal(meal="Carnitas Tacos", timestamp=TUESDAY)) is True
    assert await _rule(store, "taco_tuesday", make_meal(meal="Carnitas Tacos")) is False
    assert await _rule(store, "taco_tuesday", make_meal(meal="Pho", timestamp=TUESDAY)) is False


@pytest.mark.asyncio
async def test_threshold_reads_post_update_aggregate(store):
    event = make_meal(meal="Sushi")
    assert await _rule(store, "dreaming_of_sushi", event, UserAggregate(user_id="user-1", sushi_meal_count=4)) is False
    assert await _rule(store, "dreaming_of_sushi", event, UserAggregate(user_id="user-1", sushi_meal_count=5)) is True


@pytest.mark.asyncio
async def test_distinct_count(store):
    nine = UserAggregate(user_id="user-1", cities=[f"city-{i}" for i in range(9)])
    ten = UserAggregate(user_id="user-1", cities=[f"city-{i}" for i in range(10)])
    assert await _rule(store, "urban_explorer", make_meal(), nine) is False
    assert await _rule(store, "urban_explorer", make_meal(), ten) is True


# ============================================================================
# check_and_award_achievements
# ============================================================================

@pytest.mark.asyncio
async def test_award_persists_and_returns_unlocks(store):
    event = make_meal(meal="Spicy Tuna Roll", coords=PORTLAND_CENTER)
    await store.record_meal(event)
    evaluator = RuleEvaluator(store, store)

    outcome = await evaluator.check_and_award_achievements(_context(event))

    assert [d.id for d in outcome.unlocked] == ["first_bite", "stumptown_starter", "catch_of_the_day"]
    assert outcome.failed == []
    stored = await store.list_user_achievements("user-1")
    assert {ua.achievement_id for ua in stored} == {"first_bite", "stumptown_starter", "catch_of_the_day"}
    assert all(ua.meal_event_id == event.id for ua in stored)


@pytest.mark.asyncio
async def test_duplicate_write_is_silent_noop(store):
    """Stale earned set: the store already holds the stamp"""
    event = make_meal(coords=PORTLAND_CENTER)
    await store.create_if_absent(UserAchievement(
        user_id="user-1", achievement_id="stumptown_starter", earned_at=datetime.now(timezone.utc)
    ))
    evaluator = RuleEvaluator(store, store)

    outcome = await evaluator.check_and_award_achievements(_context(event))

    assert "stumptown_starter" not in [d.id for d in outcome.unlocked]
    assert "stumptown_starter" not in outcome.failed


@pytest.mark.asyncio
async def test_failing_rule_does_not_block_others(store):
    """first_post needs the meal store; its failure must not stop the rest"""
    event = make_meal(meal="Spicy Tuna Roll", coords=PORTLAND_CENTER)
    store.has_meal_before = AsyncMock(side_effect=RuntimeError("meal store down"))
    evaluator = RuleEvaluator(store, store)

    outcome = await evaluator.check_and_award_achievements(_context(event))

    assert outcome.failed == ["first_bite"]
    assert [d.id for d in outcome.unlocked] == ["stumptown_starter", "catch_of_the_day"]


@pytest.mark.asyncio
async def test_failed_write_is_not_retried_within_event(store):
    event = make_meal(coords=PORTLAND_CENTER)
    await store.record_meal(event)
    evaluator = RuleEvaluator(store, store)
    real_create = store.create_if_absent
    calls = []

    async def flaky_create(user_achievement):
        calls.append(user_achievement.achievement_id)
        if user_achievement.achievement_id == "stumptown_starter":
            raise RuntimeError("write timeout")
        return await real_create(user_achievement)

    store.create_if_absent = flaky_create
    outcome = await evaluator.check_and_award_achievements(_context(event))

    assert calls.count("stumptown_starter") == 1
    assert outcome.failed == ["stumptown_starter"]
    assert [d.id for d in outcome.unlocked] == ["first_bite"]


# ============================================================================
# Queries & Formatting
# ============================================================================

@pytest.mark.asyncio
async def test_get_user_achievements_with_progress(store):
    evaluator = RuleEvaluator(store, store)
    await store.create_if_absent(UserAchievement(
        user_id="user-1", achievement_id="first_bite", earned_at=datetime.now(timezone.utc), meal_event_id="m1"
    ))
    aggregate = UserAggregate(user_id="user-1", sushi_meal_count=3, cuisines=["thai", "japanese"])

    result = await evaluator.get_user_achievements("user-1", aggregate=aggregate, include_locked=True)

    assert result["total_unlocked"] == 1
    assert result["total_achievements"] == 13
    assert result["unlocked"][0]["achievement_id"] == "first_bite"
    locked = {item["achievement_id"]: item for item in result["locked"]}
    assert "first_bite" not in locked
    assert locked["dreaming_of_sushi"]["progress"]["description"] == "3/5"
    assert locked["flavor_nomad"]["progress"]["percentage"] == 40
    # Closest to completion first
    assert result["locked"][0]["achievement_id"] == "dreaming_of_sushi"


@pytest.mark.asyncio
async def test_get_user_achievements_skips_unknown_ids(store):
    evaluator = RuleEvaluator(store, store)
    await store.create_if_absent(UserAchievement(
        user_id="user-1", achievement_id="retired_stamp", earned_at=datetime.now(timezone.utc)
    ))
    result = await evaluator.get_user_achievements("user-1")
    assert result["total_unlocked"] == 0
    assert "locked" not in result


@pytest.mark.asyncio
async def test_clear_user_stamps(store):
    evaluator = RuleEvaluator(store, store)
    await store.create_if_absent(UserAchievement(
        user_id="user-1", achievement_id="first_bite", earned_at=datetime.now(timezone.utc)
    ))
    assert await evaluator.clear_user_stamps("user-1") == 1
    assert await evaluator.get_earned_ids("user-1") == frozenset()


def test_progress_caps_at_required():
    aggregate = UserAggregate(user_id="user-1", takeout_meal_count=12)
    progress = calculate_achievement_progress(get_achievement_by_id("takeout_tour"), aggregate)
    assert progress == {"current": 5, "required": 5, "percentage": 100, "description": "5/5"}


def test_progress_for_one_shot_stamp():
    progress = calculate_achievement_progress(get_achievement_by_id("taco_tuesday"), UserAggregate(user_id="u"))
    assert progress["required"] == 1
    assert progress["percentage"] == 0


def test_format_unlock_message():
    message = format_achievement_unlock_message(get_achievement_by_id("plantlandia"))
    assert "NEW STAMP" in message
    assert "Plantlandia" in message
    assert "vegan meal in Portland" in message
