"""Unit tests for the challenge matcher (foodpassport/gamification/challenges.py)"""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from foodpassport.exceptions import ChallengeMatcherError, StoreError
from foodpassport.gamification.challenges import ChallengeMatcher, is_challenge_expired
from foodpassport.gamification.classifier import classify_meal
from foodpassport.integrations.fuzzy_matcher import LocalFuzzyMatcher
from foodpassport.models.challenge import Challenge, ChallengeStatus
from tests.helpers import make_meal

BASE = datetime(2024, 5, 1, tzinfo=timezone.utc)


async def _seed(store, *challenges):
    for challenge in challenges:
        await store.save_challenge(challenge)


def _challenge(challenge_id, dish, cuisine=None, days=0, user_id="user-1"):
    return Challenge(
        id=challenge_id,
        user_id=user_id,
        recommended_dish_name=dish,
        cuisine_type=cuisine,
        generated_at=BASE + timedelta(days=days),
    )


async def _check(matcher, event):
    return await matcher.check_meal(event, classify_meal(event))


@pytest.mark.asyncio
async def test_pad_thai_noodles_completes_pad_thai(store):
    await _seed(store, _challenge("c-1", "Pad Thai", "Thai"))
    matcher = ChallengeMatcher(store, LocalFuzzyMatcher(), timeout=1.0)
    event = make_meal(meal="Pad Thai Noodles", cuisine_type="Thai")

    completed = await _check(matcher, event)

    assert completed.id == "c-1"
    assert completed.status == ChallengeStatus.COMPLETED
    assert completed.completed_with_dish == "Pad Thai Noodles"
    assert completed.completed_with_meal_id == event.id
    assert (await store.get_challenge("user-1", "c-1")).status == ChallengeStatus.COMPLETED


@pytest.mark.asyncio
async def test_no_match_leaves_challenges_active(store):
    await _seed(store, _challenge("c-1", "Pad Thai", "Thai"))
    matcher = ChallengeMatcher(store, LocalFuzzyMatcher(), timeout=1.0)

    assert await _check(matcher, make_meal(meal="Cheeseburger")) is None
    assert (await store.get_challenge("user-1", "c-1")).is_active


@pytest.mark.asyncio
async def test_first_match_wins_in_store_order(store):
    """Both challenges match; only the newest completes"""
    await _seed(store, _challenge("c-old", "Ramen", days=0), _challenge("c-new", "Ramen", days=3))
    matcher = ChallengeMatcher(store, LocalFuzzyMatcher(), timeout=1.0)

    completed = await _check(matcher, make_meal(meal="Tonkotsu Ramen"))

    assert completed.id == "c-new"
    assert (await store.get_challenge("user-1", "c-old")).is_active


@pytest.mark.asyncio
async def test_meal_without_dish_name_is_skipped(store):
    await _seed(store, _challenge("c-1", "Pad Thai"))
    fuzzy = AsyncMock()
    matcher = ChallengeMatcher(store, fuzzy, timeout=1.0)

    assert await _check(matcher, make_meal(meal=None)) is None
    fuzzy.matches.assert_not_awaited()


@pytest.mark.asyncio
async def test_matcher_arguments(store):
    await _seed(store, _challenge("c-1", "Pad Thai", "Thai"))
    fuzzy = AsyncMock()
    fuzzy.matches.return_value = True
    matcher = ChallengeMatcher(store, fuzzy, timeout=1.0)

    await _check(matcher, make_meal(meal="Pad Thai Noodles", cuisine_type="Thai"))

    fuzzy.matches.assert_awaited_once_with("Pad Thai", "Thai", "Pad Thai Noodles", "thai")


@pytest.mark.asyncio
async def test_timeout_is_not_completed_and_not_retried(store):
    await _seed(store, _challenge("c-slow", "Pad Thai", days=1), _challenge("c-fast", "Pad Thai", days=0))
    calls = []

    class SlowThenFast:
        async def matches(self, challenge_dish_name, challenge_cuisine, new_dish_name, new_cuisine):
            calls.append(challenge_dish_name)
            if len(calls) == 1:
                await asyncio.sleep(5)
            return True

    matcher = ChallengeMatcher(store, SlowThenFast(), timeout=0.05)
    completed = await _check(matcher, make_meal(meal="Pad Thai"))

    assert len(calls) == 2
    assert completed.id == "c-fast"
    assert (await store.get_challenge("user-1", "c-slow")).is_active


@pytest.mark.asyncio
async def test_matcher_error_is_not_completed(store):
    await _seed(store, _challenge("c-1", "Pad Thai"))
    fuzzy = AsyncMock()
    fuzzy.matches.side_effect = ChallengeMatcherError("service returned 503", status_code=503)
    matcher = ChallengeMatcher(store, fuzzy, timeout=1.0)

    assert await _check(matcher, make_meal(meal="Pad Thai")) is None
    assert fuzzy.matches.await_count == 1
    assert (await store.get_challenge("user-1", "c-1")).is_active


@pytest.mark.asyncio
async def test_already_completed_elsewhere_returns_none(store):
    await _seed(store, _challenge("c-1", "Pad Thai"))
    store.complete_challenge = AsyncMock(return_value=None)
    matcher = ChallengeMatcher(store, LocalFuzzyMatcher(), timeout=1.0)

    assert await _check(matcher, make_meal(meal="Pad Thai")) is None


@pytest.mark.asyncio
async def test_listing_failure_raises_store_error(store):
    store.list_active_challenges = AsyncMock(side_effect=RuntimeError("boom"))
    matcher = ChallengeMatcher(store, LocalFuzzyMatcher(), timeout=1.0)

    with pytest.raises(StoreError):
        await _check(matcher, make_meal(meal="Pad Thai"))


# ============================================================================
# Helpers
# ============================================================================

@pytest.mark.asyncio
async def test_has_reached_challenge_limit(store):
    matcher = ChallengeMatcher(store, LocalFuzzyMatcher(), timeout=1.0)
    await _seed(store, *[_challenge(f"c-{i}", f"Dish {i}", days=i) for i in range(5)])
    assert await matcher.has_reached_challenge_limit("user-1") is False

    await _seed(store, _challenge("c-5", "Dish 5", days=5))
    assert await matcher.has_reached_challenge_limit("user-1") is True
    assert await matcher.has_reached_challenge_limit("user-1", max_active=10) is False


@pytest.mark.asyncio
async def test_has_active_challenge_for_dish(store):
    matcher = ChallengeMatcher(store, LocalFuzzyMatcher(), timeout=1.0)
    await _seed(store, _challenge("c-1", "Pad Thai"))
    assert await matcher.has_active_challenge_for_dish("user-1", "pad thai") is True
    assert await matcher.has_active_challenge_for_dish("user-1", "Pho") is False
    assert await matcher.has_active_challenge_for_dish("user-2", "Pad Thai") is False


def test_is_challenge_expired():
    challenge = _challenge("c-1", "Pho")
    assert is_challenge_expired(challenge, now=BASE + timedelta(days=29)) is False
    assert is_challenge_expired(challenge, now=BASE + timedelta(days=31)) is True
    assert is_challenge_expired(Challenge(id="c-2", user_id="u", recommended_dish_name="Pho")) is False
