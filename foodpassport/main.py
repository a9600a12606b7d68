"""Command-line entry point for the stamp engine"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Iterable, TextIO

from foodpassport.config import validate_config, LOG_LEVEL
from foodpassport.db.connection import db
from foodpassport.db.stores import PostgresStore
from foodpassport.gamification.engine import AchievementEngine, AchievementUnlocked, ChallengeCompleted
from foodpassport.gamification.memory_store import InMemoryStore
from foodpassport.gamification.registry import ACHIEVEMENT_CATALOG
from foodpassport.integrations.fuzzy_matcher import LocalFuzzyMatcher, build_fuzzy_matcher
from foodpassport.models.meal import MealEvent

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO)
)

logger = logging.getLogger(__name__)


def build_engine(store, fuzzy_matcher) -> AchievementEngine:
    """Engine whose meal, aggregate, stamp and challenge stores are all `store`"""
    engine = AchievementEngine(
        meal_store=store,
        aggregate_store=store,
        achievement_store=store,
        challenge_store=store,
        fuzzy_matcher=fuzzy_matcher,
        catalog=ACHIEVEMENT_CATALOG,
    )

    def log_unlock(event: AchievementUnlocked) -> None:
        logger.info(f"[STAMP] {event.user_id} earned {event.achievement.name}")

    def log_completion(event: ChallengeCompleted) -> None:
        logger.info(f"[CHALLENGE] {event.user_id} completed '{event.challenge.recommended_dish_name}'")

    engine.on_achievement_unlocked(log_unlock)
    engine.on_challenge_completed(log_completion)
    return engine


def read_events(stream: TextIO) -> Iterable[MealEvent]:
    """Meal events from JSON lines; blank lines are skipped"""
    for line_number, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            yield MealEvent.model_validate_json(line)
        except ValueError as e:
            logger.error(f"Skipping invalid meal event on line {line_number}: {e}")


async def evaluate_stream(store, stream: TextIO, out: TextIO = sys.stdout, fuzzy_matcher=None) -> int:
    """Record and evaluate every event in the stream. Returns how many were evaluated."""
    if fuzzy_matcher is None:
        fuzzy_matcher = LocalFuzzyMatcher()
    engine = build_engine(store, fuzzy_matcher)
    evaluated = 0
    for event in read_events(stream):
        await store.record_meal(event)
        result = await engine.evaluate_meal_event(event)
        out.write(json.dumps({
            "meal_event_id": event.id,
            "user_id": event.user_id,
            "unlocked": [definition.id for definition in result.unlocked],
            "completed_challenge": result.completed_challenge.id if result.completed_challenge else None,
            "failed_rules": result.failed_rules,
        }) + "\n")
        evaluated += 1

    await engine.wait_for_listeners()
    logger.info(f"Evaluated {evaluated} meal events")
    return evaluated


async def rebuild_user(store, user_id: str) -> None:
    """Backfill a user's aggregate from their stored meal history"""
    engine = build_engine(store, LocalFuzzyMatcher())
    meals = await store.get_all_meals(user_id)
    aggregate = await engine.rebuild_aggregates(user_id, meals)
    print(aggregate.model_dump_json())


async def main(args: argparse.Namespace) -> None:
    """Main application entry point"""
    logger.info("Validating configuration...")
    validate_config()

    if args.memory:
        store = InMemoryStore()
    else:
        logger.info("Initializing database connection pool...")
        await db.init_pool()
        store = PostgresStore()

    fuzzy_matcher = build_fuzzy_matcher()
    try:
        if args.rebuild:
            await rebuild_user(store, args.rebuild)
        elif args.events == "-":
            await evaluate_stream(store, sys.stdin, fuzzy_matcher=fuzzy_matcher)
        else:
            with open(args.events, encoding="utf-8") as stream:
                await evaluate_stream(store, stream, fuzzy_matcher=fuzzy_matcher)
    finally:
        await fuzzy_matcher.aclose()
        if not args.memory:
            logger.info("Closing database connection...")
            await db.close_pool()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Evaluate meal events against Food Passport stamps and challenges")
    parser.add_argument("events", nargs="?", default="-", help="JSON-lines file of meal events ('-' for stdin)")
    parser.add_argument("--memory", action="store_true", help="Use the in-memory store instead of PostgreSQL")
    parser.add_argument("--rebuild", metavar="USER_ID", help="Rebuild one user's aggregate from meal history")

    asyncio.run(main(parser.parse_args()))
