"""
Stamp Registry

Static catalog of every achievement the engine can award. Each entry is a
plain AchievementDefinition tagged with a RuleKind and the parameters that
kind needs; the Rule Evaluator dispatches on the kind. The catalog is built
once at import and never mutated.
"""

import logging
from typing import Optional

from foodpassport.models.achievement import (
    AchievementDefinition,
    CompoundGeofenceContentCriteria,
    ContentAndWeekdayCriteria,
    ContentMatchCriteria,
    ContentSignal,
    CounterName,
    DistinctCountCriteria,
    DistinctSetName,
    FirstPostCriteria,
    GeofenceCriteria,
    GeofenceRegion,
    ThresholdCountCriteria,
    Weekday,
)

logger = logging.getLogger(__name__)


# ============================================
# Named Regions
# ============================================

PORTLAND = GeofenceRegion(name="Portland", latitude=45.5051, longitude=-122.6750, radius_km=30)
NEW_YORK_CITY = GeofenceRegion(name="New York City", latitude=40.7128, longitude=-74.0060, radius_km=30)


# ============================================
# Achievement Catalog
# ============================================

ACHIEVEMENT_CATALOG: tuple[AchievementDefinition, ...] = (
    # ========== FIRST STEPS ==========
    AchievementDefinition(
        id="first_bite",
        name="First Bite",
        description="Congratulations on your first post!",
        image="first_bite.png",
        criteria=FirstPostCriteria(),
    ),

    # ========== PLACES ==========
    AchievementDefinition(
        id="stumptown_starter",
        name="Stumptown Starter",
        description="Your first meal in Portland!",
        image="stumptown_starter.png",
        criteria=GeofenceCriteria(region=PORTLAND),
    ),
    AchievementDefinition(
        id="big_apple_bite",
        name="Big Apple Bite",
        description="Your first meal in New York City!",
        image="big_apple_bite.png",
        criteria=GeofenceCriteria(region=NEW_YORK_CITY),
    ),

    # ========== WHAT'S ON THE PLATE ==========
    AchievementDefinition(
        id="catch_of_the_day",
        name="Catch of the Day",
        description="Your first seafood meal!",
        image="catch_of_the_day.png",
        criteria=ContentMatchCriteria(content=ContentSignal.SEAFOOD),
    ),
    AchievementDefinition(
        id="plant_curious",
        name="Plant Curious",
        description="Your first vegetarian meal!",
        image="plant_curious.png",
        criteria=ContentMatchCriteria(content=ContentSignal.VEGETARIAN),
    ),

    # ========== PLACE + PLATE ==========
    AchievementDefinition(
        id="plantlandia",
        name="Plantlandia",
        description="Your first vegan meal in Portland!",
        image="plantlandia.png",
        criteria=CompoundGeofenceContentCriteria(region=PORTLAND, content=ContentSignal.VEGAN),
    ),
    AchievementDefinition(
        id="brew_and_chew",
        name="Brew and Chew",
        description="Your first beer in Portland!",
        image="brew_and_chew.png",
        criteria=CompoundGeofenceContentCriteria(region=PORTLAND, content=ContentSignal.BEER),
    ),

    # ========== PLATE + DAY ==========
    AchievementDefinition(
        id="taco_tuesday",
        name="Taco Tuesday",
        description="Tacos on a Tuesday!",
        image="taco_tuesday.png",
        criteria=ContentAndWeekdayCriteria(content=ContentSignal.TACO, weekday=Weekday.TUESDAY),
    ),

    # ========== COUNTERS ==========
    AchievementDefinition(
        id="dreaming_of_sushi",
        name="Dreaming of Sushi",
        description="Posted 5 sushi meals!",
        image="dreaming_of_sushi.png",
        criteria=ThresholdCountCriteria(counter=CounterName.SUSHI_MEALS, threshold=5),
    ),
    AchievementDefinition(
        id="takeout_tour",
        name="Takeout Tour",
        description="Posted 5 takeout/to-go meals!",
        image="takeout_tour.png",
        criteria=ThresholdCountCriteria(counter=CounterName.TAKEOUT_MEALS, threshold=5),
    ),

    # ========== DISTINCT SETS ==========
    AchievementDefinition(
        id="urban_explorer",
        name="Urban Explorer",
        description="Dined in 10 different cities!",
        image="urban_explorer.png",
        criteria=DistinctCountCriteria(distinct_set=DistinctSetName.CITIES, threshold=10),
    ),
    AchievementDefinition(
        id="flavor_nomad",
        name="Flavor Nomad",
        description="Explored 5 different cuisines!",
        image="flavor_nomad.png",
        criteria=DistinctCountCriteria(distinct_set=DistinctSetName.CUISINES, threshold=5),
    ),
    AchievementDefinition(
        id="world_on_a_plate",
        name="World on a Plate",
        description="Explored 10 different cuisines!",
        image="world_on_a_plate.png",
        criteria=DistinctCountCriteria(distinct_set=DistinctSetName.CUISINES, threshold=10),
    ),
)

_CATALOG_BY_ID = {definition.id: definition for definition in ACHIEVEMENT_CATALOG}

if len(_CATALOG_BY_ID) != len(ACHIEVEMENT_CATALOG):
    raise RuntimeError("Achievement catalog contains duplicate ids")


def get_achievement_by_id(achievement_id: str) -> Optional[AchievementDefinition]:
    """Get achievement details by ID"""
    return _CATALOG_BY_ID.get(achievement_id)


def get_all_achievements() -> list[AchievementDefinition]:
    """Get all available achievements in catalog order"""
    return list(ACHIEVEMENT_CATALOG)
