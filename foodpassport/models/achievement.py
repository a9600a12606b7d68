"""Achievement (stamp) models for gamification"""
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class RuleKind(str, Enum):
    """How an achievement decides it has been earned"""
    FIRST_POST = "first_post"
    GEOFENCE = "geofence"
    CONTENT_MATCH = "content_match"
    COMPOUND_GEOFENCE_CONTENT = "compound_geofence_content"
    CONTENT_AND_WEEKDAY = "content_and_weekday"
    THRESHOLD_COUNT = "threshold_count"
    DISTINCT_COUNT = "distinct_count"


class ContentSignal(str, Enum):
    """Classifier signals a content predicate can test"""
    SEAFOOD = "seafood"
    VEGETARIAN = "vegetarian"
    VEGAN = "vegan"
    TACO = "taco"
    BEER = "beer"
    SUSHI = "sushi"
    TAKEOUT = "takeout"


class Weekday(str, Enum):
    """Day of week, ordered Monday first like datetime.weekday()"""
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_datetime(cls, value: datetime) -> "Weekday":
        return list(cls)[value.weekday()]


class CounterName(str, Enum):
    """Monotonic per-user counters"""
    SUSHI_MEALS = "sushi_meals"
    TAKEOUT_MEALS = "takeout_meals"


class DistinctSetName(str, Enum):
    """Per-user distinct-value sets"""
    CITIES = "cities"
    CUISINES = "cuisines"


class GeofenceRegion(BaseModel):
    """Named circular region"""
    model_config = ConfigDict(frozen=True)

    name: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius_km: float = Field(gt=0)


class FirstPostCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal[RuleKind.FIRST_POST] = RuleKind.FIRST_POST


class GeofenceCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal[RuleKind.GEOFENCE] = RuleKind.GEOFENCE
    region: GeofenceRegion


class ContentMatchCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal[RuleKind.CONTENT_MATCH] = RuleKind.CONTENT_MATCH
    content: ContentSignal


class CompoundGeofenceContentCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal[RuleKind.COMPOUND_GEOFENCE_CONTENT] = RuleKind.COMPOUND_GEOFENCE_CONTENT
    region: GeofenceRegion
    content: ContentSignal


class ContentAndWeekdayCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal[RuleKind.CONTENT_AND_WEEKDAY] = RuleKind.CONTENT_AND_WEEKDAY
    content: ContentSignal
    weekday: Weekday


class ThresholdCountCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal[RuleKind.THRESHOLD_COUNT] = RuleKind.THRESHOLD_COUNT
    counter: CounterName
    threshold: int = Field(ge=1)


class DistinctCountCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal[RuleKind.DISTINCT_COUNT] = RuleKind.DISTINCT_COUNT
    distinct_set: DistinctSetName
    threshold: int = Field(ge=1)


AchievementCriteria = Annotated[
    Union[
        FirstPostCriteria,
        GeofenceCriteria,
        ContentMatchCriteria,
        CompoundGeofenceContentCriteria,
        ContentAndWeekdayCriteria,
        ThresholdCountCriteria,
        DistinctCountCriteria,
    ],
    Field(discriminator="kind"),
]


class AchievementDefinition(BaseModel):
    """Achievement definition"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    image: str
    criteria: AchievementCriteria

    @property
    def kind(self) -> RuleKind:
        return self.criteria.kind


class UserAchievement(BaseModel):
    """User's unlocked achievement"""
    user_id: str
    achievement_id: str
    earned_at: datetime
    meal_event_id: Optional[str] = None
