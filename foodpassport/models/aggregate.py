"""Per-user aggregate counters"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from foodpassport.models.achievement import CounterName, DistinctSetName


class UserAggregate(BaseModel):
    """
    Incremental counters read by threshold and distinct-count rules.

    `version` is an optimistic concurrency token: stores only accept a
    write whose expected version matches the stored one.
    """
    user_id: str
    cities: list[str] = Field(default_factory=list)
    cuisines: list[str] = Field(default_factory=list)
    sushi_meal_count: int = 0
    takeout_meal_count: int = 0
    version: int = 0
    updated_at: Optional[datetime] = None

    @property
    def city_count(self) -> int:
        return len(self.cities)

    @property
    def cuisine_count(self) -> int:
        return len(self.cuisines)

    def counter_value(self, counter: CounterName) -> int:
        if counter == CounterName.SUSHI_MEALS:
            return self.sushi_meal_count
        if counter == CounterName.TAKEOUT_MEALS:
            return self.takeout_meal_count
        raise ValueError(f"Unknown counter: {counter}")

    def distinct_size(self, distinct_set: DistinctSetName) -> int:
        if distinct_set == DistinctSetName.CITIES:
            return self.city_count
        if distinct_set == DistinctSetName.CUISINES:
            return self.cuisine_count
        raise ValueError(f"Unknown distinct set: {distinct_set}")


class AggregateUpdate(BaseModel):
    """Outcome of recording one meal against a user's aggregate"""
    aggregate: UserAggregate
    city_added: bool = False
    cuisine_added: bool = False
    sushi_incremented: bool = False
    takeout_incremented: bool = False

    @property
    def changed(self) -> bool:
        return (
            self.city_added
            or self.cuisine_added
            or self.sushi_incremented
            or self.takeout_incremented
        )
