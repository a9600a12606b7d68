"""Meal event models consumed by the stamp engine"""
from typing import Optional, Union
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
import pytz


class GeoLocation(BaseModel):
    """Where a meal was logged"""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    city: Optional[str] = None


class MealMetadata(BaseModel):
    """AI-derived meal metadata. Every field may be missing."""
    model_config = ConfigDict(frozen=True)

    cuisine_type: Optional[str] = None
    primary_protein: Optional[str] = None
    food_type: list[str] = Field(default_factory=list)
    diet_type: Optional[str] = None
    setting: Optional[str] = None  # "takeout", "dine-in", "delivery", ...
    beverage_type: Optional[str] = None

    @field_validator('food_type', mode='before')
    @classmethod
    def coerce_food_type(cls, v: Union[None, str, list]) -> list:
        """Older enrichment output stores food_type as a single string"""
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return v


class MealEvent(BaseModel):
    """A meal recorded by a user. Immutable input to the engine."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    timestamp: datetime
    location: Optional[GeoLocation] = None
    metadata: Optional[MealMetadata] = None
    meal: Optional[str] = None  # free-text dish name
    restaurant: Optional[str] = None  # "Pok Pok, Portland OR"
    timezone: Optional[str] = None  # IANA zone used for the local day of week

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        """Ensure valid IANA timezone"""
        if v is None:
            return v
        try:
            pytz.timezone(v)
        except pytz.exceptions.UnknownTimeZoneError:
            raise ValueError(
                f"Invalid timezone: '{v}'. "
                f"Use IANA timezone (e.g., 'America/Los_Angeles')"
            )
        return v
