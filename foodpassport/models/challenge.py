"""Dish challenge models"""
from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from foodpassport.models.achievement import AchievementDefinition


class ChallengeStatus(str, Enum):
    """User challenge status. The engine only moves active -> completed."""
    ACTIVE = "active"
    COMPLETED = "completed"


class Challenge(BaseModel):
    """A recommended dish issued to a user by the challenge generator"""
    id: str
    user_id: str
    recommended_dish_name: str
    cuisine_type: Optional[str] = None
    status: ChallengeStatus = ChallengeStatus.ACTIVE
    generated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_with_meal_id: Optional[str] = None
    completed_with_dish: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == ChallengeStatus.ACTIVE


class EvaluationResult(BaseModel):
    """What a single meal event earned"""
    unlocked: list[AchievementDefinition] = Field(default_factory=list)
    completed_challenge: Optional[Challenge] = None
    failed_rules: list[str] = Field(default_factory=list)
