"""Achievement models for gamification"""
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Any
from datetime import datetime


class CriteriaType(str, Enum):
    """Achievement unlock criteria types"""
    HABIT_COMPLETIONS = "habit_completions"
    STREAK_DAYS = "streak_days"
    LEVEL_COMPLETION = "level_completion"
    GOAL_COMPLETION = "goal_completion"
    XP_MILESTONE = "xp_milestone"


class UnlockCriteria(BaseModel):
    type: CriteriaType
    value: int = Field(ge=0)
    additional_criteria: Optional[dict[str, Any]] = None


class AchievementDefinition(BaseModel):
    """Achievement definition"""
    id: str
    name: str
    description: str = ""
    icon: str = ""
    xp_reward: int = Field(default=0, ge=0)
    unlock_criteria: UnlockCriteria


class AchievementCatalog(BaseModel):
    """Versioned list of achievement definitions"""
    version: int = Field(ge=1)
    achievements: list[AchievementDefinition]

    @field_validator('achievements')
    @classmethod
    def validate_unique_ids(cls, v: list[AchievementDefinition]) -> list[AchievementDefinition]:
        """Ensure achievement ids are unique"""
        seen = set()
        for achievement in v:
            if achievement.id in seen:
                raise ValueError(f"Duplicate achievement id: '{achievement.id}'")
            seen.add(achievement.id)
        return v


class AchievementUnlock(BaseModel):
    """User's unlocked achievement"""
    user_id: str
    achievement_id: str
    xp_reward: int = 0
    unlocked_at: datetime


class AchievementStats(BaseModel):
    """Aggregate stats achievements are evaluated against"""
    habit_completions: int = 0
    current_streak: int = 0
    total_xp: int = 0
    completed_goals: int = 0
