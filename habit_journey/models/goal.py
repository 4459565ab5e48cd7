"""Goal and habit template models"""
from enum import Enum
from typing import Optional
from datetime import date
from pydantic import BaseModel, Field
from uuid import UUID, uuid4


class GoalStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class TimeCommitment(str, Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    INTENSIVE = "intensive"


class GoalTemplate(BaseModel):
    """Catalog entry a user can pick as a goal"""
    id: str
    title: str
    description: str = ""
    difficulty: str = "beginner"  # beginner, intermediate, advanced
    total_levels: int = Field(default=4, ge=1)
    category: Optional[str] = None
    estimated_duration: Optional[str] = None  # e.g. "8 weeks"


class HabitTemplate(BaseModel):
    """Reusable habit definition belonging to one level of a goal template"""
    id: str
    goal_template_id: str
    title: str
    description: str = ""
    level: int = Field(ge=1)
    xp_reward: int = Field(default=10, ge=0)
    estimated_duration: Optional[int] = None  # minutes
    order_index: int = 0


class GoalInstance(BaseModel):
    """A user's pursuit of one goal template"""
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    goal_template_id: str
    status: GoalStatus = GoalStatus.ACTIVE
    current_level: int = Field(default=1, ge=1)
    start_date: date
    completion_date: Optional[date] = None
    time_commitment: TimeCommitment = TimeCommitment.MODERATE
