"""Habit progress models"""
from enum import Enum
from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, Field, field_validator
from uuid import UUID, uuid4


class HabitStatus(str, Enum):
    """Habit progress status, in forward order"""
    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return list(HabitStatus).index(self)


class HabitProgress(BaseModel):
    """Per-user, per-goal progress on one habit template"""
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    goal_instance_id: UUID
    habit_template_id: str
    level: int = Field(ge=1)
    status: HabitStatus = HabitStatus.LOCKED
    completed_count: int = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    best_streak: int = Field(default=0, ge=0)
    total_xp_earned: int = Field(default=0, ge=0)
    unlocked_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None
    mastered_at: Optional[datetime] = None


class HabitCompletion(BaseModel):
    """Immutable fact: a habit was completed on a calendar day"""
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    habit_template_id: str
    habit_progress_id: UUID
    completion_date: date
    xp_earned: int = Field(ge=0)
    rating: Optional[int] = Field(default=None, ge=1, le=3)  # 1=hard, 2=okay, 3=great
    notes: Optional[str] = None
    elapsed_minutes: Optional[int] = Field(default=None, ge=0)

    @field_validator('notes')
    @classmethod
    def strip_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @property
    def key(self) -> tuple[str, str, date]:
        """Uniqueness key: one completion per user, habit and day"""
        return (self.user_id, self.habit_template_id, self.completion_date)
