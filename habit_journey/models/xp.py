"""XP ledger models"""
from enum import Enum
from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, Field
from uuid import UUID, uuid4

from habit_journey.config import DEFAULT_DAILY_XP_GOAL


class TransactionType(str, Enum):
    """Source of an XP award"""
    HABIT_COMPLETION = "habit_completion"
    STREAK_BONUS = "streak_bonus"
    PERFECT_SCORE = "perfect_score"
    LEVEL_BONUS = "level_bonus"
    ACHIEVEMENT_BONUS = "achievement_bonus"


class XPLedger(BaseModel):
    """Per-user XP, level and activity streak"""
    user_id: str
    total_xp: int = Field(default=0, ge=0)
    current_level: int = Field(default=1, ge=1)
    xp_to_next_level: int = 100
    daily_xp_goal: int = Field(default=DEFAULT_DAILY_XP_GOAL, gt=0)
    current_streak: int = Field(default=0, ge=0)
    best_streak: int = Field(default=0, ge=0)
    last_activity_date: Optional[date] = None


class XPTransaction(BaseModel):
    """Append-only record of a single XP award"""
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    xp_amount: int
    transaction_type: TransactionType
    description: Optional[str] = None
    habit_completion_id: Optional[UUID] = None
    activity_date: date
    created_at: datetime
