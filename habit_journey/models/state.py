"""Engine state, commands and results"""
from typing import Optional
from datetime import date
from pydantic import BaseModel, Field, field_validator
from uuid import UUID

from habit_journey.models.achievement import AchievementDefinition, AchievementUnlock
from habit_journey.models.goal import GoalInstance, GoalStatus
from habit_journey.models.habit import HabitCompletion, HabitProgress
from habit_journey.models.xp import XPLedger, XPTransaction


class EngineState(BaseModel):
    """
    Everything the progression engine knows about one user

    Engine operations never mutate the state they are given; they work on a
    deep copy and return it, so the caller can commit it atomically or drop it.
    """
    user_id: str
    version: int = Field(default=0, ge=0)  # bumped by the store on every save
    ledger: XPLedger
    goals: list[GoalInstance] = Field(default_factory=list)
    habit_progress: list[HabitProgress] = Field(default_factory=list)
    completions: list[HabitCompletion] = Field(default_factory=list)
    transactions: list[XPTransaction] = Field(default_factory=list)
    achievements: list[AchievementUnlock] = Field(default_factory=list)

    @classmethod
    def new(cls, user_id: str) -> "EngineState":
        return cls(user_id=user_id, ledger=XPLedger(user_id=user_id))

    def active_goal(self) -> Optional[GoalInstance]:
        for goal in self.goals:
            if goal.status == GoalStatus.ACTIVE:
                return goal
        return None

    def find_goal(self, goal_id: UUID) -> Optional[GoalInstance]:
        for goal in self.goals:
            if goal.id == goal_id:
                return goal
        return None

    def progress_for_goal(self, goal_id: UUID) -> list[HabitProgress]:
        return [p for p in self.habit_progress if p.goal_instance_id == goal_id]

    def has_completion(self, habit_template_id: str, day: date) -> bool:
        return any(
            c.habit_template_id == habit_template_id and c.completion_date == day
            for c in self.completions
        )

    def completed_goal_count(self) -> int:
        return sum(1 for g in self.goals if g.status == GoalStatus.COMPLETED)

    def unlocked_achievement_ids(self) -> set[str]:
        return {a.achievement_id for a in self.achievements}


class CompletionCommand(BaseModel):
    """Request to complete a habit today"""
    user_id: str
    habit_template_id: str
    rating: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    elapsed_minutes: Optional[int] = None

    @field_validator('rating')
    @classmethod
    def validate_rating(cls, v: Optional[int]) -> Optional[int]:
        """Ensure rating is 1 (hard), 2 (okay) or 3 (great)"""
        if v is not None and v not in (1, 2, 3):
            raise ValueError(f"Invalid rating: {v}. Must be 1 (hard), 2 (okay) or 3 (great)")
        return v

    @field_validator('elapsed_minutes')
    @classmethod
    def validate_elapsed_minutes(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError(f"Invalid elapsed time: {v}. Must be zero or more minutes")
        return v


class CompletionResult(BaseModel):
    """Outcome of a completion command"""
    accepted: bool
    reason: Optional[str] = None
    xp_awarded: int = 0
    leveled_up: bool = False
    new_level: Optional[int] = None
    current_streak: int = 0
    goal_level: Optional[int] = None
    goal_level_advanced: bool = False
    newly_unlocked_achievements: list[AchievementDefinition] = Field(default_factory=list)
    newly_unlocked_habits: list[str] = Field(default_factory=list)
    transactions: list[XPTransaction] = Field(default_factory=list)
