"""Pydantic models for the progression and scheduling engine"""

from habit_journey.models.achievement import (
    AchievementCatalog,
    AchievementDefinition,
    AchievementStats,
    AchievementUnlock,
    CriteriaType,
    UnlockCriteria,
)
from habit_journey.models.goal import GoalInstance, GoalStatus, GoalTemplate, HabitTemplate, TimeCommitment
from habit_journey.models.habit import HabitCompletion, HabitProgress, HabitStatus
from habit_journey.models.recurrence import (
    DayOfMonthPattern,
    DaysOfWeekPattern,
    RecurrenceSpec,
    RecurrenceUnit,
    SimplePattern,
)
from habit_journey.models.state import CompletionCommand, CompletionResult, EngineState
from habit_journey.models.xp import TransactionType, XPLedger, XPTransaction

__all__ = [
    "AchievementCatalog",
    "AchievementDefinition",
    "AchievementStats",
    "AchievementUnlock",
    "CriteriaType",
    "UnlockCriteria",
    "GoalInstance",
    "GoalStatus",
    "GoalTemplate",
    "HabitTemplate",
    "TimeCommitment",
    "HabitCompletion",
    "HabitProgress",
    "HabitStatus",
    "DayOfMonthPattern",
    "DaysOfWeekPattern",
    "RecurrenceSpec",
    "RecurrenceUnit",
    "SimplePattern",
    "CompletionCommand",
    "CompletionResult",
    "EngineState",
    "TransactionType",
    "XPLedger",
    "XPTransaction",
]
