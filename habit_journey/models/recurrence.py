"""Recurrence specification models"""
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from datetime import date
from pydantic import BaseModel, Field, field_validator


class RecurrenceUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class SimplePattern(BaseModel):
    """Every `interval` units from the start date"""
    kind: Literal["simple"] = "simple"
    interval: int = 1
    unit: RecurrenceUnit = RecurrenceUnit.DAY


class DaysOfWeekPattern(BaseModel):
    """Every occurrence of the named weekdays"""
    kind: Literal["days_of_week"] = "days_of_week"
    weekdays: list[str]

    @field_validator('weekdays')
    @classmethod
    def normalize_weekdays(cls, v: list[str]) -> list[str]:
        """Lowercase names and drop duplicates, keeping first occurrence"""
        normalized = []
        for name in v:
            name = name.strip().lower()
            if name not in normalized:
                normalized.append(name)
        return normalized


class DayOfMonthPattern(BaseModel):
    """One date per month on `day_number` (clamped to month end)"""
    kind: Literal["day_of_month"] = "day_of_month"
    day_number: int


RecurrencePattern = Annotated[
    Union[SimplePattern, DaysOfWeekPattern, DayOfMonthPattern],
    Field(discriminator="kind"),
]


class RecurrenceSpec(BaseModel):
    """Compact rule expanded into concrete task dates at creation time"""
    start_date: date
    end_date: Optional[date] = None
    pattern: RecurrencePattern
