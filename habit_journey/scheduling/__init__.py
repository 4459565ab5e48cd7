"""Recurring task scheduling"""

from habit_journey.scheduling.recurrence import generate_recurrence_dates, validate_recurrence

__all__ = ["generate_recurrence_dates", "validate_recurrence"]
