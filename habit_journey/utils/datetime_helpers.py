"""
Calendar arithmetic helpers

All engine computations work on calendar dates (datetime.date). "Today" is
always resolved in an explicit timezone so that day boundaries, and with them
duplicate-completion checks and streak continuation, are deterministic.
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from habit_journey import config

logger = logging.getLogger(__name__)

# Sunday-first, matching the week layout used for weekday recurrences
WEEKDAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


def now_utc() -> datetime:
    """Current datetime in UTC (timezone-aware)"""
    return datetime.now(ZoneInfo("UTC"))


def today_in_timezone(tz_name: Optional[str] = None) -> date:
    """
    Get today's date in the given timezone

    Args:
        tz_name: IANA timezone name, defaults to DEFAULT_TIMEZONE

    Returns:
        Calendar date for "today" in that timezone
    """
    tz_name = tz_name or config.DEFAULT_TIMEZONE
    return datetime.now(ZoneInfo(tz_name)).date()


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamped_date(year: int, month: int, day: int) -> date:
    """Build a date, clamping the day to the last day of the month"""
    return date(year, month, min(day, days_in_month(year, month)))


def add_months(anchor: date, months: int, day: Optional[int] = None) -> date:
    """
    Shift a date by whole months

    The target day defaults to the anchor's day and is clamped to the length of
    the resulting month (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    return clamped_date(year, month, day or anchor.day)


def add_years(anchor: date, years: int) -> date:
    """Shift a date by whole years (Feb 29 -> Feb 28 in common years)"""
    return clamped_date(anchor.year + years, anchor.month, anchor.day)


def sunday_on_or_before(day: date) -> date:
    # date.weekday(): Monday=0 .. Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def weekday_offset(name: str) -> int:
    """
    Offset of a weekday from Sunday (sunday=0 .. saturday=6)

    Raises:
        ValueError: If the name is not a full English weekday name
    """
    normalized = name.strip().lower()
    try:
        return WEEKDAY_NAMES.index(normalized)
    except ValueError:
        raise ValueError(
            f"Invalid weekday: '{name}'. Must be one of: {', '.join(WEEKDAY_NAMES)}"
        )