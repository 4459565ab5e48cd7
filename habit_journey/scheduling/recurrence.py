"""
Recurrence Date Generator

Expands a RecurrenceSpec into the concrete, ordered dates on which task
instances are created. Output is a pure function of the spec.

Patterns:
- simple: every `interval` days/weeks/months/years from the start date
- days_of_week: each named weekday, walked week by week from the Sunday on or
  before the start date
- day_of_month: one date per month, clamped to the month's last day

Without an end date the horizon is RECURRENCE_HORIZON_DAYS after the start.
Output is truncated (never an error) at the per-pattern caps.
Expansion also stops at date.max.
"""

import logging
from datetime import date, timedelta
from typing import List

from habit_journey import config
from habit_journey.exceptions import MalformedRecurrenceError
from habit_journey.models.recurrence import (
    DayOfMonthPattern,
    DaysOfWeekPattern,
    RecurrenceSpec,
    RecurrenceUnit,
    SimplePattern,
)
from habit_journey.utils.datetime_helpers import (
    add_months,
    add_years,
    clamped_date,
    sunday_on_or_before,
    weekday_offset,
)

logger = logging.getLogger(__name__)


def _horizon(spec: RecurrenceSpec) -> date:
    if spec.end_date is not None:
        return spec.end_date
    try:
        return spec.start_date + timedelta(days=config.RECURRENCE_HORIZON_DAYS)
    except OverflowError:
        return date.max


def validate_recurrence(spec: RecurrenceSpec) -> None:
    """
    Reject specs that cannot be expanded

    Raises:
        MalformedRecurrenceError: End before start, empty or unknown weekdays,
            non-positive interval, or day number outside 1-31
    """
    if spec.end_date is not None and spec.end_date < spec.start_date:
        raise MalformedRecurrenceError(
            f"End date {spec.end_date} is before start date {spec.start_date}",
            field="end_date",
            value=str(spec.end_date),
        )

    pattern = spec.pattern
    if isinstance(pattern, SimplePattern):
        if pattern.interval < 1:
            raise MalformedRecurrenceError(
                f"Interval must be at least 1, got {pattern.interval}",
                field="interval",
                value=pattern.interval,
            )
    elif isinstance(pattern, DaysOfWeekPattern):
        if not pattern.weekdays:
            raise MalformedRecurrenceError(
                "Pick at least one day of the week",
                field="weekdays",
                value=[],
            )
        for name in pattern.weekdays:
            try:
                weekday_offset(name)
            except ValueError as e:
                raise MalformedRecurrenceError(str(e), field="weekdays", value=name)
    elif isinstance(pattern, DayOfMonthPattern):
        if not 1 <= pattern.day_number <= 31:
            raise MalformedRecurrenceError(
                f"Day of month must be between 1 and 31, got {pattern.day_number}",
                field="day_number",
                value=pattern.day_number,
            )


def _nth_simple_date(start: date, pattern: SimplePattern, n: int) -> date:
    # Each date is computed from the start so month-end clamping never drifts
    step = n * pattern.interval
    if pattern.unit == RecurrenceUnit.DAY:
        return start + timedelta(days=step)
    if pattern.unit == RecurrenceUnit.WEEK:
        return start + timedelta(weeks=step)
    if pattern.unit == RecurrenceUnit.MONTH:
        return add_months(start, step)
    return add_years(start, step)


def _generate_simple(spec: RecurrenceSpec, pattern: SimplePattern) -> List[date]:
    horizon = _horizon(spec)
    dates = []
    n = 0
    while len(dates) < config.MAX_SIMPLE_OCCURRENCES:
        try:
            current = _nth_simple_date(spec.start_date, pattern, n)
        except (ValueError, OverflowError):
            # Stepped past date.max
            break
        if current > horizon:
            break
        dates.append(current)
        n += 1
    return dates


def _generate_days_of_week(spec: RecurrenceSpec, pattern: DaysOfWeekPattern) -> List[date]:
    horizon = _horizon(spec)
    offsets = sorted(weekday_offset(name) for name in pattern.weekdays)
    week_start = sunday_on_or_before(spec.start_date)
    dates = []

    while week_start <= horizon:
        for offset in offsets:
            try:
                current = week_start + timedelta(days=offset)
            except OverflowError:
                return dates
            if current < spec.start_date:
                continue
            if current > horizon:
                return dates
            dates.append(current)
            if len(dates) >= config.MAX_WEEKDAY_OCCURRENCES:
                return dates
        if horizon - week_start < timedelta(weeks=1):
            break
        week_start += timedelta(weeks=1)

    return dates


def _generate_day_of_month(spec: RecurrenceSpec, pattern: DayOfMonthPattern) -> List[date]:
    horizon = _horizon(spec)
    start = spec.start_date
    first = clamped_date(start.year, start.month, pattern.day_number)
    month_offset = 1 if first < start else 0
    dates = []

    while len(dates) < config.MAX_MONTHLY_OCCURRENCES:
        try:
            current = add_months(date(start.year, start.month, 1), month_offset, day=pattern.day_number)
        except ValueError:
            # Past year 9999
            break
        if current > horizon:
            break
        dates.append(current)
        month_offset += 1

    return dates


def generate_recurrence_dates(spec: RecurrenceSpec) -> List[date]:
    """
    Expand a recurrence spec into concrete dates

    Args:
        spec: Start date, optional end date and pattern

    Returns:
        Ascending list of dates within [start_date, end_date]

    Raises:
        MalformedRecurrenceError: If the spec is invalid
    """
    validate_recurrence(spec)

    pattern = spec.pattern
    if isinstance(pattern, SimplePattern):
        dates = _generate_simple(spec, pattern)
    elif isinstance(pattern, DaysOfWeekPattern):
        dates = _generate_days_of_week(spec, pattern)
    else:
        dates = _generate_day_of_month(spec, pattern)

    logger.debug(
        f"Expanded {pattern.kind} recurrence from {spec.start_date} "
        f"to {len(dates)} dates (end: {spec.end_date or 'default horizon'})"
    )
    return dates
