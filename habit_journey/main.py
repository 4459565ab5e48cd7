"""Command-line entry point: expand a recurring task into its dates"""
import argparse
import logging
import sys
from datetime import date
from typing import List, Optional

from habit_journey.config import LOG_LEVEL, validate_config
from habit_journey.exceptions import HabitJourneyError
from habit_journey.models.recurrence import (
    DayOfMonthPattern,
    DaysOfWeekPattern,
    RecurrenceSpec,
    RecurrenceUnit,
    SimplePattern,
)
from habit_journey.scheduling.recurrence import generate_recurrence_dates

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=getattr(logging, (level or LOG_LEVEL).upper())
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Expand a recurring task into concrete dates")
    parser.add_argument("start", type=date.fromisoformat, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, help="End date (YYYY-MM-DD, default: one year)")

    pattern = parser.add_mutually_exclusive_group()
    pattern.add_argument("--every", type=int, default=1, help="Repeat every N units (default: 1)")
    pattern.add_argument("--weekdays", help="Comma-separated weekday names, e.g. monday,friday")
    pattern.add_argument("--day-of-month", type=int, help="Day of the month (1-31)")

    parser.add_argument(
        "--unit",
        choices=[u.value for u in RecurrenceUnit],
        help="Unit for --every (default: day)",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.unit is not None and (args.weekdays is not None or args.day_of_month is not None):
        parser.error("--unit only applies to --every")
    return args


def build_spec(args: argparse.Namespace) -> RecurrenceSpec:
    if args.weekdays is not None:
        pattern = DaysOfWeekPattern(weekdays=[d for d in args.weekdays.split(",") if d.strip()])
    elif args.day_of_month is not None:
        pattern = DayOfMonthPattern(day_number=args.day_of_month)
    else:
        pattern = SimplePattern(interval=args.every, unit=RecurrenceUnit(args.unit or RecurrenceUnit.DAY.value))
    return RecurrenceSpec(start_date=args.start, end_date=args.end, pattern=pattern)


def main(argv: Optional[List[str]] = None) -> int:
    """Print one ISO date per line; returns the process exit code"""
    configure_logging()
    args = parse_args(argv)

    try:
        validate_config()
        dates = generate_recurrence_dates(build_spec(args))
    except HabitJourneyError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 1

    for day in dates:
        print(day.isoformat())
    return 0


if __name__ == "__main__":
    sys.exit(main())
