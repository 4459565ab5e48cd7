"""Configuration management"""
import os
from typing import Optional

import pytz
from dotenv import load_dotenv

load_dotenv()

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Calendar day boundaries ("today") are computed in this timezone
DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", "UTC")

# Optional JSON file replacing the built-in achievement catalog
ACHIEVEMENT_CATALOG_PATH: Optional[str] = os.getenv("ACHIEVEMENT_CATALOG_PATH") or None

# Habit progression
MASTERY_THRESHOLD: int = 5  # completions before a habit counts as completed
LEVEL_UNLOCK_RATIO: float = 0.8  # share of completed habits needed to open the next level
LEVEL_NAMES: dict[int, str] = {
    1: "Foundation",
    2: "Building",
    3: "Power",
    4: "Mastery",
}

# XP
LEVEL_BONUS_XP: int = 50
DEFAULT_DAILY_XP_GOAL: int = 50

# Recurrence expansion
RECURRENCE_HORIZON_DAYS: int = 365
MAX_SIMPLE_OCCURRENCES: int = 52
MAX_WEEKDAY_OCCURRENCES: int = 100
MAX_MONTHLY_OCCURRENCES: int = 52

# Goal insights
WEEKLY_PROGRESS_DAYS: int = 84  # twelve weeks
RECOMMENDATION_LIMIT: int = 5
DEFAULT_GOAL_WEEKS: int = 8

# Optimistic-concurrency retries when a save races another writer
STATE_SAVE_ATTEMPTS: int = 3

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def validate_config() -> None:
    """Validate configuration loaded from the environment"""
    from habit_journey.exceptions import ConfigurationError

    if LOG_LEVEL.upper() not in VALID_LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid LOG_LEVEL '{LOG_LEVEL}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}",
            config_key="LOG_LEVEL",
        )
    try:
        pytz.timezone(DEFAULT_TIMEZONE)
    except pytz.exceptions.UnknownTimeZoneError:
        raise ConfigurationError(
            f"Invalid DEFAULT_TIMEZONE '{DEFAULT_TIMEZONE}'. Use an IANA timezone (e.g., 'Europe/Stockholm')",
            config_key="DEFAULT_TIMEZONE",
        )
    if ACHIEVEMENT_CATALOG_PATH and not os.path.isfile(ACHIEVEMENT_CATALOG_PATH):
        raise ConfigurationError(
            f"ACHIEVEMENT_CATALOG_PATH does not exist: {ACHIEVEMENT_CATALOG_PATH}",
            config_key="ACHIEVEMENT_CATALOG_PATH",
        )
