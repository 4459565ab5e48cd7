"""
Activity Streak Tracking

A streak is the number of consecutive calendar days with at least one habit
completion. Continuation is decided from the ledger's last_activity_date:
- same day: unchanged
- previous day: +1
- gap of 2+ days, or first activity: reset to 1
"""

from datetime import date, timedelta
from typing import Any, Dict, Iterable, Optional
import logging

from habit_journey.models.xp import XPLedger

logger = logging.getLogger(__name__)


def update_streak(ledger: XPLedger, activity_date: date) -> Dict[str, Any]:
    """
    Apply the streak continuation rule to `ledger` in place

    Args:
        ledger: User's XP ledger (working copy)
        activity_date: Calendar day of the activity

    Returns:
        {
            'current_streak': int,
            'best_streak': int,
            'old_streak': int,
            'streak_reset': bool,
            'message': str
        }
    """
    old_streak = ledger.current_streak
    last_date = ledger.last_activity_date
    streak_reset = False

    if last_date is None:
        ledger.current_streak = 1
        message = "Streak started! Day 1"

    elif last_date == activity_date:
        # Already counted for today
        message = f"Streak continues! Day {ledger.current_streak}"

    elif last_date == activity_date - timedelta(days=1):
        ledger.current_streak += 1
        message = f"Streak continues! Day {ledger.current_streak}"

    elif last_date > activity_date:
        # Backdated activity never rewinds the streak
        logger.warning(
            f"Ignoring backdated activity for user {ledger.user_id}: "
            f"{activity_date} is before last activity {last_date}"
        )
        return {
            "current_streak": ledger.current_streak,
            "best_streak": ledger.best_streak,
            "old_streak": old_streak,
            "streak_reset": False,
            "message": f"Streak continues! Day {ledger.current_streak}",
        }

    else:
        gap_days = (activity_date - last_date).days
        ledger.current_streak = 1
        streak_reset = True
        message = f"Streak reset. Previous: {old_streak} days. Starting fresh! Day 1"
        logger.info(
            f"User {ledger.user_id} streak broken. Was {old_streak}, gap was {gap_days} days"
        )

    ledger.best_streak = max(ledger.best_streak, ledger.current_streak)
    ledger.last_activity_date = activity_date

    return {
        "current_streak": ledger.current_streak,
        "best_streak": ledger.best_streak,
        "old_streak": old_streak,
        "streak_reset": streak_reset,
        "message": message,
    }


def get_effective_streak(ledger: XPLedger, today: date) -> int:
    """
    Streak as it stands today

    The stored counter is only updated on activity; once a full day has been
    missed the streak is already broken even if nothing was logged since.
    """
    if ledger.last_activity_date is None:
        return 0
    if (today - ledger.last_activity_date).days > 1:
        return 0
    return ledger.current_streak


def calculate_streak_from_dates(activity_dates: Iterable[date], today: date, max_days: Optional[int] = None) -> int:
    """
    Count consecutive active days ending today

    A day without activity today does not break the streak; counting then
    starts from yesterday.
    """
    active = set(activity_dates)
    streak = 0
    day = today if today in active else today - timedelta(days=1)
    while day in active:
        streak += 1
        if max_days is not None and streak >= max_days:
            break
        day -= timedelta(days=1)
    return streak
