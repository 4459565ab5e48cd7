"""
XP and Leveling System

Maps cumulative XP to levels and applies XP awards to a user's ledger.

Leveling Curve:
- Levels 1-11: hand-tuned thresholds (0, 100, 300, 600, 1000, 1500,
  2100, 2800, 3600, 4500, 5500 XP)
- Level 12+: 1000 XP per level

XP Award Rules:
- Habit completion: the habit template's xp_reward
- Level up: +50 XP level bonus (checked again for further level-ups)
- Achievement unlock: the achievement's xp_reward
"""

from bisect import bisect_right
from collections import deque
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

from habit_journey import config
from habit_journey.exceptions import ValidationError
from habit_journey.gamification.streak_system import update_streak
from habit_journey.models.xp import TransactionType, XPLedger, XPTransaction

logger = logging.getLogger(__name__)

LEVEL_THRESHOLDS = (0, 100, 300, 600, 1000, 1500, 2100, 2800, 3600, 4500, 5500)
XP_PER_LEVEL_AFTER_TABLE = 1000


def get_xp_required_for_level(level: int) -> int:
    """Minimum total XP at which `level` is reached"""
    if level <= 1:
        return 0
    if level <= len(LEVEL_THRESHOLDS):
        return LEVEL_THRESHOLDS[level - 1]
    return LEVEL_THRESHOLDS[-1] + (level - len(LEVEL_THRESHOLDS)) * XP_PER_LEVEL_AFTER_TABLE


def get_level_for_xp(total_xp: int) -> int:
    """Level reached with `total_xp` (negative XP counts as zero)"""
    total_xp = max(0, total_xp)
    if total_xp >= LEVEL_THRESHOLDS[-1]:
        return len(LEVEL_THRESHOLDS) + (total_xp - LEVEL_THRESHOLDS[-1]) // XP_PER_LEVEL_AFTER_TABLE
    return bisect_right(LEVEL_THRESHOLDS, total_xp)


def calculate_level_progress(total_xp: int) -> int:
    """
    Progress through the current level, 0-100

    Rounded half-up; 100 when the level has no width.
    """
    total_xp = max(0, total_xp)
    level = get_level_for_xp(total_xp)
    floor_xp = get_xp_required_for_level(level)
    ceiling_xp = get_xp_required_for_level(level + 1)
    span = ceiling_xp - floor_xp
    if span <= 0:
        return 100
    return int((total_xp - floor_xp) * 100 / span + 0.5)


def calculate_level_from_xp(total_xp: int) -> Dict[str, Any]:
    """
    Calculate level details from total XP

    Returns:
        {
            'current_level': int,
            'xp_in_current_level': int,
            'xp_to_next_level': int,
            'total_xp_for_next_level': int,
            'level_progress': int (0-100)
        }
    """
    total_xp = max(0, total_xp)
    level = get_level_for_xp(total_xp)
    next_threshold = get_xp_required_for_level(level + 1)

    return {
        "current_level": level,
        "xp_in_current_level": total_xp - get_xp_required_for_level(level),
        "xp_to_next_level": next_threshold - total_xp,
        "total_xp_for_next_level": next_threshold,
        "level_progress": calculate_level_progress(total_xp),
    }


def award_xp(
    ledger: XPLedger,
    amount: int,
    transaction_type: TransactionType,
    activity_date: date,
    awarded_at: datetime,
    description: Optional[str] = None,
    habit_completion_id: Optional[UUID] = None,
) -> Dict[str, Any]:
    """
    Apply an XP award, and any level bonuses it triggers, to `ledger`

    The ledger is updated in place; engine entry points hand in a working copy.
    Awards are processed from a work-list: an award that raises the level
    queues one level bonus, which is itself checked for a further level-up.
    Only habit completions run the streak continuation rule.

    Args:
        ledger: User's XP ledger (working copy)
        amount: XP to award (non-negative)
        transaction_type: Source of the award
        activity_date: Calendar day of the activity
        awarded_at: Timestamp recorded on the transactions
        description: Human-readable description
        habit_completion_id: Completion that earned the XP, if any

    Returns:
        {
            'xp_awarded': int (including bonuses),
            'old_total_xp': int,
            'new_total_xp': int,
            'old_level': int,
            'new_level': int,
            'leveled_up': bool,
            'xp_to_next_level': int,
            'transactions': list[XPTransaction]
        }
    """
    if amount < 0:
        raise ValidationError(
            message="XP awards cannot be negative",
            field="amount",
            value=amount,
            user_id=ledger.user_id,
            operation="award_xp",
        )

    old_total_xp = ledger.total_xp
    old_level = get_level_for_xp(old_total_xp)
    transactions: List[XPTransaction] = []

    pending = deque([(amount, transaction_type, description, habit_completion_id)])
    while pending:
        xp_amount, tx_type, tx_description, completion_id = pending.popleft()

        level_before = get_level_for_xp(ledger.total_xp)
        ledger.total_xp += xp_amount

        if tx_type == TransactionType.HABIT_COMPLETION:
            update_streak(ledger, activity_date)

        level_after = get_level_for_xp(ledger.total_xp)
        ledger.current_level = level_after
        ledger.xp_to_next_level = get_xp_required_for_level(level_after + 1) - ledger.total_xp

        transactions.append(XPTransaction(
            user_id=ledger.user_id,
            xp_amount=xp_amount,
            transaction_type=tx_type,
            description=tx_description or f"Earned {xp_amount} XP from {tx_type.value}",
            habit_completion_id=completion_id,
            activity_date=activity_date,
            created_at=awarded_at,
        ))

        if level_after > level_before:
            logger.info(f"User {ledger.user_id} leveled up from {level_before} to {level_after}!")
            pending.append((
                config.LEVEL_BONUS_XP,
                TransactionType.LEVEL_BONUS,
                f"Level {level_after} reached!",
                None,
            ))

    new_level = ledger.current_level
    logger.info(
        f"Awarded {ledger.total_xp - old_total_xp} XP to user {ledger.user_id} for {transaction_type.value}. "
        f"Total: {ledger.total_xp} XP, Level: {new_level}"
    )

    return {
        "xp_awarded": ledger.total_xp - old_total_xp,
        "old_total_xp": old_total_xp,
        "new_total_xp": ledger.total_xp,
        "old_level": old_level,
        "new_level": new_level,
        "leveled_up": new_level > old_level,
        "xp_to_next_level": ledger.xp_to_next_level,
        "transactions": transactions,
    }


def get_daily_xp(transactions: List[XPTransaction], day: date) -> int:
    """Total XP earned on a calendar day"""
    return sum(t.xp_amount for t in transactions if t.activity_date == day)


def get_daily_goal_progress(ledger: XPLedger, transactions: List[XPTransaction], day: date) -> Dict[str, Any]:
    """
    Progress toward the user's daily XP goal

    Returns:
        {'earned': int, 'goal': int, 'percentage': int (0-100), 'goal_met': bool}
    """
    earned = get_daily_xp(transactions, day)
    percentage = min(100, int(earned * 100 / ledger.daily_xp_goal + 0.5))
    return {
        "earned": earned,
        "goal": ledger.daily_xp_goal,
        "percentage": percentage,
        "goal_met": earned >= ledger.daily_xp_goal,
    }


def set_daily_xp_goal(ledger: XPLedger, new_goal: int) -> XPLedger:
    """Return a copy of `ledger` with a new daily XP goal"""
    if new_goal <= 0:
        raise ValidationError(
            message="Daily XP goal must be positive",
            field="daily_xp_goal",
            value=new_goal,
            user_id=ledger.user_id,
            operation="set_daily_xp_goal",
        )
    return ledger.model_copy(update={"daily_xp_goal": new_goal})
