"""
Achievement System

Evaluates achievement definitions against a user's aggregate stats:
- habit_completions: total habit completions
- streak_days: current activity streak
- xp_milestone: total XP
- goal_completion: number of completed goals
- level_completion: defined in the catalog but never satisfied

Features:
- Fixed-point unlocking (an unlock's XP reward can satisfy further achievements)
- Progress tracking for locked achievements
- Catalog loading from a versioned JSON file
"""

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from habit_journey import config
from habit_journey.exceptions import ConfigurationError
from habit_journey.gamification.xp_system import award_xp
from habit_journey.models.achievement import (
    AchievementCatalog,
    AchievementDefinition,
    AchievementStats,
    AchievementUnlock,
    CriteriaType,
    UnlockCriteria,
)
from habit_journey.models.xp import TransactionType, XPLedger

logger = logging.getLogger(__name__)


DEFAULT_CATALOG = AchievementCatalog(
    version=1,
    achievements=[
        AchievementDefinition(
            id="first_habit",
            name="First Steps",
            description="Complete your very first habit",
            icon="🥇",
            xp_reward=10,
            unlock_criteria=UnlockCriteria(type=CriteriaType.HABIT_COMPLETIONS, value=1),
        ),
        AchievementDefinition(
            id="week_warrior",
            name="Week Warrior",
            description="Maintain a 7-day streak",
            icon="🔥",
            xp_reward=50,
            unlock_criteria=UnlockCriteria(type=CriteriaType.STREAK_DAYS, value=7),
        ),
        AchievementDefinition(
            id="foundation_master",
            name="Foundation Master",
            description="Complete all Level 1 habits in a goal",
            icon="🏗️",
            xp_reward=100,
            unlock_criteria=UnlockCriteria(type=CriteriaType.LEVEL_COMPLETION, value=1),
        ),
        AchievementDefinition(
            id="habit_crusher",
            name="Habit Crusher",
            description="Complete 50 habits total",
            icon="💪",
            xp_reward=200,
            unlock_criteria=UnlockCriteria(type=CriteriaType.HABIT_COMPLETIONS, value=50),
        ),
        AchievementDefinition(
            id="streak_legend",
            name="Streak Legend",
            description="Maintain a 30-day streak",
            icon="🌟",
            xp_reward=300,
            unlock_criteria=UnlockCriteria(type=CriteriaType.STREAK_DAYS, value=30),
        ),
        AchievementDefinition(
            id="goal_achiever",
            name="Goal Achiever",
            description="Complete your first goal",
            icon="🎯",
            xp_reward=500,
            unlock_criteria=UnlockCriteria(type=CriteriaType.GOAL_COMPLETION, value=1),
        ),
    ],
)


def load_achievement_catalog(path: Optional[str] = None) -> AchievementCatalog:
    """
    Load the achievement catalog

    Args:
        path: JSON file with {"version": int, "achievements": [...]};
              defaults to ACHIEVEMENT_CATALOG_PATH, then the built-in catalog

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    path = path or config.ACHIEVEMENT_CATALOG_PATH
    if not path:
        return DEFAULT_CATALOG

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        catalog = AchievementCatalog.model_validate(raw)
    except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
        raise ConfigurationError(
            f"Invalid achievement catalog at {path}: {e}",
            config_key="ACHIEVEMENT_CATALOG_PATH",
            cause=e,
        )

    logger.info(f"Loaded achievement catalog v{catalog.version} ({len(catalog.achievements)} achievements) from {path}")
    return catalog


# ============================================
# Criteria Checks
# ============================================

def _check_habit_completions(criteria: UnlockCriteria, stats: AchievementStats) -> bool:
    return stats.habit_completions >= criteria.value


def _check_streak_days(criteria: UnlockCriteria, stats: AchievementStats) -> bool:
    return stats.current_streak >= criteria.value


def _check_xp_milestone(criteria: UnlockCriteria, stats: AchievementStats) -> bool:
    return stats.total_xp >= criteria.value


def _check_goal_completion(criteria: UnlockCriteria, stats: AchievementStats) -> bool:
    return stats.completed_goals >= criteria.value


def _check_level_completion(criteria: UnlockCriteria, stats: AchievementStats) -> bool:
    # No agreed rule for "complete all habits in a level" yet; never unlocks
    return False


_CRITERIA_CHECKS: Dict[CriteriaType, Callable[[UnlockCriteria, AchievementStats], bool]] = {
    CriteriaType.HABIT_COMPLETIONS: _check_habit_completions,
    CriteriaType.STREAK_DAYS: _check_streak_days,
    CriteriaType.XP_MILESTONE: _check_xp_milestone,
    CriteriaType.GOAL_COMPLETION: _check_goal_completion,
    CriteriaType.LEVEL_COMPLETION: _check_level_completion,
}


def is_criteria_met(criteria: UnlockCriteria, stats: AchievementStats) -> bool:
    return _CRITERIA_CHECKS[criteria.type](criteria, stats)


def evaluate_achievements(
    stats: AchievementStats,
    definitions: Iterable[AchievementDefinition],
    unlocked_ids: Iterable[str],
) -> List[AchievementDefinition]:
    """
    Definitions satisfied by `stats` that are not unlocked yet

    Pure predicate scan, in catalog order.
    """
    unlocked = set(unlocked_ids)
    return [
        definition for definition in definitions
        if definition.id not in unlocked and is_criteria_met(definition.unlock_criteria, stats)
    ]


def check_and_award_achievements(
    ledger: XPLedger,
    stats: AchievementStats,
    definitions: List[AchievementDefinition],
    unlocks: List[AchievementUnlock],
    activity_date: date,
    unlocked_at: datetime,
) -> Dict[str, Any]:
    """
    Unlock every achievement satisfied by `stats`, to a fixed point

    Each unlock awards its XP reward through award_xp (level bonuses included),
    which can satisfy further xp_milestone achievements; scanning repeats until
    a pass unlocks nothing. `ledger` and `unlocks` are updated in place.

    Returns:
        {
            'unlocked': list[AchievementDefinition] (in unlock order),
            'xp_awarded': int,
            'transactions': list[XPTransaction]
        }
    """
    newly_unlocked: List[AchievementDefinition] = []
    transactions = []
    xp_awarded = 0
    unlocked_ids = {u.achievement_id for u in unlocks}
    stats = stats.model_copy(update={"total_xp": ledger.total_xp})

    # Each pass unlocks at least one definition, so this is bounded by the catalog size
    while True:
        batch = evaluate_achievements(stats, definitions, unlocked_ids)
        if not batch:
            break

        for definition in batch:
            unlocks.append(AchievementUnlock(
                user_id=ledger.user_id,
                achievement_id=definition.id,
                xp_reward=definition.xp_reward,
                unlocked_at=unlocked_at,
            ))
            unlocked_ids.add(definition.id)
            newly_unlocked.append(definition)

            logger.info(
                f"User {ledger.user_id} unlocked achievement: {definition.id} "
                f"({definition.name}) +{definition.xp_reward} XP"
            )

            if definition.xp_reward > 0:
                xp_result = award_xp(
                    ledger,
                    definition.xp_reward,
                    TransactionType.ACHIEVEMENT_BONUS,
                    activity_date,
                    unlocked_at,
                    description=f"Achievement unlocked: {definition.name}",
                )
                xp_awarded += xp_result["xp_awarded"]
                transactions.extend(xp_result["transactions"])

        stats = stats.model_copy(update={"total_xp": ledger.total_xp})

    return {
        "unlocked": newly_unlocked,
        "xp_awarded": xp_awarded,
        "transactions": transactions,
    }


# ============================================
# Progress & Summaries
# ============================================

def _current_value(criteria: UnlockCriteria, stats: AchievementStats) -> int:
    if criteria.type == CriteriaType.HABIT_COMPLETIONS:
        return stats.habit_completions
    if criteria.type == CriteriaType.STREAK_DAYS:
        return stats.current_streak
    if criteria.type == CriteriaType.XP_MILESTONE:
        return stats.total_xp
    if criteria.type == CriteriaType.GOAL_COMPLETION:
        return stats.completed_goals
    return 0


def calculate_achievement_progress(definition: AchievementDefinition, stats: AchievementStats) -> Dict[str, Any]:
    """
    Calculate progress toward an achievement

    Returns:
        {
            'current': int,
            'required': int,
            'percentage': int,
            'description': str
        }
    """
    criteria = definition.unlock_criteria
    current = _current_value(criteria, stats)
    required = criteria.value

    if criteria.type == CriteriaType.LEVEL_COMPLETION:
        percentage = 0
    elif required <= 0:
        percentage = 100
    else:
        percentage = min(100, int(current * 100 / required + 0.5))

    return {
        "current": current,
        "required": required,
        "percentage": percentage,
        "description": f"{current}/{required}",
    }


def get_user_achievements(
    definitions: List[AchievementDefinition],
    unlocks: List[AchievementUnlock],
    stats: AchievementStats,
    include_locked: bool = False,
) -> Dict[str, Any]:
    """
    Get user's achievements with progress

    Returns:
        {
            'unlocked': [unlocked achievements, most recent first],
            'locked': [locked achievements with progress] (if include_locked=True),
            'total_unlocked': int,
            'total_achievements': int,
            'total_xp_from_achievements': int
        }
    """
    by_id = {d.id: d for d in definitions}
    unlocked = []
    for unlock in sorted(unlocks, key=lambda u: u.unlocked_at, reverse=True):
        definition = by_id.get(unlock.achievement_id)
        if definition is None:
            # Retired from the catalog; the unlock itself is permanent
            logger.debug(f"Unlock for unknown achievement {unlock.achievement_id}")
            continue
        unlocked.append({
            "achievement_id": definition.id,
            "name": definition.name,
            "description": definition.description,
            "icon": definition.icon,
            "xp_reward": unlock.xp_reward,
            "unlocked_at": unlock.unlocked_at,
        })

    result = {
        "unlocked": unlocked,
        "total_unlocked": len(unlocked),
        "total_achievements": len(definitions),
        "total_xp_from_achievements": sum(a["xp_reward"] for a in unlocked),
    }

    if include_locked:
        unlocked_ids = {u.achievement_id for u in unlocks}
        locked = [
            {
                "achievement_id": definition.id,
                "name": definition.name,
                "description": definition.description,
                "icon": definition.icon,
                "xp_reward": definition.xp_reward,
                "progress": calculate_achievement_progress(definition, stats),
            }
            for definition in definitions
            if definition.id not in unlocked_ids
        ]
        # Closest to completion first
        locked.sort(key=lambda a: a["progress"]["percentage"], reverse=True)
        result["locked"] = locked

    return result
