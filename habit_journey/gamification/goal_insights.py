"""
Goal Insights

Read-only statistics computed from a user's engine state:
- Goal stats with pace (habits mastered per day) and days remaining
- Completion date prediction
- Weekly progress buckets (Sunday-start weeks)
- Journey-wide stats across all goals
- Goal recommendations scored against the user's level
"""

import logging
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from habit_journey import config
from habit_journey.gamification.habit_progress import require_goal
from habit_journey.gamification.streak_system import get_effective_streak
from habit_journey.models.goal import GoalStatus, GoalTemplate
from habit_journey.models.habit import HabitStatus
from habit_journey.models.state import EngineState
from habit_journey.utils.datetime_helpers import sunday_on_or_before

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


# ============================================
# Goal Stats & Prediction
# ============================================

def get_goal_stats(
    state: EngineState,
    goal_template: GoalTemplate,
    today: date,
    goal_id: Optional[UUID] = None,
) -> Dict[str, Any]:
    """
    Pace statistics for a goal (the active one by default)

    The start day counts as the first active day.

    Returns:
        {
            'days_active': int,
            'habits_completed': int,
            'total_habits': int,
            'xp_earned': int,
            'current_level': int,
            'total_levels': int,
            'completion_percentage': int,
            'average_daily_progress': float (habits completed per day),
            'estimated_days_remaining': int (0 when there is no pace yet)
        }
    """
    goal = require_goal(state, goal_id, "get_goal_stats")
    records = state.progress_for_goal(goal.id)
    record_ids = {r.id for r in records}

    total = len(records)
    completed = sum(1 for r in records if r.status == HabitStatus.COMPLETED)
    days_active = max(0, (today - goal.start_date).days + 1)
    average = completed / days_active if days_active > 0 else 0.0
    # ceil((total - completed) / average) in integer arithmetic
    remaining = -(-(total - completed) * days_active // completed) if completed else 0

    return {
        "days_active": days_active,
        "habits_completed": completed,
        "total_habits": total,
        "xp_earned": sum(c.xp_earned for c in state.completions if c.habit_progress_id in record_ids),
        "current_level": goal.current_level,
        "total_levels": goal_template.total_levels,
        "completion_percentage": _round_half_up(completed * 100 / total) if total else 0,
        "average_daily_progress": average,
        "estimated_days_remaining": remaining,
    }


def get_completion_prediction(goal_stats: Dict[str, Any], today: date) -> Optional[Dict[str, Any]]:
    """
    Estimated completion date at the current pace

    Confidence grows with the pace and is clamped to 20-95.

    Returns:
        {'estimated_completion_date': date, 'confidence': int}, or None
        while no habit has been completed
    """
    average = goal_stats["average_daily_progress"]
    if average <= 0:
        return None

    confidence = min(95.0, max(20.0, average * 100))
    return {
        "estimated_completion_date": today + timedelta(days=goal_stats["estimated_days_remaining"]),
        "confidence": _round_half_up(confidence),
    }


# ============================================
# Weekly Progress
# ============================================

def get_weekly_progress(state: EngineState, today: date) -> List[Dict[str, Any]]:
    """
    Completions and XP per Sunday-start week over the last twelve weeks

    Only weeks with at least one completion are listed, oldest first.

    Returns:
        [{'week_start': date, 'habits_completed': int, 'xp_earned': int}]
    """
    if state.active_goal() is None:
        return []

    since = today - timedelta(days=config.WEEKLY_PROGRESS_DAYS)
    weeks: Dict[date, Dict[str, Any]] = {}
    for completion in sorted(state.completions, key=lambda c: c.completion_date):
        if completion.completion_date < since:
            continue
        week_start = sunday_on_or_before(completion.completion_date)
        bucket = weeks.setdefault(week_start, {
            "week_start": week_start,
            "habits_completed": 0,
            "xp_earned": 0,
        })
        bucket["habits_completed"] += 1
        bucket["xp_earned"] += completion.xp_earned

    return [weeks[key] for key in sorted(weeks)]


# ============================================
# Journey Stats
# ============================================

def get_journey_stats(
    state: EngineState,
    goal_templates: Mapping[str, GoalTemplate],
    today: date,
) -> Dict[str, Any]:
    """
    Stats across every goal the user has started

    Returns:
        {
            'total_goals_completed': int,
            'total_days_active': int (since the first goal started),
            'total_xp_earned': int,
            'current_streak': int,
            'longest_streak': int,
            'categories_explored': list[str],
            'average_goal_completion_days': int
        }
    """
    completed_goals = [g for g in state.goals if g.status == GoalStatus.COMPLETED]

    if state.goals:
        first_start = min(g.start_date for g in state.goals)
        total_days_active = (today - first_start).days + 1
    else:
        total_days_active = 0

    durations = [
        (g.completion_date - g.start_date).days
        for g in completed_goals
        if g.completion_date is not None
    ]
    average_days = _round_half_up(sum(durations) / len(durations)) if durations else 0

    categories: List[str] = []
    for goal in state.goals:
        template = goal_templates.get(goal.goal_template_id)
        if template is not None and template.category and template.category not in categories:
            categories.append(template.category)

    return {
        "total_goals_completed": len(completed_goals),
        "total_days_active": total_days_active,
        "total_xp_earned": sum(t.xp_amount for t in state.transactions),
        "current_streak": get_effective_streak(state.ledger, today),
        "longest_streak": state.ledger.best_streak,
        "categories_explored": categories,
        "average_goal_completion_days": average_days,
    }


# ============================================
# Recommendations
# ============================================

def _base_weeks(goal_template: GoalTemplate) -> int:
    digits = re.sub(r"\D", "", goal_template.estimated_duration or "")
    return int(digits) if digits and int(digits) > 0 else config.DEFAULT_GOAL_WEEKS


def score_goal(goal_template: GoalTemplate, user_level: int, completed_categories: set) -> Dict[str, Any]:
    """
    Score one goal template for a user

    Base 50, +20 for a category the user has not completed a goal in, +15 when
    the difficulty matches the user's level, -10 / -20 for an intermediate /
    advanced goal above it.
    """
    score = 50
    reason = "Good match for your level"
    match = "perfect_match"

    if goal_template.category not in completed_categories:
        score += 20
        reason = "Explore a new life area"

    difficulty = goal_template.difficulty
    if difficulty == "beginner" and user_level <= 3:
        score += 15
    elif difficulty == "intermediate" and 3 <= user_level <= 8:
        score += 15
    elif difficulty == "advanced" and user_level >= 8:
        score += 15
    elif difficulty == "intermediate" and user_level < 3:
        score -= 10
        match = "big_challenge"
        reason = "Ambitious challenge"
    elif difficulty == "advanced" and user_level < 8:
        score -= 20
        match = "big_challenge"
        reason = "Advanced challenge"

    return {
        "goal_template": goal_template,
        "score": score,
        "reason": reason,
        "difficulty": match,
        "estimated_weeks": max(4, _base_weeks(goal_template) - user_level // 2),
    }


def get_recommended_goals(
    state: EngineState,
    goal_templates: List[GoalTemplate],
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Best-scoring goals the user has neither completed nor is pursuing

    Ties keep catalog order.

    Returns:
        [{'goal_template', 'score', 'reason', 'difficulty', 'estimated_weeks'}]
    """
    limit = limit or config.RECOMMENDATION_LIMIT
    by_id = {t.id: t for t in goal_templates}

    completed_ids = {g.goal_template_id for g in state.goals if g.status == GoalStatus.COMPLETED}
    completed_categories = {
        by_id[template_id].category
        for template_id in completed_ids
        if template_id in by_id and by_id[template_id].category
    }
    active = state.active_goal()
    active_id = active.goal_template_id if active else None

    scored = [
        score_goal(template, state.ledger.current_level, completed_categories)
        for template in goal_templates
        if template.id not in completed_ids and template.id != active_id
    ]
    scored.sort(key=lambda r: r["score"], reverse=True)

    logger.debug(f"Scored {len(scored)} candidate goals for user {state.user_id}")
    return scored[:limit]
