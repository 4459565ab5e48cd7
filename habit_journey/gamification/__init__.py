"""
Progression engine for habit journeys

This package turns raw habit completions into progression:
- XP and leveling
- Activity streaks
- Habit progress state machine and goal level unlocking
- Achievements
- Goal insights (pace, predictions, recommendations)
"""

from habit_journey.gamification.xp_system import (
    award_xp,
    calculate_level_from_xp,
    get_level_for_xp,
    get_xp_required_for_level,
)
from habit_journey.gamification.streak_system import update_streak
from habit_journey.gamification.achievement_system import check_and_award_achievements, evaluate_achievements
from habit_journey.gamification.habit_progress import complete_habit, select_goal, switch_goal
from habit_journey.gamification.goal_insights import get_goal_stats, get_recommended_goals

__all__ = [
    "award_xp",
    "calculate_level_from_xp",
    "get_level_for_xp",
    "get_xp_required_for_level",
    "update_streak",
    "check_and_award_achievements",
    "evaluate_achievements",
    "complete_habit",
    "select_goal",
    "switch_goal",
    "get_goal_stats",
    "get_recommended_goals",
]
