"""Global test fixtures and utilities for habit-journey tests"""
import pytest
from datetime import date, datetime, timezone

from habit_journey.gamification.state_store import StateStore
from habit_journey.models.achievement import AchievementDefinition, CriteriaType, UnlockCriteria
from habit_journey.models.goal import GoalTemplate, HabitTemplate
from habit_journey.models.state import EngineState


# ============================================================================
# Clock Fixtures
# ============================================================================

@pytest.fixture
def today():
    """Fixed calendar day used as 'today'"""
    return date(2024, 3, 6)


@pytest.fixture
def now():
    return datetime(2024, 3, 6, 9, 30, tzinfo=timezone.utc)


# ============================================================================
# Catalog Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


@pytest.fixture
def goal_template():
    """Two-level goal"""
    return GoalTemplate(
        id="better-sleep",
        title="Sleep Better",
        description="Build an evening routine",
        total_levels=2,
    )


@pytest.fixture
def habit_templates(goal_template):
    """Five level-1 habits and two level-2 habits"""
    level_one = [
        HabitTemplate(
            id=f"sleep-l1-{i}",
            goal_template_id=goal_template.id,
            title=f"Evening habit {i}",
            level=1,
            xp_reward=10,
            order_index=i,
        )
        for i in range(1, 6)
    ]
    level_two = [
        HabitTemplate(
            id=f"sleep-l2-{i}",
            goal_template_id=goal_template.id,
            title=f"Advanced habit {i}",
            level=2,
            xp_reward=20,
            order_index=i,
        )
        for i in range(1, 3)
    ]
    return level_one + level_two


@pytest.fixture
def habit_template_map(habit_templates):
    return {t.id: t for t in habit_templates}


@pytest.fixture
def goal_template_map(goal_template):
    return {goal_template.id: goal_template}


@pytest.fixture
def achievement_definitions():
    """Small catalog without a completion-count achievement, so XP stays predictable"""
    return [
        AchievementDefinition(
            id="week_warrior",
            name="Week Warrior",
            xp_reward=50,
            unlock_criteria=UnlockCriteria(type=CriteriaType.STREAK_DAYS, value=7),
        ),
        AchievementDefinition(
            id="goal_achiever",
            name="Goal Achiever",
            xp_reward=500,
            unlock_criteria=UnlockCriteria(type=CriteriaType.GOAL_COMPLETION, value=1),
        ),
    ]


# ============================================================================
# State Fixtures
# ============================================================================

@pytest.fixture
def empty_state(test_user_id):
    return EngineState.new(test_user_id)


@pytest.fixture
def state_store():
    return StateStore()
