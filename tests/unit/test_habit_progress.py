"""Unit tests for the habit progress state machine (habit_journey/gamification/habit_progress.py)"""
import pytest
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from habit_journey.exceptions import (
    DuplicateCompletionError,
    InvalidStateError,
    RecordNotFoundError,
    ValidationError,
)
from habit_journey.gamification.habit_progress import (
    can_unlock_next_level,
    complete_goal,
    complete_habit,
    get_daily_habits,
    get_goal_progress,
    get_level_name,
    get_next_level_requirements,
    pause_goal,
    promote_status,
    resume_goal,
    select_goal,
    switch_goal,
)
from habit_journey.models.goal import GoalInstance, GoalStatus, GoalTemplate, HabitTemplate, TimeCommitment
from habit_journey.models.habit import HabitProgress, HabitStatus
from habit_journey.models.state import CompletionCommand
from habit_journey.models.xp import TransactionType


# ============================================================================
# Helpers
# ============================================================================

@pytest.fixture
def started(empty_state, goal_template, habit_templates, today, now):
    """State with the sleep goal just selected"""
    state, goal = select_goal(empty_state, goal_template, habit_templates, today, now)
    return state, goal


def _complete(state, habit_id, day, habit_template_map, goal_template_map, definitions=()):
    command = CompletionCommand(user_id=state.user_id, habit_template_id=habit_id)
    at = datetime(day.year, day.month, day.day, 8, 0, tzinfo=timezone.utc)
    return complete_habit(state, command, habit_template_map, goal_template_map, list(definitions), day, at)


def _master(state, habit_id, first_day, habit_template_map, goal_template_map):
    """Complete a habit on five consecutive days"""
    for offset in range(5):
        state, result = _complete(
            state, habit_id, first_day + timedelta(days=offset), habit_template_map, goal_template_map
        )
    return state, result


def _record(state, habit_id):
    return next(p for p in state.habit_progress if p.habit_template_id == habit_id)


# ============================================================================
# Status Promotion Tests
# ============================================================================

def test_promote_status_forward(now):
    record = HabitProgress(user_id="u1", goal_instance_id=uuid4(), habit_template_id="h", level=2)

    promote_status(record, HabitStatus.AVAILABLE, now)

    assert record.status == HabitStatus.AVAILABLE
    assert record.unlocked_at == now


def test_promote_status_same_status_is_noop(now):
    record = HabitProgress(
        user_id="u1", goal_instance_id=uuid4(), habit_template_id="h", level=1, status=HabitStatus.IN_PROGRESS,
    )

    promote_status(record, HabitStatus.IN_PROGRESS, now)

    assert record.status == HabitStatus.IN_PROGRESS


def test_promote_status_never_demotes(now):
    record = HabitProgress(
        user_id="u1", goal_instance_id=uuid4(), habit_template_id="h", level=1, status=HabitStatus.COMPLETED,
    )

    with pytest.raises(InvalidStateError):
        promote_status(record, HabitStatus.IN_PROGRESS, now)


# ============================================================================
# Goal Lifecycle Tests
# ============================================================================

def test_select_goal_creates_progress_records(started, empty_state):
    state, goal = started

    assert goal.status == GoalStatus.ACTIVE
    assert goal.current_level == 1
    assert state.active_goal().id == goal.id
    assert len(state.habit_progress) == 7
    assert all(p.status == HabitStatus.AVAILABLE for p in state.habit_progress if p.level == 1)
    assert all(p.status == HabitStatus.LOCKED for p in state.habit_progress if p.level == 2)
    # Input state is untouched
    assert empty_state.goals == []
    assert empty_state.habit_progress == []


def test_select_goal_pauses_current_goal(started, habit_templates, today, now):
    state, first_goal = started
    other = GoalTemplate(id="hydration", title="Drink More Water", total_levels=1)

    state, second_goal = select_goal(state, other, habit_templates, today, now)

    assert state.find_goal(first_goal.id).status == GoalStatus.PAUSED
    assert state.active_goal().id == second_goal.id


def test_select_goal_rejects_habit_above_total_levels(empty_state, today, now):
    template = GoalTemplate(id="short", title="Short goal", total_levels=1)
    habits = [HabitTemplate(id="too-high", goal_template_id="short", title="Too high", level=2)]

    with pytest.raises(ValidationError):
        select_goal(empty_state, template, habits, today, now)


def test_pause_and_resume_goal(started):
    state, goal = started

    paused = pause_goal(state)
    assert paused.find_goal(goal.id).status == GoalStatus.PAUSED
    assert paused.active_goal() is None

    resumed = resume_goal(paused, goal.id)
    assert resumed.find_goal(goal.id).status == GoalStatus.ACTIVE


def test_pause_without_active_goal(empty_state):
    with pytest.raises(RecordNotFoundError):
        pause_goal(empty_state)


def test_resume_requires_no_other_active_goal(started, habit_templates, today, now):
    state, first_goal = started
    state, _ = select_goal(state, GoalTemplate(id="other", title="Other"), habit_templates, today, now)

    with pytest.raises(InvalidStateError):
        resume_goal(state, first_goal.id)


def test_switch_goal_pauses_current_and_starts_moderate(empty_state, goal_template, habit_templates, today, now):
    state, first_goal = select_goal(empty_state, goal_template, habit_templates, today, now, TimeCommitment.LIGHT)
    other = GoalTemplate(id="hydration", title="Drink More Water", total_levels=1)

    state, second_goal = switch_goal(state, other, habit_templates, today, now, reason="Too hard right now")

    assert state.find_goal(first_goal.id).status == GoalStatus.PAUSED
    assert state.active_goal().id == second_goal.id
    assert second_goal.time_commitment == TimeCommitment.MODERATE


def test_switch_goal_without_active_goal(empty_state, goal_template, habit_templates, today, now):
    state, goal = switch_goal(empty_state, goal_template, habit_templates, today, now)

    assert state.active_goal().id == goal.id
    assert len(state.goals) == 1


def test_complete_goal_unlocks_goal_achievement(started, achievement_definitions, today, now):
    state, goal = started

    state, result = complete_goal(state, achievement_definitions, today, now)

    assert result["goal"].status == GoalStatus.COMPLETED
    assert result["goal"].completion_date == today
    assert [a.id for a in result["achievements_unlocked"]] == ["goal_achiever"]
    assert state.ledger.total_xp >= 500
    assert state.active_goal() is None


def test_complete_goal_twice_fails(started, achievement_definitions, today, now):
    state, goal = started
    state, _ = complete_goal(state, achievement_definitions, today, now)

    with pytest.raises(InvalidStateError):
        complete_goal(state, achievement_definitions, today, now, goal_id=goal.id)


# ============================================================================
# Habit Completion Tests
# ============================================================================

def test_first_completion(started, habit_template_map, goal_template_map, today):
    state, _ = started

    new_state, result = _complete(state, "sleep-l1-1", today, habit_template_map, goal_template_map)

    assert result.accepted is True
    assert result.xp_awarded == 10
    assert result.current_streak == 1
    assert result.leveled_up is False
    record = _record(new_state, "sleep-l1-1")
    assert record.status == HabitStatus.IN_PROGRESS
    assert record.completed_count == 1
    assert record.total_xp_earned == 10
    assert new_state.ledger.total_xp == 10
    assert len(new_state.completions) == 1
    assert new_state.transactions[0].transaction_type == TransactionType.HABIT_COMPLETION
    # Original state unchanged
    assert state.ledger.total_xp == 0
    assert _record(state, "sleep-l1-1").status == HabitStatus.AVAILABLE


def test_duplicate_completion_same_day(started, habit_template_map, goal_template_map, today):
    state, _ = started
    state, _ = _complete(state, "sleep-l1-1", today, habit_template_map, goal_template_map)

    with pytest.raises(DuplicateCompletionError):
        _complete(state, "sleep-l1-1", today, habit_template_map, goal_template_map)

    assert state.ledger.total_xp == 10
    assert len(state.completions) == 1


def test_same_habit_next_day_allowed(started, habit_template_map, goal_template_map, today):
    state, _ = started
    state, _ = _complete(state, "sleep-l1-1", today, habit_template_map, goal_template_map)

    state, result = _complete(state, "sleep-l1-1", today + timedelta(days=1), habit_template_map, goal_template_map)

    assert result.accepted is True
    assert result.current_streak == 2
    assert _record(state, "sleep-l1-1").current_streak == 2


def test_fifth_completion_masters_habit(started, habit_template_map, goal_template_map, today):
    state, _ = started

    state, _ = _master(state, "sleep-l1-1", today, habit_template_map, goal_template_map)

    record = _record(state, "sleep-l1-1")
    assert record.status == HabitStatus.COMPLETED
    assert record.completed_count == 5
    assert record.mastered_at is not None


def test_completing_mastered_habit_keeps_status(started, habit_template_map, goal_template_map, today):
    state, _ = started
    state, _ = _master(state, "sleep-l1-1", today, habit_template_map, goal_template_map)

    state, result = _complete(state, "sleep-l1-1", today + timedelta(days=5), habit_template_map, goal_template_map)

    assert result.accepted is True
    assert _record(state, "sleep-l1-1").status == HabitStatus.COMPLETED
    assert _record(state, "sleep-l1-1").completed_count == 6


def test_locked_habit_rejected(started, habit_template_map, goal_template_map, today):
    state, _ = started

    with pytest.raises(InvalidStateError):
        _complete(state, "sleep-l2-1", today, habit_template_map, goal_template_map)


def test_habit_without_progress_record_rejected(started, habit_template_map, goal_template_map, today):
    state, _ = started

    with pytest.raises(InvalidStateError):
        _complete(state, "unknown-habit", today, habit_template_map, goal_template_map)


def test_paused_goal_rejects_completion(started, habit_template_map, goal_template_map, today):
    state, _ = started
    state = pause_goal(state)

    with pytest.raises(InvalidStateError):
        _complete(state, "sleep-l1-1", today, habit_template_map, goal_template_map)


def test_command_for_other_user_rejected(started, habit_template_map, goal_template_map, today, now):
    state, _ = started
    command = CompletionCommand(user_id="someone-else", habit_template_id="sleep-l1-1")

    with pytest.raises(InvalidStateError):
        complete_habit(state, command, habit_template_map, goal_template_map, [], today, now)


def test_missing_habit_template_rejected(started, goal_template_map, today):
    state, _ = started

    with pytest.raises(RecordNotFoundError):
        _complete(state, "sleep-l1-1", today, {}, goal_template_map)


def test_completion_carries_rating_and_notes(started, habit_template_map, goal_template_map, today, now):
    state, _ = started
    command = CompletionCommand(
        user_id=state.user_id, habit_template_id="sleep-l1-2", rating=3, notes="  felt good  ", elapsed_minutes=15
    )

    state, _ = complete_habit(state, command, habit_template_map, goal_template_map, [], today, now)

    completion = state.completions[0]
    assert completion.rating == 3
    assert completion.notes == "felt good"
    assert completion.elapsed_minutes == 15


# ============================================================================
# Level Unlock Tests
# ============================================================================

def test_four_of_five_completed_unlocks_level_two(started, habit_template_map, goal_template_map, today):
    state, goal = started
    for i in range(1, 4):
        state, _ = _master(state, f"sleep-l1-{i}", today, habit_template_map, goal_template_map)
    assert state.find_goal(goal.id).current_level == 1

    for offset in range(4):
        state, result = _complete(
            state, "sleep-l1-4", today + timedelta(days=offset), habit_template_map, goal_template_map
        )
        assert result.goal_level_advanced is False
    state, result = _complete(state, "sleep-l1-4", today + timedelta(days=4), habit_template_map, goal_template_map)

    assert result.goal_level_advanced is True
    assert result.goal_level == 2
    assert sorted(result.newly_unlocked_habits) == ["sleep-l2-1", "sleep-l2-2"]
    assert state.find_goal(goal.id).current_level == 2
    assert _record(state, "sleep-l2-1").status == HabitStatus.AVAILABLE
    assert _record(state, "sleep-l2-1").unlocked_at is not None


def test_three_of_five_does_not_unlock(started, habit_template_map, goal_template_map, today):
    state, goal = started
    for i in range(1, 4):
        state, _ = _master(state, f"sleep-l1-{i}", today, habit_template_map, goal_template_map)

    assert state.find_goal(goal.id).current_level == 1
    assert _record(state, "sleep-l2-1").status == HabitStatus.LOCKED
    assert can_unlock_next_level(state.find_goal(goal.id), state.progress_for_goal(goal.id)) is False


def test_level_without_habits_never_unlocks(today):
    goal = GoalInstance(user_id="u1", goal_template_id="g", start_date=today)

    assert can_unlock_next_level(goal, []) is False


def test_next_level_requirements(started, goal_template):
    state, goal = started

    requirements = get_next_level_requirements(goal, state.progress_for_goal(goal.id), goal_template)

    assert requirements == {"level": 2, "required_completions": 4, "current_completions": 0}


def test_no_requirements_at_final_level(started, goal_template):
    state, goal = started
    final = goal.model_copy(update={"current_level": 2})

    assert get_next_level_requirements(final, state.progress_for_goal(goal.id), goal_template) is None


# ============================================================================
# XP, Streak & Achievement Interplay
# ============================================================================

def test_level_up_adds_bonus_transaction(started, habit_template_map, goal_template_map, today):
    state, _ = started
    state.ledger.total_xp = 95

    state, result = _complete(state, "sleep-l1-1", today, habit_template_map, goal_template_map)

    assert result.leveled_up is True
    assert result.new_level == 2
    assert result.xp_awarded == 60
    assert [t.transaction_type for t in result.transactions] == [
        TransactionType.HABIT_COMPLETION,
        TransactionType.LEVEL_BONUS,
    ]
    assert state.ledger.total_xp == 155


def test_streak_achievement_unlocks_on_seventh_day(
    started, habit_template_map, goal_template_map, achievement_definitions, today
):
    state, _ = started
    for offset in range(6):
        state, result = _complete(
            state, f"sleep-l1-{offset % 5 + 1}", today + timedelta(days=offset),
            habit_template_map, goal_template_map, achievement_definitions,
        )
        assert result.newly_unlocked_achievements == []

    state, result = _complete(
        state, "sleep-l1-2", today + timedelta(days=6),
        habit_template_map, goal_template_map, achievement_definitions,
    )

    assert result.current_streak == 7
    assert [a.id for a in result.newly_unlocked_achievements] == ["week_warrior"]
    assert "week_warrior" in state.unlocked_achievement_ids()
    assert TransactionType.ACHIEVEMENT_BONUS in [t.transaction_type for t in result.transactions]


# ============================================================================
# Summary Tests
# ============================================================================

def test_get_level_name():
    assert get_level_name(1) == "Foundation"
    assert get_level_name(4) == "Mastery"
    assert get_level_name(7) == "Level 7"


def test_daily_habits(started, habit_template_map, goal_template_map, today):
    state, _ = started
    state, _ = _complete(state, "sleep-l1-1", today, habit_template_map, goal_template_map)

    daily = get_daily_habits(state, habit_template_map, today)

    assert len(daily) == 5
    first = next(d for d in daily if d["habit_template"].id == "sleep-l1-1")
    assert first["today_completed"] is True
    assert first["can_complete_today"] is False
    assert first["streak_count"] == 1


def test_daily_habits_report_estimated_minutes(empty_state, goal_template, today, now):
    habits = [
        HabitTemplate(id="wind-down", goal_template_id=goal_template.id, title="Wind down", level=1,
                      estimated_duration=15),
        HabitTemplate(id="lights-out", goal_template_id=goal_template.id, title="Lights out", level=1,
                      order_index=1),
    ]
    state, _ = select_goal(empty_state, goal_template, habits, today, now)

    daily = get_daily_habits(state, {t.id: t for t in habits}, today)

    assert [d["estimated_minutes"] for d in daily] == [15, 0]


def test_daily_habits_without_goal(empty_state, habit_template_map, today):
    assert get_daily_habits(empty_state, habit_template_map, today) == []


def test_goal_progress_summary(started, goal_template, habit_template_map, goal_template_map, today):
    state, goal = started
    state, _ = _master(state, "sleep-l1-1", today, habit_template_map, goal_template_map)
    last_day = today + timedelta(days=4)

    progress = get_goal_progress(state, goal_template, last_day)

    assert progress["current_level"] == 1
    assert progress["total_levels"] == 2
    assert progress["overall_completion_percentage"] == 14
    assert progress["level_progress"][0]["completed_habits"] == 1
    assert progress["level_progress"][0]["completion_percentage"] == 20
    assert progress["level_progress"][0]["level_name"] == "Foundation"
    assert progress["level_progress"][1]["is_unlocked"] is False
    assert progress["days_active"] == 5
    assert progress["total_xp_earned"] == 50
    assert progress["current_streak"] == 5
    assert progress["best_habit_streak"] == 5
    assert progress["next_level_requirements"]["current_completions"] == 1
