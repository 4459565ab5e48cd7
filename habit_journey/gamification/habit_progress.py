"""
Habit Progress State Machine

Per-habit status moves strictly forward:

    locked --(goal reaches the habit's level)--> available
    available --(first completion)--> in_progress
    in_progress --(MASTERY_THRESHOLD completions)--> completed

A goal advances one level once LEVEL_UNLOCK_RATIO of the habits at its current
level are completed, which makes every habit at the new level available.

Every operation takes an EngineState and returns a new one; the input state is
never modified, so a failure part-way through leaves nothing half-applied.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from habit_journey import config
from habit_journey.exceptions import (
    DuplicateCompletionError,
    InvalidStateError,
    RecordNotFoundError,
    ValidationError,
)
from habit_journey.gamification.achievement_system import check_and_award_achievements
from habit_journey.gamification.streak_system import get_effective_streak
from habit_journey.gamification.xp_system import award_xp
from habit_journey.models.achievement import AchievementDefinition, AchievementStats
from habit_journey.models.goal import GoalInstance, GoalStatus, GoalTemplate, HabitTemplate, TimeCommitment
from habit_journey.models.habit import HabitCompletion, HabitProgress, HabitStatus
from habit_journey.models.state import CompletionCommand, CompletionResult, EngineState
from habit_journey.models.xp import TransactionType

logger = logging.getLogger(__name__)


def promote_status(record: HabitProgress, new_status: HabitStatus, now: datetime) -> None:
    """
    Move a progress record forward to `new_status`

    Re-applying the current status is a no-op.

    Raises:
        InvalidStateError: If the move would demote the record
    """
    if new_status.rank < record.status.rank:
        raise InvalidStateError(
            f"Cannot move habit {record.habit_template_id} from {record.status.value} back to {new_status.value}",
            record_type="habit_progress",
            record_id=str(record.id),
            status=record.status.value,
            user_id=record.user_id,
            operation="promote_status",
        )
    if new_status == record.status:
        return

    record.status = new_status
    if new_status == HabitStatus.AVAILABLE and record.unlocked_at is None:
        record.unlocked_at = now
    if new_status == HabitStatus.COMPLETED and record.mastered_at is None:
        record.mastered_at = now


def build_achievement_stats(state: EngineState) -> AchievementStats:
    return AchievementStats(
        habit_completions=len(state.completions),
        current_streak=state.ledger.current_streak,
        total_xp=state.ledger.total_xp,
        completed_goals=state.completed_goal_count(),
    )


# ============================================
# Goal Lifecycle
# ============================================

def select_goal(
    state: EngineState,
    goal_template: GoalTemplate,
    habit_templates: List[HabitTemplate],
    today: date,
    now: datetime,
    time_commitment: TimeCommitment = TimeCommitment.MODERATE,
) -> Tuple[EngineState, GoalInstance]:
    """
    Start a goal, pausing the currently active one

    Creates one progress record per habit template of the goal: level-1
    habits start available, everything else locked.

    Returns:
        (new_state, new goal instance)
    """
    templates = sorted(
        (t for t in habit_templates if t.goal_template_id == goal_template.id),
        key=lambda t: (t.level, t.order_index),
    )
    for template in templates:
        if template.level > goal_template.total_levels:
            raise ValidationError(
                message=f"Habit {template.id} is at level {template.level} but goal "
                        f"{goal_template.id} only has {goal_template.total_levels} levels",
                field="level",
                value=template.level,
                user_id=state.user_id,
                operation="select_goal",
            )

    working = state.model_copy(deep=True)

    current = working.active_goal()
    if current is not None:
        current.status = GoalStatus.PAUSED
        logger.info(f"Paused goal {current.id} ({current.goal_template_id}) for user {working.user_id}")

    goal = GoalInstance(
        user_id=working.user_id,
        goal_template_id=goal_template.id,
        status=GoalStatus.ACTIVE,
        current_level=1,
        start_date=today,
        time_commitment=time_commitment,
    )
    working.goals.append(goal)

    for template in templates:
        is_first_level = template.level == 1
        working.habit_progress.append(HabitProgress(
            user_id=working.user_id,
            goal_instance_id=goal.id,
            habit_template_id=template.id,
            level=template.level,
            status=HabitStatus.AVAILABLE if is_first_level else HabitStatus.LOCKED,
            unlocked_at=now if is_first_level else None,
        ))

    logger.info(
        f"User {working.user_id} started goal {goal_template.id} with {len(templates)} habits "
        f"({time_commitment.value} commitment)"
    )
    return working, goal


def require_goal(state: EngineState, goal_id: Optional[UUID], operation: str) -> GoalInstance:
    goal = state.find_goal(goal_id) if goal_id is not None else state.active_goal()
    if goal is None:
        raise RecordNotFoundError(
            "No matching goal" if goal_id else "No active goal",
            record_type="goal",
            record_id=str(goal_id) if goal_id else None,
            user_id=state.user_id,
            operation=operation,
        )
    return goal


def pause_goal(state: EngineState, goal_id: Optional[UUID] = None) -> EngineState:
    """Pause a goal (the active one by default)"""
    working = state.model_copy(deep=True)
    goal = require_goal(working, goal_id, "pause_goal")
    if goal.status != GoalStatus.ACTIVE:
        raise InvalidStateError(
            f"Only active goals can be paused; goal {goal.id} is {goal.status.value}",
            record_type="goal",
            record_id=str(goal.id),
            status=goal.status.value,
            user_id=working.user_id,
            operation="pause_goal",
        )
    goal.status = GoalStatus.PAUSED
    logger.info(f"Paused goal {goal.id} for user {working.user_id}")
    return working


def resume_goal(state: EngineState, goal_id: UUID) -> EngineState:
    """Resume a paused goal; no other goal may be active"""
    working = state.model_copy(deep=True)
    goal = require_goal(working, goal_id, "resume_goal")
    if goal.status != GoalStatus.PAUSED:
        raise InvalidStateError(
            f"Only paused goals can be resumed; goal {goal.id} is {goal.status.value}",
            record_type="goal",
            record_id=str(goal.id),
            status=goal.status.value,
            user_id=working.user_id,
            operation="resume_goal",
        )
    active = working.active_goal()
    if active is not None:
        raise InvalidStateError(
            f"Goal {active.id} is already active; pause it before resuming another",
            record_type="goal",
            record_id=str(active.id),
            status=active.status.value,
            user_id=working.user_id,
            operation="resume_goal",
        )
    goal.status = GoalStatus.ACTIVE
    logger.info(f"Resumed goal {goal.id} for user {working.user_id}")
    return working


def switch_goal(
    state: EngineState,
    goal_template: GoalTemplate,
    habit_templates: List[HabitTemplate],
    today: date,
    now: datetime,
    reason: Optional[str] = None,
) -> Tuple[EngineState, GoalInstance]:
    """Pause the active goal, if any, and start `goal_template` at moderate commitment"""
    if state.active_goal() is not None:
        state = pause_goal(state)
    logger.info(f"User {state.user_id} switching to goal {goal_template.id} (reason: {reason or 'none given'})")
    return select_goal(state, goal_template, habit_templates, today, now, TimeCommitment.MODERATE)


def complete_goal(
    state: EngineState,
    definitions: List[AchievementDefinition],
    today: date,
    now: datetime,
    goal_id: Optional[UUID] = None,
) -> Tuple[EngineState, Dict[str, Any]]:
    """
    Mark a goal completed (terminal) and evaluate achievements

    Returns:
        (new_state, {'goal': GoalInstance, 'achievements_unlocked': list, 'xp_awarded': int})
    """
    working = state.model_copy(deep=True)
    goal = require_goal(working, goal_id, "complete_goal")
    if goal.status == GoalStatus.COMPLETED:
        raise InvalidStateError(
            f"Goal {goal.id} is already completed",
            record_type="goal",
            record_id=str(goal.id),
            status=goal.status.value,
            user_id=working.user_id,
            operation="complete_goal",
        )
    goal.status = GoalStatus.COMPLETED
    goal.completion_date = today
    logger.info(f"User {working.user_id} completed goal {goal.id} ({goal.goal_template_id})")

    achievement_result = check_and_award_achievements(
        working.ledger,
        build_achievement_stats(working),
        definitions,
        working.achievements,
        today,
        now,
    )
    working.transactions.extend(achievement_result["transactions"])

    return working, {
        "goal": goal,
        "achievements_unlocked": achievement_result["unlocked"],
        "xp_awarded": achievement_result["xp_awarded"],
    }


# ============================================
# Level Unlocking
# ============================================

def _level_records(records: List[HabitProgress], level: int) -> List[HabitProgress]:
    return [r for r in records if r.level == level]


def can_unlock_next_level(goal: GoalInstance, records: List[HabitProgress]) -> bool:
    """Whether enough habits at the goal's current level are completed"""
    level_records = _level_records(records, goal.current_level)
    if not level_records:
        return False
    completed = sum(1 for r in level_records if r.status == HabitStatus.COMPLETED)
    return completed / len(level_records) >= config.LEVEL_UNLOCK_RATIO


def get_next_level_requirements(
    goal: GoalInstance,
    records: List[HabitProgress],
    goal_template: GoalTemplate,
) -> Optional[Dict[str, int]]:
    """
    Completions needed at the current level to open the next one

    Returns:
        {'level': int, 'required_completions': int, 'current_completions': int},
        or None at the final level
    """
    next_level = goal.current_level + 1
    if next_level > goal_template.total_levels:
        return None

    level_records = _level_records(records, goal.current_level)
    total = len(level_records)
    completed = sum(1 for r in level_records if r.status == HabitStatus.COMPLETED)
    # Smallest count that passes the same ratio test can_unlock_next_level applies
    required = next(
        (k for k in range(total + 1) if total and k / total >= config.LEVEL_UNLOCK_RATIO),
        0,
    )
    return {
        "level": next_level,
        "required_completions": required,
        "current_completions": completed,
    }


def check_level_unlock(
    goal: GoalInstance,
    records: List[HabitProgress],
    goal_template: GoalTemplate,
    now: datetime,
) -> List[HabitProgress]:
    """
    Advance the goal one level if the current level is 80% completed

    Updates `goal` and `records` in place. Habits at the new level that are
    already unlocked are left alone, so re-running is harmless.

    Returns:
        Records that moved from locked to available
    """
    next_level = goal.current_level + 1
    if next_level > goal_template.total_levels:
        return []
    if not can_unlock_next_level(goal, records):
        return []

    goal.current_level = next_level
    newly_unlocked = []
    for record in _level_records(records, next_level):
        if record.status == HabitStatus.LOCKED:
            promote_status(record, HabitStatus.AVAILABLE, now)
            newly_unlocked.append(record)

    logger.info(
        f"Goal {goal.id} advanced to level {next_level}; unlocked {len(newly_unlocked)} habits"
    )
    return newly_unlocked


# ============================================
# Habit Completion
# ============================================

def _find_progress_record(state: EngineState, habit_template_id: str) -> Tuple[HabitProgress, GoalInstance]:
    candidates = [p for p in state.habit_progress if p.habit_template_id == habit_template_id]
    if not candidates:
        raise InvalidStateError(
            f"No progress record for habit {habit_template_id}",
            record_type="habit_progress",
            record_id=habit_template_id,
            user_id=state.user_id,
            operation="complete_habit",
        )

    for record in candidates:
        goal = state.find_goal(record.goal_instance_id)
        if goal is not None and goal.status == GoalStatus.ACTIVE:
            return record, goal

    goal = state.find_goal(candidates[-1].goal_instance_id)
    raise InvalidStateError(
        f"Goal for habit {habit_template_id} is not active",
        record_type="goal",
        record_id=str(goal.id) if goal else None,
        status=goal.status.value if goal else None,
        user_id=state.user_id,
        operation="complete_habit",
    )


def complete_habit(
    state: EngineState,
    command: CompletionCommand,
    habit_templates: Mapping[str, HabitTemplate],
    goal_templates: Mapping[str, GoalTemplate],
    definitions: List[AchievementDefinition],
    today: date,
    now: datetime,
) -> Tuple[EngineState, CompletionResult]:
    """
    Complete a habit for `today`

    Flow: completion event -> habit progress -> XP (level bonuses, streak) ->
    goal level unlock -> achievements. The whole result is computed on a copy
    of `state` before anything is returned.

    Raises:
        DuplicateCompletionError: Habit already completed today
        InvalidStateError: No progress record, habit locked, goal not active,
            or command for a different user
        RecordNotFoundError: Habit or goal template missing from the catalog

    Returns:
        (new_state, CompletionResult)
    """
    habit_template_id = command.habit_template_id

    if command.user_id != state.user_id:
        raise InvalidStateError(
            f"Completion for user {command.user_id} applied to state of user {state.user_id}",
            record_type="user",
            record_id=command.user_id,
            user_id=state.user_id,
            operation="complete_habit",
        )

    if state.has_completion(habit_template_id, today):
        raise DuplicateCompletionError(
            habit_template_id=habit_template_id,
            completion_date=today,
            user_id=state.user_id,
            operation="complete_habit",
        )

    working = state.model_copy(deep=True)
    record, goal = _find_progress_record(working, habit_template_id)

    if record.status == HabitStatus.LOCKED:
        raise InvalidStateError(
            f"Habit {habit_template_id} is locked",
            record_type="habit_progress",
            record_id=str(record.id),
            status=record.status.value,
            user_id=working.user_id,
            operation="complete_habit",
        )

    habit_template = habit_templates.get(habit_template_id)
    if habit_template is None:
        raise RecordNotFoundError(
            f"Habit template {habit_template_id} not found",
            record_type="habit_template",
            record_id=habit_template_id,
            user_id=working.user_id,
            operation="complete_habit",
        )
    goal_template = goal_templates.get(goal.goal_template_id)
    if goal_template is None:
        raise RecordNotFoundError(
            f"Goal template {goal.goal_template_id} not found",
            record_type="goal_template",
            record_id=goal.goal_template_id,
            user_id=working.user_id,
            operation="complete_habit",
        )

    old_level = working.ledger.current_level
    old_goal_level = goal.current_level

    completion = HabitCompletion(
        user_id=working.user_id,
        habit_template_id=habit_template_id,
        habit_progress_id=record.id,
        completion_date=today,
        xp_earned=habit_template.xp_reward,
        rating=command.rating,
        notes=command.notes,
        elapsed_minutes=command.elapsed_minutes,
    )
    working.completions.append(completion)

    record.completed_count += 1
    record.current_streak += 1
    record.best_streak = max(record.best_streak, record.current_streak)
    record.total_xp_earned += habit_template.xp_reward
    record.last_completed_at = now
    if record.completed_count >= config.MASTERY_THRESHOLD:
        promote_status(record, HabitStatus.COMPLETED, now)
    else:
        promote_status(record, HabitStatus.IN_PROGRESS, now)

    xp_result = award_xp(
        working.ledger,
        habit_template.xp_reward,
        TransactionType.HABIT_COMPLETION,
        today,
        now,
        description=f"Completed habit: {habit_template.title}",
        habit_completion_id=completion.id,
    )
    transactions = list(xp_result["transactions"])

    unlocked_habits = check_level_unlock(goal, working.progress_for_goal(goal.id), goal_template, now)

    achievement_result = check_and_award_achievements(
        working.ledger,
        build_achievement_stats(working),
        definitions,
        working.achievements,
        today,
        now,
    )
    transactions.extend(achievement_result["transactions"])
    working.transactions.extend(transactions)

    leveled_up = working.ledger.current_level > old_level
    result = CompletionResult(
        accepted=True,
        xp_awarded=sum(t.xp_amount for t in transactions),
        leveled_up=leveled_up,
        new_level=working.ledger.current_level if leveled_up else None,
        current_streak=working.ledger.current_streak,
        goal_level=goal.current_level,
        goal_level_advanced=goal.current_level > old_goal_level,
        newly_unlocked_achievements=achievement_result["unlocked"],
        newly_unlocked_habits=[r.habit_template_id for r in unlocked_habits],
        transactions=transactions,
    )

    logger.info(
        f"User {working.user_id} completed habit {habit_template_id}: "
        f"+{result.xp_awarded} XP, count={record.completed_count}, status={record.status.value}"
    )
    return working, result


# ============================================
# Read-side Summaries
# ============================================

def get_level_name(level: int) -> str:
    return config.LEVEL_NAMES.get(level, f"Level {level}")


def get_daily_habits(state: EngineState, habit_templates: Mapping[str, HabitTemplate], today: date) -> List[Dict[str, Any]]:
    """
    Habits of the active goal that can be worked on, with today's status

    Returns:
        [{'habit_template', 'progress', 'today_completed', 'can_complete_today',
          'streak_count', 'estimated_minutes'}]
    """
    goal = state.active_goal()
    if goal is None:
        return []

    daily = []
    for record in state.progress_for_goal(goal.id):
        if record.status not in (HabitStatus.AVAILABLE, HabitStatus.IN_PROGRESS):
            continue
        done_today = state.has_completion(record.habit_template_id, today)
        template = habit_templates.get(record.habit_template_id)
        daily.append({
            "habit_template": template,
            "progress": record,
            "today_completed": done_today,
            "can_complete_today": not done_today,
            "streak_count": record.current_streak,
            "estimated_minutes": (template.estimated_duration or 0) if template else 0,
        })
    return daily


def _percentage(part: int, whole: int) -> int:
    return int(part * 100 / whole + 0.5) if whole > 0 else 0


def get_goal_progress(
    state: EngineState,
    goal_template: GoalTemplate,
    today: date,
    goal_id: Optional[UUID] = None,
) -> Dict[str, Any]:
    """
    Progress summary for a goal (the active one by default)

    Returns:
        {
            'goal': GoalInstance,
            'current_level': int,
            'total_levels': int,
            'overall_completion_percentage': int,
            'level_progress': [per-level breakdown],
            'days_active': int,
            'total_xp_earned': int,
            'current_streak': int,
            'best_habit_streak': int,
            'next_level_requirements': dict | None
        }
    """
    goal = require_goal(state, goal_id, "get_goal_progress")
    records = state.progress_for_goal(goal.id)

    level_progress = []
    for level in range(1, goal_template.total_levels + 1):
        level_records = _level_records(records, level)
        completed = sum(1 for r in level_records if r.status == HabitStatus.COMPLETED)
        level_progress.append({
            "level": level,
            "level_name": get_level_name(level),
            "habit_template_ids": [r.habit_template_id for r in level_records],
            "completed_habits": completed,
            "total_habits": len(level_records),
            "completion_percentage": _percentage(completed, len(level_records)),
            "is_unlocked": level <= goal.current_level,
        })

    completed_total = sum(1 for r in records if r.status == HabitStatus.COMPLETED)
    return {
        "goal": goal,
        "current_level": goal.current_level,
        "total_levels": goal_template.total_levels,
        "overall_completion_percentage": _percentage(completed_total, len(records)),
        "level_progress": level_progress,
        "days_active": (today - goal.start_date).days + 1,
        "total_xp_earned": sum(r.total_xp_earned for r in records),
        "current_streak": get_effective_streak(state.ledger, today),
        "best_habit_streak": max((r.best_streak for r in records), default=0),
        "next_level_requirements": get_next_level_requirements(goal, records, goal_template),
    }
