"""
GamificationService - Progression Orchestration

Loads a user's state from the store, runs the pure progression engine and
commits the resulting state in one save.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from habit_journey import config
from habit_journey.exceptions import ConcurrentUpdateError, DuplicateCompletionError, RecordNotFoundError
from habit_journey.gamification import achievement_system, goal_insights, habit_progress, xp_system
from habit_journey.gamification.state_store import StateStore
from habit_journey.gamification.streak_system import calculate_streak_from_dates, get_effective_streak
from habit_journey.models.achievement import AchievementCatalog
from habit_journey.models.goal import GoalInstance, GoalTemplate, HabitTemplate, TimeCommitment
from habit_journey.models.recurrence import RecurrenceSpec
from habit_journey.models.state import CompletionCommand, CompletionResult, EngineState
from habit_journey.scheduling.recurrence import generate_recurrence_dates
from habit_journey.utils.datetime_helpers import now_utc, today_in_timezone

logger = logging.getLogger(__name__)


class GamificationService:
    """
    Service for habit progression features.

    Responsibilities:
    - Goal selection and lifecycle
    - Habit completion (XP, levels, streaks, level unlocks, achievements)
    - Read-side progress summaries and goal insights
    - Recurring task date expansion
    """

    def __init__(
        self,
        store: StateStore,
        goal_templates: List[GoalTemplate],
        habit_templates: List[HabitTemplate],
        catalog: Optional[AchievementCatalog] = None,
        timezone: Optional[str] = None,
    ):
        """
        Initialize GamificationService.

        Args:
            store: State store
            goal_templates: Goal template catalog
            habit_templates: Habit template catalog
            catalog: Achievement catalog (defaults to the configured one)
            timezone: IANA timezone used to decide "today"
        """
        self.store = store
        self.goal_templates = {t.id: t for t in goal_templates}
        self.habit_templates = {t.id: t for t in habit_templates}
        self.catalog = catalog or achievement_system.load_achievement_catalog()
        self.timezone = timezone
        # Serializes this instance's writes per user; the store's version check
        # covers other writers. A lock is dropped once nobody holds or awaits it.
        self._user_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)
        logger.debug(
            f"GamificationService initialized with {len(self.goal_templates)} goals, "
            f"{len(self.habit_templates)} habits, achievement catalog v{self.catalog.version}"
        )

    def _today(self) -> date:
        return today_in_timezone(self.timezone)

    def _goal_template(self, goal_template_id: str, user_id: str) -> GoalTemplate:
        template = self.goal_templates.get(goal_template_id)
        if template is None:
            raise RecordNotFoundError(
                f"Goal template {goal_template_id} not found",
                record_type="goal_template",
                record_id=goal_template_id,
                user_id=user_id,
            )
        return template

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if self._lock_users[user_id] == 0:
                del self._lock_users[user_id]
                del self._user_locks[user_id]

    async def _commit(
        self,
        user_id: str,
        apply: Callable[[EngineState], Tuple[EngineState, Any]],
    ) -> Any:
        """
        Load, apply and save a user's state as one unit

        `apply` runs against a freshly loaded state on every attempt. A save
        that loses a race with another writer (ConcurrentUpdateError) is
        retried up to STATE_SAVE_ATTEMPTS times.

        Returns:
            The second element returned by `apply`
        """
        async with self._user_lock(user_id):
            for attempt in range(1, config.STATE_SAVE_ATTEMPTS + 1):
                state = await self.store.get_state(user_id)
                new_state, result = apply(state)
                try:
                    await self.store.save_state(new_state)
                    return result
                except ConcurrentUpdateError:
                    if attempt == config.STATE_SAVE_ATTEMPTS:
                        raise
                    logger.info(
                        f"State for user {user_id} changed during update, retrying "
                        f"(attempt {attempt + 1}/{config.STATE_SAVE_ATTEMPTS})"
                    )

    # ============================================
    # Goal Lifecycle
    # ============================================

    async def select_goal(
        self,
        user_id: str,
        goal_template_id: str,
        time_commitment: TimeCommitment = TimeCommitment.MODERATE,
    ) -> GoalInstance:
        """Start a goal for the user, pausing any active one"""
        goal_template = self._goal_template(goal_template_id, user_id)
        return await self._commit(user_id, lambda state: habit_progress.select_goal(
            state,
            goal_template,
            list(self.habit_templates.values()),
            self._today(),
            now_utc(),
            time_commitment,
        ))

    async def switch_goal(self, user_id: str, goal_template_id: str, reason: Optional[str] = None) -> GoalInstance:
        """Pause the active goal and start another at moderate commitment"""
        goal_template = self._goal_template(goal_template_id, user_id)
        return await self._commit(user_id, lambda state: habit_progress.switch_goal(
            state,
            goal_template,
            list(self.habit_templates.values()),
            self._today(),
            now_utc(),
            reason,
        ))

    async def pause_goal(self, user_id: str, goal_id: Optional[UUID] = None) -> None:
        await self._commit(user_id, lambda state: (habit_progress.pause_goal(state, goal_id), None))

    async def resume_goal(self, user_id: str, goal_id: UUID) -> None:
        await self._commit(user_id, lambda state: (habit_progress.resume_goal(state, goal_id), None))

    async def complete_goal(self, user_id: str, goal_id: Optional[UUID] = None) -> Dict[str, Any]:
        """
        Complete a goal and unlock any achievements it earns

        Returns:
            {'goal': GoalInstance, 'achievements_unlocked': list, 'xp_awarded': int}
        """
        return await self._commit(user_id, lambda state: habit_progress.complete_goal(
            state,
            self.catalog.achievements,
            self._today(),
            now_utc(),
            goal_id,
        ))

    # ============================================
    # Habit Completion
    # ============================================

    async def process_habit_completion(
        self,
        command: CompletionCommand,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> CompletionResult:
        """
        Complete a habit and persist everything it triggers.

        A duplicate completion (including one that lands first from another
        writer) is reported as accepted=False; invalid-state errors propagate.

        Args:
            command: Completion command
            today: Calendar day of the completion (defaults to today)
            now: Completion timestamp (defaults to now, UTC)

        Returns:
            CompletionResult
        """
        today = today or self._today()
        now = now or now_utc()

        try:
            result = await self._commit(command.user_id, lambda state: habit_progress.complete_habit(
                state,
                command,
                self.habit_templates,
                self.goal_templates,
                self.catalog.achievements,
                today,
                now,
            ))
        except DuplicateCompletionError as e:
            logger.info(
                f"Rejected duplicate completion: user={command.user_id}, "
                f"habit={command.habit_template_id}, date={today}"
            )
            return CompletionResult(accepted=False, reason=e.user_message)

        logger.info(
            f"Habit completion processed: user={command.user_id}, xp={result.xp_awarded}, "
            f"streak={result.current_streak}, achievements={len(result.newly_unlocked_achievements)}, "
            f"unlocked_habits={len(result.newly_unlocked_habits)}"
        )
        return result

    # ============================================
    # Read Side
    # ============================================

    async def get_daily_habits(self, user_id: str, today: Optional[date] = None) -> List[Dict[str, Any]]:
        state = await self.store.get_state(user_id)
        return habit_progress.get_daily_habits(state, self.habit_templates, today or self._today())

    async def get_goal_progress(self, user_id: str, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
        """Progress summary for the active goal, or None without one"""
        state = await self.store.get_state(user_id)
        goal = state.active_goal()
        if goal is None:
            return None
        goal_template = self._goal_template(goal.goal_template_id, user_id)
        return habit_progress.get_goal_progress(state, goal_template, today or self._today())

    async def get_user_xp(self, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Get user's current XP, level and streak information

        Returns:
            {
                'user_id': str,
                'total_xp': int,
                'current_level': int,
                'xp_to_next_level': int,
                'xp_in_current_level': int,
                'level_progress': int,
                'current_streak': int,
                'best_streak': int,
                'daily_goal': dict
            }
        """
        today = today or self._today()
        state = await self.store.get_state(user_id)
        level_info = xp_system.calculate_level_from_xp(state.ledger.total_xp)

        return {
            "user_id": user_id,
            "total_xp": state.ledger.total_xp,
            "current_level": level_info["current_level"],
            "xp_to_next_level": level_info["xp_to_next_level"],
            "xp_in_current_level": level_info["xp_in_current_level"],
            "level_progress": level_info["level_progress"],
            "current_streak": get_effective_streak(state.ledger, today),
            "best_streak": state.ledger.best_streak,
            "daily_goal": xp_system.get_daily_goal_progress(state.ledger, state.transactions, today),
        }

    async def get_activity_streak(self, user_id: str, today: Optional[date] = None) -> int:
        """Consecutive active days ending today, rebuilt from completion history"""
        state = await self.store.get_state(user_id)
        return calculate_streak_from_dates(
            (c.completion_date for c in state.completions),
            today or self._today(),
        )

    async def update_daily_xp_goal(self, user_id: str, new_goal: int) -> None:
        def apply(state: EngineState) -> Tuple[EngineState, None]:
            state.ledger = xp_system.set_daily_xp_goal(state.ledger, new_goal)
            return state, None

        await self._commit(user_id, apply)

    async def get_user_achievements(self, user_id: str, include_locked: bool = False) -> Dict[str, Any]:
        state = await self.store.get_state(user_id)
        return achievement_system.get_user_achievements(
            self.catalog.achievements,
            state.achievements,
            habit_progress.build_achievement_stats(state),
            include_locked=include_locked,
        )

    # ============================================
    # Goal Insights
    # ============================================

    async def get_goal_stats(self, user_id: str, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
        """Pace statistics for the active goal, or None without one"""
        state = await self.store.get_state(user_id)
        goal = state.active_goal()
        if goal is None:
            return None
        goal_template = self._goal_template(goal.goal_template_id, user_id)
        return goal_insights.get_goal_stats(state, goal_template, today or self._today())

    async def get_completion_prediction(self, user_id: str, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
        today = today or self._today()
        stats = await self.get_goal_stats(user_id, today=today)
        if stats is None:
            return None
        return goal_insights.get_completion_prediction(stats, today)

    async def get_weekly_progress(self, user_id: str, today: Optional[date] = None) -> List[Dict[str, Any]]:
        state = await self.store.get_state(user_id)
        return goal_insights.get_weekly_progress(state, today or self._today())

    async def get_journey_stats(self, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        state = await self.store.get_state(user_id)
        return goal_insights.get_journey_stats(state, self.goal_templates, today or self._today())

    async def get_recommended_goals(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        state = await self.store.get_state(user_id)
        return goal_insights.get_recommended_goals(state, list(self.goal_templates.values()), limit)

    # ============================================
    # Scheduling
    # ============================================

    def generate_task_dates(self, spec: RecurrenceSpec) -> List[date]:
        """Dates on which recurring task instances should be created"""
        return generate_recurrence_dates(spec)
