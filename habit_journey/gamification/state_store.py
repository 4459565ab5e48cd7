"""
In-memory engine state store

Holds one EngineState per user and guards every save with two checks:
- optimistic concurrency: a save must carry the version it was read at; a save
  based on a stale read is rejected with ConcurrentUpdateError
- at most one completion per (user, habit, day), rejected with
  DuplicateCompletionError

The stored version is bumped on every successful save.
"""

import asyncio
import logging
from typing import Dict, Tuple
from datetime import date
from uuid import UUID

from habit_journey.exceptions import ConcurrentUpdateError, DuplicateCompletionError
from habit_journey.models.state import EngineState

logger = logging.getLogger(__name__)


class StateStore:
    """In-memory store for per-user engine state"""

    def __init__(self):
        self._states: Dict[str, EngineState] = {}
        # Lives as long as the stored states it indexes; nothing is ever evicted
        self._completion_keys: Dict[Tuple[str, str, date], UUID] = {}
        self._write_lock = asyncio.Lock()

    async def get_state(self, user_id: str) -> EngineState:
        """Get a user's state (a fresh one at version 0 on first use)"""
        state = self._states.get(user_id)
        if state is None:
            logger.debug(f"No stored state for user {user_id}, starting fresh")
            return EngineState.new(user_id)
        return state.model_copy(deep=True)

    async def save_state(self, state: EngineState) -> EngineState:
        """
        Commit a user's state in one step

        Returns:
            The stored state, at its new version

        Raises:
            ConcurrentUpdateError: If the state was saved by someone else since
                `state` was read
            DuplicateCompletionError: If a completion collides with one already
                stored for the same user, habit and day
        """
        async with self._write_lock:
            stored = self._states.get(state.user_id)
            stored_version = stored.version if stored is not None else 0
            if state.version != stored_version:
                raise ConcurrentUpdateError(
                    f"State for user {state.user_id} is at version {stored_version}, "
                    f"save was based on version {state.version}",
                    expected_version=state.version,
                    stored_version=stored_version,
                    user_id=state.user_id,
                    operation="save_state",
                )

            for completion in state.completions:
                existing = self._completion_keys.get(completion.key)
                if existing is not None and existing != completion.id:
                    raise DuplicateCompletionError(
                        habit_template_id=completion.habit_template_id,
                        completion_date=completion.completion_date,
                        user_id=state.user_id,
                        operation="save_state",
                    )

            for completion in state.completions:
                self._completion_keys[completion.key] = completion.id
            saved = state.model_copy(update={"version": stored_version + 1}, deep=True)
            self._states[state.user_id] = saved
            logger.debug(
                f"Saved state for user {state.user_id} at version {saved.version} "
                f"({len(state.completions)} completions)"
            )
            return saved.model_copy(deep=True)
