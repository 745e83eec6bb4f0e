"""Stack Engine - Pure logic for action state transitions and stack/routine status.

This engine provides stateless, pure Python functions for:
- Action state derivation and transition validation
- Action transitions (complete, skip, bulk reset)
- Derived stack/routine completion and progress queries
- Auto-collapse/expand of the next stack in routine order

Action states are derived from two flags: `completed` and `skipped` are
mutually exclusive, and both False means pending. Completing a skipped action
goes straight to completed ("undo via redo").

Every mutator returns new dicts; inputs are never modified.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from .. import const
from .schedule_engine import ScheduleEngine

if TYPE_CHECKING:
    from ..type_defs import ActionData, RoutineData, StackData


class StackEngine:
    """Pure logic engine for action/stack/routine state.

    All methods are static - no instance state.
    """

    # Valid state transitions matrix
    VALID_TRANSITIONS: dict[str, list[str]] = {
        const.ACTION_STATE_PENDING: [
            const.ACTION_STATE_COMPLETED,
            const.ACTION_STATE_SKIPPED,
        ],
        # Completed → pending only by bulk reset; → skipped by the skip operation
        const.ACTION_STATE_COMPLETED: [
            const.ACTION_STATE_PENDING,
            const.ACTION_STATE_SKIPPED,
        ],
        # Skipped → completed is "undo via redo"
        const.ACTION_STATE_SKIPPED: [
            const.ACTION_STATE_PENDING,
            const.ACTION_STATE_COMPLETED,
        ],
    }

    # =========================================================================
    # ACTION STATE
    # =========================================================================

    @staticmethod
    def get_action_state(action: ActionData) -> str:
        """Derive the action state from its completed/skipped flags."""
        if action.get(const.DATA_ACTION_COMPLETED):
            return const.ACTION_STATE_COMPLETED
        if action.get(const.DATA_ACTION_SKIPPED):
            return const.ACTION_STATE_SKIPPED
        return const.ACTION_STATE_PENDING

    @staticmethod
    def can_transition(current_state: str, target_state: str) -> bool:
        """Validate if a state transition is allowed.

        Args:
            current_state: Current action state
            target_state: Desired new state

        Returns:
            True if transition is valid, False otherwise
        """
        return target_state in StackEngine.VALID_TRANSITIONS.get(current_state, [])

    @staticmethod
    def mark_completed(action: ActionData) -> ActionData:
        """Return the action in the completed state (streak untouched)."""
        updated = dict(action)
        updated[const.DATA_ACTION_COMPLETED] = True
        updated[const.DATA_ACTION_SKIPPED] = False
        return updated  # type: ignore[return-value]

    @staticmethod
    def mark_skipped(action: ActionData) -> ActionData:
        """Return the action in the skipped state with its streak broken."""
        updated = dict(action)
        updated[const.DATA_ACTION_COMPLETED] = False
        updated[const.DATA_ACTION_SKIPPED] = True
        updated[const.DATA_ACTION_STREAK] = const.DEFAULT_STREAK
        return updated  # type: ignore[return-value]

    @staticmethod
    def mark_pending(action: ActionData) -> ActionData:
        """Return the action back in the pending state (bulk reset only)."""
        updated = dict(action)
        updated[const.DATA_ACTION_COMPLETED] = False
        updated[const.DATA_ACTION_SKIPPED] = False
        return updated  # type: ignore[return-value]

    # =========================================================================
    # STACK QUERIES
    # =========================================================================

    @staticmethod
    def find_action_index(stack: StackData, action_id: str) -> int:
        """Return the index of an action in a stack, or -1."""
        for index, action in enumerate(stack.get(const.DATA_STACK_ACTIONS, [])):
            if action.get(const.DATA_ACTION_ID) == action_id:
                return index
        return -1

    @staticmethod
    def is_stack_completed(stack: StackData) -> bool:
        """All actions handled (completed OR skipped); empty stacks never are.

        This is the UI/progress notion of done. Streaks use
        is_stack_fully_completed() instead.
        """
        actions = stack.get(const.DATA_STACK_ACTIONS) or []
        return len(actions) > 0 and all(
            a.get(const.DATA_ACTION_COMPLETED) or a.get(const.DATA_ACTION_SKIPPED)
            for a in actions
        )

    @staticmethod
    def is_stack_fully_completed(stack: StackData) -> bool:
        """All actions completed (none skipped); empty stacks never are."""
        actions = stack.get(const.DATA_STACK_ACTIONS) or []
        return len(actions) > 0 and all(
            a.get(const.DATA_ACTION_COMPLETED) for a in actions
        )

    @staticmethod
    def get_stack_progress(stack: StackData) -> float:
        """Fraction (0..1) of actions completed or skipped."""
        actions = stack.get(const.DATA_STACK_ACTIONS) or []
        if not actions:
            return 0.0
        handled = sum(
            1
            for a in actions
            if a.get(const.DATA_ACTION_COMPLETED) or a.get(const.DATA_ACTION_SKIPPED)
        )
        return handled / len(actions)

    # =========================================================================
    # ROUTINE QUERIES
    # =========================================================================

    @staticmethod
    def get_todays_stacks(routine: RoutineData, target: date) -> list[StackData]:
        """Stacks of a routine that are due on the target date."""
        return ScheduleEngine.stacks_for_date(
            routine.get(const.DATA_ROUTINE_STACKS, []), target
        )

    @staticmethod
    def is_routine_completed(routine: RoutineData, target: date) -> bool:
        """Every due stack is handled; no due stacks means never completed."""
        todays = StackEngine.get_todays_stacks(routine, target)
        return len(todays) > 0 and all(
            StackEngine.is_stack_completed(s) for s in todays
        )

    @staticmethod
    def is_routine_fully_completed(routine: RoutineData, target: date) -> bool:
        """Every due stack has all actions completed (streak-grade completion)."""
        todays = StackEngine.get_todays_stacks(routine, target)
        return len(todays) > 0 and all(
            StackEngine.is_stack_fully_completed(s) for s in todays
        )

    # =========================================================================
    # EXPAND / COLLAPSE
    # =========================================================================

    @staticmethod
    def advance_after_stack_handled(
        routine: RoutineData, stack_id: str, target: date
    ) -> RoutineData:
        """Collapse the finished stack and expand the next one if it is due.

        The next stack (routine order) stays collapsed when it is not due on
        the target date.
        """
        stacks = [dict(s) for s in routine.get(const.DATA_ROUTINE_STACKS, [])]
        index = next(
            (i for i, s in enumerate(stacks) if s.get(const.DATA_STACK_ID) == stack_id),
            -1,
        )
        if index == -1:
            return routine

        stacks[index][const.DATA_STACK_IS_EXPANDED] = False
        if index + 1 < len(stacks):
            next_stack = stacks[index + 1]
            if ScheduleEngine.is_due(next_stack, target):
                next_stack[const.DATA_STACK_IS_EXPANDED] = True
                const.LOGGER.debug(
                    "Auto-expanded stack '%s' after '%s'",
                    next_stack.get(const.DATA_STACK_TITLE),
                    stacks[index].get(const.DATA_STACK_TITLE),
                )

        updated = dict(routine)
        updated[const.DATA_ROUTINE_STACKS] = stacks
        return updated  # type: ignore[return-value]

    @staticmethod
    def toggle_stack_expand(routine: RoutineData, stack_id: str) -> RoutineData:
        """Flip isExpanded on one stack of a routine."""
        updated = dict(routine)
        updated[const.DATA_ROUTINE_STACKS] = [
            {**s, const.DATA_STACK_IS_EXPANDED: not s.get(const.DATA_STACK_IS_EXPANDED)}
            if s.get(const.DATA_STACK_ID) == stack_id
            else s
            for s in routine.get(const.DATA_ROUTINE_STACKS, [])
        ]
        return updated  # type: ignore[return-value]

    @staticmethod
    def collapse_all_stacks(routine: RoutineData) -> RoutineData:
        """Collapse every stack of a routine."""
        updated = dict(routine)
        updated[const.DATA_ROUTINE_STACKS] = [
            {**s, const.DATA_STACK_IS_EXPANDED: False}
            for s in routine.get(const.DATA_ROUTINE_STACKS, [])
        ]
        return updated  # type: ignore[return-value]
