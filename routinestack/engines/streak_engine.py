"""Streak Engine - Completion ledger and streak rules for actions, stacks and routines.

Streaks count consecutive on-schedule completions at three levels. This
module owns:
- CompletionLedger: last completion date per (ownerId, itemId)
- Tracking policy (which items build streaks at all)
- Per-item rules: apply_completion / apply_skip / apply_routine_completion
- Aggregate entry points used by the coordinator: complete_action,
  skip_action, reset_completed_items

Ledger keys:
    action   → (stackId, actionId)
    stack    → (routineId or "library", stackId)
    routine  → ("routines", routineId)

Completing an action on a day it is not due is allowed, but earns no streak
credit at any level.
"""

from __future__ import annotations

import copy
from datetime import date
from typing import TYPE_CHECKING

from .. import const
from ..type_defs import LedgerEntry, RoutineParent
from ..utils.dt_utils import dt_parse_date
from .aggregate_engine import find_routine_index, find_stack_index, stack_container
from .schedule_engine import ScheduleEngine
from .stack_engine import StackEngine

if TYPE_CHECKING:
    from ..type_defs import HabitData, Parent, RoutineData, StackData


# ==============================================================================
# Completion Ledger
# ==============================================================================


class CompletionLedger:
    """Last-completed date per (owner id, item id).

    A completion is credited at most once per calendar date: the streak
    rules check `completed_on()` before incrementing and `record()` after.
    """

    def __init__(self, entries: dict[tuple[str, str], date] | None = None) -> None:
        self._entries: dict[tuple[str, str], date] = dict(entries or {})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompletionLedger):
            return NotImplemented
        return self._entries == other._entries

    def record(self, owner_id: str, item_id: str, day: date) -> None:
        """Mark the item as completed on `day`."""
        self._entries[(owner_id, item_id)] = day

    def last_completed(self, owner_id: str, item_id: str) -> date | None:
        """Return the last recorded completion date, if any."""
        return self._entries.get((owner_id, item_id))

    def completed_on(self, owner_id: str, item_id: str, day: date) -> bool:
        """Check if the item was already credited on `day`."""
        return self._entries.get((owner_id, item_id)) == day

    def prune(self, keep_from: date) -> int:
        """Drop entries older than `keep_from`. Returns how many were removed."""
        stale = [key for key, day in self._entries.items() if day < keep_from]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def copy(self) -> CompletionLedger:
        """Return an independent copy."""
        return CompletionLedger(self._entries)

    @classmethod
    def from_entries(cls, entries: list[LedgerEntry]) -> CompletionLedger:
        """Build a ledger from persisted rows; unparseable dates are skipped."""
        ledger = cls()
        for entry in entries:
            day = dt_parse_date(entry.get(const.DATA_LEDGER_DATE))
            if day is None:
                continue
            ledger.record(
                entry[const.DATA_LEDGER_OWNER_ID],
                entry[const.DATA_LEDGER_ITEM_ID],
                day,
            )
        return ledger

    @classmethod
    def from_data(cls, data: HabitData) -> CompletionLedger:
        """Read the ledger stored in a snapshot's meta."""
        return cls.from_entries(
            data[const.DATA_META].get(const.DATA_META_COMPLETION_LEDGER, [])
        )

    def to_entries(self) -> list[LedgerEntry]:
        """Serialize to persisted rows, sorted for stable output."""
        return [
            LedgerEntry(ownerId=owner, itemId=item, date=day.isoformat())
            for (owner, item), day in sorted(self._entries.items())
        ]

    def write_to(self, data: HabitData) -> None:
        """Store the ledger into a snapshot's meta (in place)."""
        data[const.DATA_META][const.DATA_META_COMPLETION_LEDGER] = self.to_entries()


# ==============================================================================
# Streak Engine
# ==============================================================================


class StreakEngine:
    """Pure logic engine for streak bookkeeping.

    All methods are static. Per-item rules update the `ledger` argument in
    place; aggregate entry points work on a deep copy of the snapshot and
    its ledger.
    """

    # =========================================================================
    # TRACKING POLICY
    # =========================================================================

    @staticmethod
    def should_track_streak(item: StackData | RoutineData) -> bool:
        """Check if an item builds streaks at all.

        Never for items that are not schedulable, or whose schedule type is
        unset, none or oneTime.
        """
        if item.get(const.DATA_STACK_IS_SCHEDULABLE) is False:
            return False
        schedule_type = item.get(const.DATA_STACK_SCHEDULE_TYPE)
        if not schedule_type:
            return False
        return schedule_type not in const.NON_STREAK_SCHEDULE_TYPES

    @staticmethod
    def earns_credit(stack: StackData, today: date) -> bool:
        """Tracking stack that is due today."""
        return StreakEngine.should_track_streak(stack) and ScheduleEngine.is_due(
            stack, today
        )

    # =========================================================================
    # PER-ITEM RULES
    # =========================================================================

    @staticmethod
    def apply_completion(
        stack: StackData,
        action_id: str,
        today: date,
        ledger: CompletionLedger,
        owner_id: str = const.LIBRARY_ID,
    ) -> StackData:
        """Complete one action and settle the action and stack streaks.

        - Action streak +1 once per date, only when the stack earns credit.
        - Stack streak +1 once per date, the first time every action is
          completed (none skipped) while the stack earns credit.
        - A due stack that ends up handled but not fully completed has its
          streak reset.
        """
        index = StackEngine.find_action_index(stack, action_id)
        if index == -1:
            const.LOGGER.warning(
                "Cannot complete action %s - not found in stack %s",
                action_id,
                stack.get(const.DATA_STACK_ID),
            )
            return stack

        stack_id = stack[const.DATA_STACK_ID]
        credit = StreakEngine.earns_credit(stack, today)
        updated = copy.deepcopy(stack)
        actions = updated[const.DATA_STACK_ACTIONS]

        action = StackEngine.mark_completed(actions[index])
        if credit and not ledger.completed_on(stack_id, action_id, today):
            action[const.DATA_ACTION_STREAK] += 1
            const.LOGGER.debug(
                "Action '%s' streak -> %d",
                action[const.DATA_ACTION_TEXT],
                action[const.DATA_ACTION_STREAK],
            )
        ledger.record(stack_id, action_id, today)
        actions[index] = action

        if not StackEngine.is_stack_completed(updated):
            return updated

        if StackEngine.is_stack_fully_completed(updated):
            if credit and not ledger.completed_on(owner_id, stack_id, today):
                updated[const.DATA_STACK_STREAK] += 1
                ledger.record(owner_id, stack_id, today)
                const.LOGGER.debug(
                    "Stack '%s' streak -> %d",
                    updated[const.DATA_STACK_TITLE],
                    updated[const.DATA_STACK_STREAK],
                )
        elif ScheduleEngine.is_due(updated, today):
            updated[const.DATA_STACK_STREAK] = const.DEFAULT_STREAK
        return updated

    @staticmethod
    def apply_skip(stack: StackData, action_id: str) -> StackData:
        """Skip one action: its streak and the stack streak drop to 0."""
        index = StackEngine.find_action_index(stack, action_id)
        if index == -1:
            const.LOGGER.warning(
                "Cannot skip action %s - not found in stack %s",
                action_id,
                stack.get(const.DATA_STACK_ID),
            )
            return stack

        updated = copy.deepcopy(stack)
        actions = updated[const.DATA_STACK_ACTIONS]
        actions[index] = StackEngine.mark_skipped(actions[index])
        updated[const.DATA_STACK_STREAK] = const.DEFAULT_STREAK
        const.LOGGER.debug(
            "Skipped '%s' in stack '%s', streaks reset",
            actions[index][const.DATA_ACTION_TEXT],
            updated[const.DATA_STACK_TITLE],
        )
        return updated

    @staticmethod
    def apply_routine_completion(
        routine: RoutineData, today: date, ledger: CompletionLedger
    ) -> RoutineData:
        """Credit the routine once per date when every due stack is fully completed.

        A routine with no stacks due today cannot complete. On completion all
        of its stacks collapse. Only a routine with at least one due tracking
        stack builds a streak.
        """
        if not StackEngine.is_routine_fully_completed(routine, today):
            return routine

        routine_id = routine[const.DATA_ROUTINE_ID]
        updated = StackEngine.collapse_all_stacks(routine)
        tracked = any(
            StreakEngine.earns_credit(stack, today)
            for stack in routine[const.DATA_ROUTINE_STACKS]
        )
        if tracked and not ledger.completed_on(
            const.LEDGER_OWNER_ROUTINES, routine_id, today
        ):
            updated[const.DATA_ROUTINE_STREAK] = (
                routine.get(const.DATA_ROUTINE_STREAK, 0) + 1
            )
            ledger.record(const.LEDGER_OWNER_ROUTINES, routine_id, today)
            const.LOGGER.debug(
                "Routine '%s' completed, streak -> %d",
                routine[const.DATA_ROUTINE_TITLE],
                updated[const.DATA_ROUTINE_STREAK],
            )
        return updated

    # =========================================================================
    # AGGREGATE ENTRY POINTS
    # =========================================================================

    @staticmethod
    def complete_action(
        data: HabitData, parent: Parent, stack_id: str, action_id: str, today: date
    ) -> HabitData:
        """Complete an action inside the aggregate and settle every streak.

        For routine-held stacks, a stack that becomes fully handled collapses
        and the next due stack in routine order expands. A routine whose due
        stacks are all fully completed collapses, and is credited when one of
        them tracks streaks.
        """
        updated = copy.deepcopy(data)
        stacks = stack_container(updated, parent)
        index = -1 if stacks is None else find_stack_index(stacks, stack_id)
        if stacks is None or index == -1:
            const.LOGGER.warning(
                "Cannot complete action in stack %s - not found under %s",
                stack_id,
                parent.owner_id,
            )
            return data
        if StackEngine.find_action_index(stacks[index], action_id) == -1:
            const.LOGGER.warning(
                "Cannot complete action %s - not found in stack %s",
                action_id,
                stack_id,
            )
            return data

        ledger = CompletionLedger.from_data(updated)
        stack = StreakEngine.apply_completion(
            stacks[index], action_id, today, ledger, parent.owner_id
        )
        stacks[index] = stack

        if isinstance(parent, RoutineParent) and StackEngine.is_stack_completed(stack):
            routine_index = find_routine_index(updated, parent.routine_id)
            routine = StackEngine.advance_after_stack_handled(
                updated[const.DATA_ROUTINES][routine_index], stack_id, today
            )
            if StackEngine.is_stack_fully_completed(stack):
                routine = StreakEngine.apply_routine_completion(routine, today, ledger)
            updated[const.DATA_ROUTINES][routine_index] = routine

        ledger.write_to(updated)
        return updated

    @staticmethod
    def skip_action(
        data: HabitData, parent: Parent, stack_id: str, action_id: str
    ) -> HabitData:
        """Skip an action; the action, stack and owning routine streaks reset."""
        updated = copy.deepcopy(data)
        stacks = stack_container(updated, parent)
        index = -1 if stacks is None else find_stack_index(stacks, stack_id)
        if stacks is None or index == -1:
            const.LOGGER.warning(
                "Cannot skip action in stack %s - not found under %s",
                stack_id,
                parent.owner_id,
            )
            return data
        if StackEngine.find_action_index(stacks[index], action_id) == -1:
            const.LOGGER.warning(
                "Cannot skip action %s - not found in stack %s", action_id, stack_id
            )
            return data

        stacks[index] = StreakEngine.apply_skip(stacks[index], action_id)
        if isinstance(parent, RoutineParent):
            routine_index = find_routine_index(updated, parent.routine_id)
            updated[const.DATA_ROUTINES][routine_index][const.DATA_ROUTINE_STREAK] = (
                const.DEFAULT_STREAK
            )
        return updated

    # =========================================================================
    # END OF DAY
    # =========================================================================

    @staticmethod
    def _reset_stack(
        stack: StackData, day: date, ledger: CompletionLedger, owner_id: str
    ) -> StackData:
        """Clear flags and zero the streaks that were missed on `day`."""
        due = ScheduleEngine.is_due(stack, day)
        missed = (
            due
            and StreakEngine.should_track_streak(stack)
            and not StackEngine.is_stack_fully_completed(stack)
            and not ledger.completed_on(owner_id, stack[const.DATA_STACK_ID], day)
        )
        updated = copy.deepcopy(stack)
        if missed:
            updated[const.DATA_STACK_STREAK] = const.DEFAULT_STREAK
        updated[const.DATA_STACK_ACTIONS] = [
            StackEngine.mark_pending(
                {**action, const.DATA_ACTION_STREAK: const.DEFAULT_STREAK}
                if action.get(const.DATA_ACTION_SKIPPED)
                or (due and not action.get(const.DATA_ACTION_COMPLETED))
                else action
            )
            for action in stack[const.DATA_STACK_ACTIONS]
        ]
        return updated

    @staticmethod
    def reset_completed_items(data: HabitData, day: date) -> HabitData:
        """End-of-day reset for the day that is ending.

        - Every action of every routine and library stack goes back to pending.
        - An action streak is zeroed if it was skipped, or its stack was due
          and it was not completed.
        - A tracking stack due on `day` that was not fully completed (and not
          credited in the ledger) loses its streak.
        - A routine loses its streak when one of its due tracking stacks was
          not fully completed, unless it was credited on `day`.
        - Ledger entries older than `day` are pruned.
        """
        updated = copy.deepcopy(data)
        ledger = CompletionLedger.from_data(updated)

        for routine in updated[const.DATA_ROUTINES]:
            routine_id = routine[const.DATA_ROUTINE_ID]
            missed_stack = any(
                StreakEngine.earns_credit(stack, day)
                and not StackEngine.is_stack_fully_completed(stack)
                for stack in routine[const.DATA_ROUTINE_STACKS]
            )
            if missed_stack and not ledger.completed_on(
                const.LEDGER_OWNER_ROUTINES, routine_id, day
            ):
                routine[const.DATA_ROUTINE_STREAK] = const.DEFAULT_STREAK
            routine[const.DATA_ROUTINE_STACKS] = [
                StreakEngine._reset_stack(stack, day, ledger, routine_id)
                for stack in routine[const.DATA_ROUTINE_STACKS]
            ]

        updated[const.DATA_UNSCHEDULED_STACKS] = [
            StreakEngine._reset_stack(stack, day, ledger, const.LIBRARY_ID)
            for stack in updated[const.DATA_UNSCHEDULED_STACKS]
        ]

        pruned = ledger.prune(day)
        ledger.write_to(updated)
        const.LOGGER.debug(
            "End-of-day reset for %s done, %d ledger entries pruned", day, pruned
        )
        return updated
