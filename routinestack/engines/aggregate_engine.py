"""Aggregate Engine - Pure CRUD, reorder and reassignment over a HabitData snapshot.

The aggregate holds two ordered collections: `routines` and the unscheduled
library (`unscheduledStacks`). A stack belongs to exactly one parent at a
time; reassignment is a move, never a copy.

Every operation deep-copies the input snapshot and returns a new one. Unknown
routine/stack/action ids and out-of-range indexes are a no-op with a WARNING
log: the returned snapshot equals the input.

The "library" id is a sentinel for external callers only. Inside the engine
the parent of a stack is a `Parent` (LibraryParent | RoutineParent), and no
routine may ever use the library id.
"""

from __future__ import annotations

import copy
from datetime import date
from typing import TYPE_CHECKING, Any
import uuid

from .. import const
from ..data_builders import (
    EntityValidationError,
    build_action,
    build_schedule_fields,
    normalize_actions,
    reset_stack_streaks,
)
from ..type_defs import LIBRARY, LibraryParent, RoutineParent
from .stack_engine import StackEngine

if TYPE_CHECKING:
    from ..type_defs import (
        HabitData,
        Parent,
        RoutineData,
        ScheduleOptions,
        StackData,
    )


# ==============================================================================
# Module helpers (shared with the streak engine)
# ==============================================================================


def find_routine_index(data: HabitData, routine_id: str) -> int:
    """Return the index of a routine in the snapshot, or -1."""
    for index, routine in enumerate(data[const.DATA_ROUTINES]):
        if routine[const.DATA_ROUTINE_ID] == routine_id:
            return index
    return -1


def stack_container(data: HabitData, parent: Parent) -> list[StackData] | None:
    """Return the live stack list of a parent inside `data`, or None.

    The list is the one stored in `data`; callers working on a copy may
    mutate it in place.
    """
    if isinstance(parent, LibraryParent):
        return data[const.DATA_UNSCHEDULED_STACKS]
    index = find_routine_index(data, parent.routine_id)
    if index == -1:
        return None
    return data[const.DATA_ROUTINES][index][const.DATA_ROUTINE_STACKS]


def find_stack_index(stacks: list[StackData], stack_id: str) -> int:
    """Return the index of a stack in a stack list, or -1."""
    for index, stack in enumerate(stacks):
        if stack[const.DATA_STACK_ID] == stack_id:
            return index
    return -1


def _move(items: list[Any], source: int, target: int) -> bool:
    """Stable remove-then-insert move. Returns False if an index is out of range."""
    if not (0 <= source < len(items) and 0 <= target < len(items)):
        return False
    moved = items.pop(source)
    items.insert(target, moved)
    return True


def _forget_stack_credits(data: HabitData, source: Parent, stack_id: str) -> None:
    """Drop ledger rows for a stack's actions and its old placement (in place)."""
    meta = data[const.DATA_META]
    entries = meta.get(const.DATA_META_COMPLETION_LEDGER, [])
    meta[const.DATA_META_COMPLETION_LEDGER] = [
        entry
        for entry in entries
        if entry.get(const.DATA_LEDGER_OWNER_ID) != stack_id
        and (
            entry.get(const.DATA_LEDGER_OWNER_ID) != source.owner_id
            or entry.get(const.DATA_LEDGER_ITEM_ID) != stack_id
        )
    ]


class AggregateEngine:
    """Pure logic engine for the routine/stack aggregate.

    All methods are static - no instance state.
    """

    # =========================================================================
    # QUERIES
    # =========================================================================

    @staticmethod
    def get_routine(data: HabitData, routine_id: str) -> RoutineData | None:
        """Look up a routine by id (the library id never matches)."""
        index = find_routine_index(data, routine_id)
        return data[const.DATA_ROUTINES][index] if index != -1 else None

    @staticmethod
    def get_stack(data: HabitData, parent: Parent, stack_id: str) -> StackData | None:
        """Look up a stack under a specific parent."""
        stacks = stack_container(data, parent)
        if stacks is None:
            return None
        index = find_stack_index(stacks, stack_id)
        return stacks[index] if index != -1 else None

    @staticmethod
    def find_stack_parent(data: HabitData, stack_id: str) -> Parent | None:
        """Return whichever parent currently holds the stack."""
        if find_stack_index(data[const.DATA_UNSCHEDULED_STACKS], stack_id) != -1:
            return LIBRARY
        for routine in data[const.DATA_ROUTINES]:
            if find_stack_index(routine[const.DATA_ROUTINE_STACKS], stack_id) != -1:
                return RoutineParent(routine[const.DATA_ROUTINE_ID])
        return None

    @staticmethod
    def available_routines(data: HabitData) -> list[RoutineData]:
        """Routines a stack can be added to (everything except the Today bucket)."""
        return [
            r
            for r in data[const.DATA_ROUTINES]
            if r[const.DATA_ROUTINE_ID] != const.TODAY_ROUTINE_ID
        ]

    # =========================================================================
    # ROUTINES
    # =========================================================================

    @staticmethod
    def add_routine(data: HabitData, routine: RoutineData) -> HabitData:
        """Append a routine. Duplicate ids and the library id are rejected."""
        routine_id = routine[const.DATA_ROUTINE_ID]
        if routine_id == const.LIBRARY_ID:
            const.LOGGER.warning("Cannot add routine using the reserved library id")
            return data
        if find_routine_index(data, routine_id) != -1:
            const.LOGGER.warning("Cannot add routine %s - id already exists", routine_id)
            return data

        updated = copy.deepcopy(data)
        updated[const.DATA_ROUTINES].append(copy.deepcopy(routine))
        const.LOGGER.debug("Added routine '%s'", routine[const.DATA_ROUTINE_TITLE])
        return updated

    @staticmethod
    def delete_routine(data: HabitData, routine_id: str) -> HabitData:
        """Remove a routine together with all of its stacks (no move to library)."""
        index = find_routine_index(data, routine_id)
        if index == -1:
            const.LOGGER.warning("Cannot delete routine %s - not found", routine_id)
            return data

        updated = copy.deepcopy(data)
        removed = updated[const.DATA_ROUTINES].pop(index)
        const.LOGGER.debug(
            "Deleted routine '%s' and %d stack(s)",
            removed[const.DATA_ROUTINE_TITLE],
            len(removed[const.DATA_ROUTINE_STACKS]),
        )
        return updated

    @staticmethod
    def rename_routine(data: HabitData, routine_id: str, title: str) -> HabitData:
        """Set a routine's title."""
        index = find_routine_index(data, routine_id)
        if index == -1:
            const.LOGGER.warning("Cannot rename routine %s - not found", routine_id)
            return data

        updated = copy.deepcopy(data)
        updated[const.DATA_ROUTINES][index][const.DATA_ROUTINE_TITLE] = title
        return updated

    @staticmethod
    def reorder_routines(data: HabitData, source: int, target: int) -> HabitData:
        """Move one routine, keeping the relative order of all others."""
        updated = copy.deepcopy(data)
        if not _move(updated[const.DATA_ROUTINES], source, target):
            const.LOGGER.warning(
                "Cannot reorder routines %d -> %d - index out of range", source, target
            )
            return data
        return updated

    @staticmethod
    def update_routine_schedule(
        data: HabitData, routine_id: str, options: ScheduleOptions
    ) -> HabitData:
        """Replace a routine's schedule. Days are kept when not given.

        Raises:
            EntityValidationError: Unknown schedule type or weekday.
        """
        index = find_routine_index(data, routine_id)
        if index == -1:
            const.LOGGER.warning(
                "Cannot update schedule of routine %s - not found", routine_id
            )
            return data

        fields = build_schedule_fields(options)
        updated = copy.deepcopy(data)
        routine = updated[const.DATA_ROUTINES][index]
        if options.get("days") is not None:
            routine[const.DATA_ROUTINE_DAYS] = fields[const.DATA_STACK_SCHEDULE_DAYS]
        routine[const.DATA_ROUTINE_SCHEDULE_TYPE] = fields[
            const.DATA_STACK_SCHEDULE_TYPE
        ]
        routine[const.DATA_ROUTINE_INTERVAL] = fields[const.DATA_STACK_INTERVAL]
        routine[const.DATA_ROUTINE_START_DATE] = fields[const.DATA_STACK_START_DATE]
        routine[const.DATA_ROUTINE_DAY_OF_MONTH] = fields[const.DATA_STACK_DAY_OF_MONTH]
        return updated

    # =========================================================================
    # STACK PLACEMENT
    # =========================================================================

    @staticmethod
    def save_unscheduled_stack(data: HabitData, stack: StackData) -> HabitData:
        """Append a stack to the library: not schedulable, all streaks zeroed."""
        if AggregateEngine.find_stack_parent(data, stack[const.DATA_STACK_ID]) is not None:
            const.LOGGER.warning(
                "Cannot save stack %s to library - id already in use",
                stack[const.DATA_STACK_ID],
            )
            return data

        library_stack = reset_stack_streaks(stack)
        library_stack[const.DATA_STACK_IS_SCHEDULABLE] = False
        updated = copy.deepcopy(data)
        updated[const.DATA_UNSCHEDULED_STACKS].append(library_stack)
        return updated

    @staticmethod
    def add_stack_to_routine(
        data: HabitData, routine_id: str, stack: StackData
    ) -> HabitData:
        """Append a stack to a routine, collapsed.

        A stack already held elsewhere (library or another routine) is removed
        from there, so it ends up under exactly one parent. A stack coming
        from the library becomes schedulable.
        """
        if routine_id == const.LIBRARY_ID:
            return AggregateEngine.save_unscheduled_stack(data, stack)

        routine_index = find_routine_index(data, routine_id)
        if routine_index == -1:
            const.LOGGER.warning(
                "Cannot add stack to routine %s - not found", routine_id
            )
            return data

        stack_id = stack[const.DATA_STACK_ID]
        current = AggregateEngine.find_stack_parent(data, stack_id)
        if current == RoutineParent(routine_id):
            const.LOGGER.warning(
                "Stack %s is already in routine %s", stack_id, routine_id
            )
            return data

        updated = copy.deepcopy(data)
        new_stack = copy.deepcopy(stack)
        new_stack[const.DATA_STACK_IS_EXPANDED] = False
        if current is not None:
            holder = stack_container(updated, current)
            if holder is not None:
                holder.pop(find_stack_index(holder, stack_id))
            if isinstance(current, LibraryParent):
                new_stack[const.DATA_STACK_IS_SCHEDULABLE] = True

        updated[const.DATA_ROUTINES][routine_index][const.DATA_ROUTINE_STACKS].append(
            new_stack
        )
        return updated

    @staticmethod
    def assign_stack_to_routine(
        data: HabitData, source: Parent, stack_id: str, target: Parent
    ) -> HabitData:
        """Move a stack between parents with exactly-once semantics.

        The moved stack has its own and all action streaks reset to 0 and
        becomes schedulable only when the target is a routine. Its ledger rows
        are dropped along with the streaks. If the target cannot receive it,
        nothing changes.
        """
        if source == target:
            const.LOGGER.debug(
                "Stack %s already under %s, nothing to move", stack_id, target.owner_id
            )
            return data

        updated = copy.deepcopy(data)
        source_stacks = stack_container(updated, source)
        target_stacks = stack_container(updated, target)
        if source_stacks is None or target_stacks is None:
            const.LOGGER.warning(
                "Cannot move stack %s from %s to %s - parent not found",
                stack_id,
                source.owner_id,
                target.owner_id,
            )
            return data

        index = find_stack_index(source_stacks, stack_id)
        if index == -1:
            const.LOGGER.warning(
                "Cannot move stack %s - not found under %s", stack_id, source.owner_id
            )
            return data
        if find_stack_index(target_stacks, stack_id) != -1:
            const.LOGGER.warning(
                "Cannot move stack %s - already present under %s",
                stack_id,
                target.owner_id,
            )
            return data

        moved = reset_stack_streaks(source_stacks.pop(index))
        moved[const.DATA_STACK_IS_SCHEDULABLE] = isinstance(target, RoutineParent)
        target_stacks.append(moved)
        _forget_stack_credits(updated, source, stack_id)
        const.LOGGER.debug(
            "Moved stack '%s' from %s to %s (streaks reset)",
            moved[const.DATA_STACK_TITLE],
            source.owner_id,
            target.owner_id,
        )
        return updated

    @staticmethod
    def delete_stack(data: HabitData, parent: Parent, stack_id: str) -> HabitData:
        """Remove a stack from whichever collection holds it."""
        updated = copy.deepcopy(data)
        stacks = stack_container(updated, parent)
        index = -1 if stacks is None else find_stack_index(stacks, stack_id)
        if stacks is None or index == -1:
            const.LOGGER.warning(
                "Cannot delete stack %s - not found under %s", stack_id, parent.owner_id
            )
            return data
        stacks.pop(index)
        return updated

    @staticmethod
    def reorder_stacks(
        data: HabitData, parent: Parent, source: int, target: int
    ) -> HabitData:
        """Move one stack within its parent, keeping all others in order."""
        updated = copy.deepcopy(data)
        stacks = stack_container(updated, parent)
        if stacks is None or not _move(stacks, source, target):
            const.LOGGER.warning(
                "Cannot reorder stacks %d -> %d under %s",
                source,
                target,
                parent.owner_id,
            )
            return data
        return updated

    @staticmethod
    def add_stack_to_today(data: HabitData, stack: StackData, today: date) -> HabitData:
        """Copy a stack into the Today bucket as a one-off for `today`.

        The bucket routine is created on first use. The copy gets a fresh id,
        pending actions and zero streaks; its oneTime schedule keeps it due on
        `today` only, so it never tracks streaks.
        """
        updated = copy.deepcopy(data)
        index = find_routine_index(updated, const.TODAY_ROUTINE_ID)
        if index == -1:
            updated[const.DATA_ROUTINES].append(
                {
                    const.DATA_ROUTINE_ID: const.TODAY_ROUTINE_ID,
                    const.DATA_ROUTINE_TITLE: const.TODAY_ROUTINE_TITLE,
                    const.DATA_ROUTINE_DESCRIPTION: const.TODAY_ROUTINE_DESCRIPTION,
                    const.DATA_ROUTINE_STACKS: [],
                    const.DATA_ROUTINE_DAYS: [],
                    const.DATA_ROUTINE_STREAK: const.DEFAULT_STREAK,
                    const.DATA_ROUTINE_SCHEDULE_TYPE: None,
                    const.DATA_ROUTINE_INTERVAL: None,
                    const.DATA_ROUTINE_START_DATE: None,
                    const.DATA_ROUTINE_DAY_OF_MONTH: None,
                }
            )
            index = len(updated[const.DATA_ROUTINES]) - 1

        one_off = reset_stack_streaks(stack)
        one_off[const.DATA_STACK_ACTIONS] = [
            StackEngine.mark_pending(a) for a in one_off[const.DATA_STACK_ACTIONS]
        ]
        one_off.update(
            {
                const.DATA_STACK_ID: str(uuid.uuid4()),
                const.DATA_STACK_IS_SCHEDULABLE: True,
                const.DATA_STACK_SCHEDULE_TYPE: const.SCHEDULE_TYPE_ONE_TIME,
                const.DATA_STACK_START_DATE: today.isoformat(),
                const.DATA_STACK_IS_ONE_TIME: True,
                const.DATA_STACK_IS_EXPANDED: False,
            }
        )
        updated[const.DATA_ROUTINES][index][const.DATA_ROUTINE_STACKS].append(one_off)
        return updated

    # =========================================================================
    # STACK EDITING
    # =========================================================================

    @staticmethod
    def _edit_stack(
        data: HabitData, parent: Parent, stack_id: str, operation: str
    ) -> tuple[HabitData, StackData] | None:
        """Copy the snapshot and return it with the live copy of the stack."""
        updated = copy.deepcopy(data)
        stacks = stack_container(updated, parent)
        index = -1 if stacks is None else find_stack_index(stacks, stack_id)
        if stacks is None or index == -1:
            const.LOGGER.warning(
                "Cannot %s stack %s - not found under %s",
                operation,
                stack_id,
                parent.owner_id,
            )
            return None
        return updated, stacks[index]

    @staticmethod
    def rename_stack(
        data: HabitData, parent: Parent, stack_id: str, title: str
    ) -> HabitData:
        """Set a stack's title."""
        edit = AggregateEngine._edit_stack(data, parent, stack_id, "rename")
        if edit is None:
            return data
        updated, stack = edit
        stack[const.DATA_STACK_TITLE] = title
        return updated

    @staticmethod
    def set_stack_schedule(
        data: HabitData, parent: Parent, stack_id: str, options: ScheduleOptions
    ) -> HabitData:
        """Replace every schedule field of a stack.

        Raises:
            EntityValidationError: Unknown schedule type or weekday.
        """
        fields = build_schedule_fields(options)
        edit = AggregateEngine._edit_stack(data, parent, stack_id, "schedule")
        if edit is None:
            return data
        updated, stack = edit
        stack.update(fields)  # type: ignore[typeddict-item]
        const.LOGGER.debug(
            "Stack '%s' scheduled as %s",
            stack[const.DATA_STACK_TITLE],
            fields[const.DATA_STACK_SCHEDULE_TYPE],
        )
        return updated

    @staticmethod
    def update_stack_schedule_days(
        data: HabitData, routine_id: str, stack_id: str, days: list[str]
    ) -> HabitData:
        """Replace only the weekday set of a routine-held stack."""
        edit = AggregateEngine._edit_stack(
            data, RoutineParent(routine_id), stack_id, "update days of"
        )
        if edit is None:
            return data
        updated, stack = edit
        stack[const.DATA_STACK_SCHEDULE_DAYS] = [
            d for d in dict.fromkeys(days) if d in const.WEEKDAY_NAMES
        ]
        return updated

    @staticmethod
    def update_actions(
        data: HabitData, parent: Parent, stack_id: str, actions: list[Any]
    ) -> HabitData:
        """Replace a stack's actions, normalizing flags and streaks."""
        edit = AggregateEngine._edit_stack(data, parent, stack_id, "update actions of")
        if edit is None:
            return data
        updated, stack = edit
        stack[const.DATA_STACK_ACTIONS] = normalize_actions(actions)
        return updated

    @staticmethod
    def add_action(
        data: HabitData,
        parent: Parent,
        stack_id: str,
        text: str,
        *,
        max_actions: int = const.MAX_ACTIONS_PER_STACK,
    ) -> HabitData:
        """Append a pending action with a fresh id and streak 0.

        Raises:
            EntityValidationError: The stack already holds max_actions actions.
        """
        edit = AggregateEngine._edit_stack(data, parent, stack_id, "add action to")
        if edit is None:
            return data
        updated, stack = edit
        if len(stack[const.DATA_STACK_ACTIONS]) >= max_actions:
            raise EntityValidationError(
                field=const.DATA_STACK_ACTIONS,
                reason=const.ERROR_TOO_MANY_ACTIONS,
                placeholders={"max": str(max_actions)},
            )
        stack[const.DATA_STACK_ACTIONS].append(build_action(text))
        return updated

    @staticmethod
    def remove_action(
        data: HabitData, parent: Parent, stack_id: str, action_id: str
    ) -> HabitData:
        """Remove one action from a stack."""
        edit = AggregateEngine._edit_stack(data, parent, stack_id, "remove action from")
        if edit is None:
            return data
        updated, stack = edit
        index = StackEngine.find_action_index(stack, action_id)
        if index == -1:
            const.LOGGER.warning(
                "Cannot remove action %s - not found in stack %s", action_id, stack_id
            )
            return data
        stack[const.DATA_STACK_ACTIONS].pop(index)
        return updated

    @staticmethod
    def reorder_actions(
        data: HabitData, parent: Parent, stack_id: str, source: int, target: int
    ) -> HabitData:
        """Move one action within a stack, keeping all others in order."""
        edit = AggregateEngine._edit_stack(data, parent, stack_id, "reorder actions of")
        if edit is None:
            return data
        updated, stack = edit
        if not _move(stack[const.DATA_STACK_ACTIONS], source, target):
            const.LOGGER.warning(
                "Cannot reorder actions %d -> %d in stack %s", source, target, stack_id
            )
            return data
        return updated

    # =========================================================================
    # EXPAND / COLLAPSE
    # =========================================================================

    @staticmethod
    def toggle_stack_expand(data: HabitData, routine_id: str, stack_id: str) -> HabitData:
        """Flip isExpanded on a routine-held stack."""
        index = find_routine_index(data, routine_id)
        if index == -1:
            const.LOGGER.warning("Cannot toggle stack in routine %s - not found", routine_id)
            return data
        updated = copy.deepcopy(data)
        updated[const.DATA_ROUTINES][index] = StackEngine.toggle_stack_expand(
            updated[const.DATA_ROUTINES][index], stack_id
        )
        return updated

    @staticmethod
    def collapse_all_stacks(data: HabitData, routine_id: str) -> HabitData:
        """Collapse every stack of a routine."""
        index = find_routine_index(data, routine_id)
        if index == -1:
            const.LOGGER.warning("Cannot collapse routine %s - not found", routine_id)
            return data
        updated = copy.deepcopy(data)
        updated[const.DATA_ROUTINES][index] = StackEngine.collapse_all_stacks(
            updated[const.DATA_ROUTINES][index]
        )
        return updated
