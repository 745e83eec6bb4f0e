# File: coordinator.py
"""Coordinator for routinestack.

Holds the live habit snapshot and is the only stateful component. Every
mutation runs a pure engine call, swaps in the returned snapshot and
schedules a debounced save. The last snapshot confirmed by the store is kept
so a failed save rolls the in-memory state back (optimistic update with
rollback).

External callers address stack parents by id: "library" for the unscheduled
library, otherwise a routine id.
"""

# pylint: disable=too-many-public-methods

from __future__ import annotations

import asyncio
from collections.abc import Callable
import copy
from datetime import date, timedelta
from typing import Any

from . import const
from .data_builders import build_routine, build_stack, normalize_stack
from .engines import AggregateEngine, ScheduleEngine, StackEngine, StreakEngine
from .options import validate_options
from .store import HabitStore, PersistenceError
from .type_defs import (
    HabitData,
    Parent,
    RoutineData,
    ScheduleOptions,
    StackData,
    parent_from_id,
)
from .utils.dt_utils import dt_today_local, get_timezone


class HabitCoordinator:
    """Coordinator for the routine/stack aggregate.

    Args:
        store: Persistence collaborator (defaults to a HabitStore at the
            configured storage_path).
        options: Raw options, validated with OPTIONS_SCHEMA.
        clock: Provider of "today" as a date. Defaults to today's date in the
            configured timezone.
    """

    def __init__(
        self,
        store: HabitStore | None = None,
        options: dict[str, Any] | None = None,
        clock: Callable[[], date] | None = None,
    ) -> None:
        """Initialize the HabitCoordinator."""
        self.options = validate_options(options)
        self._tz = get_timezone(self.options[const.CONF_TIMEZONE])
        self._clock = clock or (lambda: dt_today_local(self._tz))
        self.store = store or HabitStore(self.options[const.CONF_STORAGE_PATH])
        self._data: HabitData = HabitStore.get_default_structure()
        self._last_persisted: HabitData = copy.deepcopy(self._data)
        self._dirty = False
        self._save_handle: asyncio.TimerHandle | None = None
        self._save_task: asyncio.Task[None] | None = None
        self._save_lock = asyncio.Lock()
        self.last_persistence_error: PersistenceError | None = None

    # -------------------------------------------------------------------------------------
    # Lifecycle and State
    # -------------------------------------------------------------------------------------

    async def async_initialize(self) -> None:
        """Load the snapshot from the store."""
        self._data = await self.store.async_load()
        self._last_persisted = copy.deepcopy(self._data)
        self._dirty = False

    @property
    def data(self) -> HabitData:
        """The live snapshot (treat as read-only)."""
        return self._data

    @property
    def routines(self) -> list[RoutineData]:
        """All routines in display order."""
        return self._data[const.DATA_ROUTINES]

    @property
    def unscheduled_stacks(self) -> list[StackData]:
        """The library of stacks not attached to any routine."""
        return self._data[const.DATA_UNSCHEDULED_STACKS]

    @property
    def has_pending_changes(self) -> bool:
        """True while a mutation has not been confirmed by the store."""
        return self._dirty

    def today(self) -> date:
        """Return the active date from the injected clock."""
        return self._clock()

    def snapshot(self) -> HabitData:
        """Return an independent copy of the live snapshot."""
        return copy.deepcopy(self._data)

    def restore(self, snapshot: HabitData) -> None:
        """Replace the live snapshot and schedule a save."""
        self._apply(copy.deepcopy(snapshot))

    def _apply(self, new_data: HabitData) -> None:
        """Swap in an engine result; engines return the input on a no-op."""
        if new_data is self._data:
            return
        self._data = new_data
        self._dirty = True
        self._schedule_persist()

    # -------------------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------------------

    def _schedule_persist(self) -> None:
        """Debounce a save by save_delay seconds."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            const.LOGGER.debug("DEBUG: No running event loop, save waits for flush")
            return

        if self._save_handle is not None:
            self._save_handle.cancel()
        self._save_handle = loop.call_later(
            self.options[const.CONF_SAVE_DELAY], self._start_background_save
        )
        const.LOGGER.debug(
            "DEBUG: Save scheduled in %.2fs", self.options[const.CONF_SAVE_DELAY]
        )

    def _start_background_save(self) -> None:
        self._save_handle = None
        self._save_task = asyncio.get_running_loop().create_task(
            self._async_background_save()
        )

    async def _async_background_save(self) -> None:
        try:
            await self._async_save()
        except PersistenceError as err:
            self.last_persistence_error = err

    async def _async_save(self) -> None:
        """Save the live snapshot; on failure roll back to the last confirmed one.

        Saves run one at a time; a save started while another is in flight
        waits for it and then writes the newer snapshot.

        Raises:
            PersistenceError: The store could not save.
        """
        async with self._save_lock:
            if not self._dirty:
                return
            pending = self._data
            self._dirty = False
            try:
                await self.store.async_save(pending)
            except PersistenceError:
                self._data = copy.deepcopy(self._last_persisted)
                const.LOGGER.info(
                    "INFO: Save failed, rolled back to last saved snapshot"
                )
                raise
            self._last_persisted = copy.deepcopy(pending)
            self.last_persistence_error = None

    async def async_flush(self) -> None:
        """Save pending changes now, cancelling any debounced save.

        Raises:
            PersistenceError: The store could not save (state is rolled back).
        """
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        if self._save_task is not None and not self._save_task.done():
            await self._save_task
        self._save_task = None
        await self._async_save()

    async def async_midnight_rollover(self, day: date | None = None) -> None:
        """Run the end-of-day reset for the day that just ended, then save.

        Args:
            day: The ending day. Defaults to yesterday per the clock.
        """
        ending = day or self.today() - timedelta(days=1)
        const.LOGGER.debug("DEBUG: Midnight rollover for %s", ending)
        self.reset_completed_items(ending)
        await self.async_flush()

    # -------------------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------------------

    def get_routine(self, routine_id: str) -> RoutineData | None:
        """Look up a routine by id."""
        return AggregateEngine.get_routine(self._data, routine_id)

    def get_stack(self, parent_id: str, stack_id: str) -> StackData | None:
        """Look up a stack under the library or a routine."""
        return AggregateEngine.get_stack(self._data, parent_from_id(parent_id), stack_id)

    def find_stack_parent(self, stack_id: str) -> Parent | None:
        """Return whichever parent currently holds the stack."""
        return AggregateEngine.find_stack_parent(self._data, stack_id)

    def available_routines(self) -> list[RoutineData]:
        """Routines a stack can be added to."""
        return AggregateEngine.available_routines(self._data)

    def is_due_today(self, item: StackData | RoutineData) -> bool:
        """Check if a stack or routine is due on the active date."""
        return ScheduleEngine.is_due_today(item, self._clock)

    def todays_routines(self) -> list[RoutineData]:
        """Routines due on the active date."""
        return ScheduleEngine.routines_for_date(self.routines, self.today())

    def todays_stacks(self, routine_id: str) -> list[StackData]:
        """Stacks of a routine due on the active date."""
        routine = self.get_routine(routine_id)
        if routine is None:
            const.LOGGER.warning("Cannot list stacks of routine %s - not found", routine_id)
            return []
        return StackEngine.get_todays_stacks(routine, self.today())

    def is_stack_completed(self, parent_id: str, stack_id: str) -> bool:
        """Every action of the stack is completed or skipped."""
        stack = self.get_stack(parent_id, stack_id)
        return stack is not None and StackEngine.is_stack_completed(stack)

    def is_routine_completed(self, routine_id: str) -> bool:
        """Every stack of the routine due today is handled."""
        routine = self.get_routine(routine_id)
        return routine is not None and StackEngine.is_routine_completed(
            routine, self.today()
        )

    def get_stack_progress(self, parent_id: str, stack_id: str) -> float:
        """Fraction of the stack's actions handled (0..1)."""
        stack = self.get_stack(parent_id, stack_id)
        return StackEngine.get_stack_progress(stack) if stack is not None else 0.0

    # -------------------------------------------------------------------------------------
    # Routines
    # -------------------------------------------------------------------------------------

    def add_routine(self, user_input: dict[str, Any]) -> RoutineData:
        """Create a routine from user input and append it.

        Raises:
            EntityValidationError: Empty title or reserved id.
        """
        routine = build_routine(user_input)
        self._apply(AggregateEngine.add_routine(self._data, routine))
        return routine

    def delete_routine(self, routine_id: str) -> None:
        """Delete a routine and all of its stacks."""
        self._apply(AggregateEngine.delete_routine(self._data, routine_id))

    def rename_routine(self, routine_id: str, title: str) -> None:
        """Rename a routine."""
        self._apply(AggregateEngine.rename_routine(self._data, routine_id, title))

    def reorder_routines(self, source: int, target: int) -> None:
        """Move a routine from one position to another."""
        self._apply(AggregateEngine.reorder_routines(self._data, source, target))

    def update_routine_schedule(
        self, routine_id: str, options: ScheduleOptions
    ) -> None:
        """Replace a routine's schedule."""
        self._apply(
            AggregateEngine.update_routine_schedule(self._data, routine_id, options)
        )

    # -------------------------------------------------------------------------------------
    # Stacks
    # -------------------------------------------------------------------------------------

    def _stack_from_input(self, stack: dict[str, Any]) -> StackData:
        """Validate a new stack, or normalize one already held by the aggregate."""
        stack_id = stack.get(const.DATA_STACK_ID)
        if stack_id and self.find_stack_parent(stack_id) is not None:
            normalized = normalize_stack(stack)
            if normalized is not None:
                return normalized
        return build_stack(
            stack, max_actions=self.options[const.CONF_MAX_ACTIONS_PER_STACK]
        )

    def save_unscheduled_stack(self, stack: dict[str, Any]) -> StackData:
        """Create a stack in the library.

        Raises:
            EntityValidationError: Empty title or wrong number of actions.
        """
        new_stack = build_stack(
            stack, max_actions=self.options[const.CONF_MAX_ACTIONS_PER_STACK]
        )
        self._apply(AggregateEngine.save_unscheduled_stack(self._data, new_stack))
        return new_stack

    def add_stack_to_routine(self, routine_id: str, stack: dict[str, Any]) -> StackData:
        """Append a new or existing stack to a routine.

        Raises:
            EntityValidationError: A new stack failed validation.
        """
        new_stack = self._stack_from_input(stack)
        self._apply(
            AggregateEngine.add_stack_to_routine(self._data, routine_id, new_stack)
        )
        return new_stack

    def add_stack_to_today(self, stack: dict[str, Any]) -> None:
        """Copy a stack into the Today bucket for the active date."""
        self._apply(
            AggregateEngine.add_stack_to_today(
                self._data, self._stack_from_input(stack), self.today()
            )
        )

    def assign_stack_to_routine(
        self, source_id: str, stack_id: str, target_id: str
    ) -> None:
        """Move a stack between the library and routines (streaks reset)."""
        self._apply(
            AggregateEngine.assign_stack_to_routine(
                self._data,
                parent_from_id(source_id),
                stack_id,
                parent_from_id(target_id),
            )
        )

    def delete_stack(self, parent_id: str, stack_id: str) -> None:
        """Delete a stack from the library or a routine."""
        self._apply(
            AggregateEngine.delete_stack(self._data, parent_from_id(parent_id), stack_id)
        )

    def rename_stack(self, parent_id: str, stack_id: str, title: str) -> None:
        """Rename a stack."""
        self._apply(
            AggregateEngine.rename_stack(
                self._data, parent_from_id(parent_id), stack_id, title
            )
        )

    def reorder_stacks(self, parent_id: str, source: int, target: int) -> None:
        """Move a stack within its parent."""
        self._apply(
            AggregateEngine.reorder_stacks(
                self._data, parent_from_id(parent_id), source, target
            )
        )

    def set_stack_schedule(
        self, parent_id: str, stack_id: str, options: ScheduleOptions
    ) -> None:
        """Replace a stack's schedule."""
        self._apply(
            AggregateEngine.set_stack_schedule(
                self._data, parent_from_id(parent_id), stack_id, options
            )
        )

    def update_stack_schedule_days(
        self, routine_id: str, stack_id: str, days: list[str]
    ) -> None:
        """Replace the weekday set of a routine-held stack."""
        self._apply(
            AggregateEngine.update_stack_schedule_days(
                self._data, routine_id, stack_id, days
            )
        )

    def toggle_stack_expand(self, routine_id: str, stack_id: str) -> None:
        """Expand or collapse a routine-held stack."""
        self._apply(
            AggregateEngine.toggle_stack_expand(self._data, routine_id, stack_id)
        )

    def collapse_all_stacks(self, routine_id: str) -> None:
        """Collapse every stack of a routine."""
        self._apply(AggregateEngine.collapse_all_stacks(self._data, routine_id))

    # -------------------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------------------

    def update_actions(
        self, parent_id: str, stack_id: str, actions: list[dict[str, Any]]
    ) -> None:
        """Replace a stack's actions."""
        self._apply(
            AggregateEngine.update_actions(
                self._data, parent_from_id(parent_id), stack_id, actions
            )
        )

    def add_action(self, parent_id: str, stack_id: str, text: str) -> None:
        """Append a new action to a stack.

        Raises:
            EntityValidationError: The stack is already full.
        """
        self._apply(
            AggregateEngine.add_action(
                self._data,
                parent_from_id(parent_id),
                stack_id,
                text,
                max_actions=self.options[const.CONF_MAX_ACTIONS_PER_STACK],
            )
        )

    def remove_action(self, parent_id: str, stack_id: str, action_id: str) -> None:
        """Remove an action from a stack."""
        self._apply(
            AggregateEngine.remove_action(
                self._data, parent_from_id(parent_id), stack_id, action_id
            )
        )

    def reorder_actions(
        self, parent_id: str, stack_id: str, source: int, target: int
    ) -> None:
        """Move an action within a stack."""
        self._apply(
            AggregateEngine.reorder_actions(
                self._data, parent_from_id(parent_id), stack_id, source, target
            )
        )

    def complete_action(self, parent_id: str, stack_id: str, action_id: str) -> None:
        """Complete an action on the active date."""
        self._apply(
            StreakEngine.complete_action(
                self._data,
                parent_from_id(parent_id),
                stack_id,
                action_id,
                self.today(),
            )
        )

    def skip_action(self, parent_id: str, stack_id: str, action_id: str) -> None:
        """Skip an action (breaks action, stack and routine streaks)."""
        self._apply(
            StreakEngine.skip_action(
                self._data, parent_from_id(parent_id), stack_id, action_id
            )
        )

    def reset_completed_items(self, day: date | None = None) -> None:
        """End-of-day reset for `day` (defaults to the active date)."""
        self._apply(
            StreakEngine.reset_completed_items(self._data, day or self.today())
        )
