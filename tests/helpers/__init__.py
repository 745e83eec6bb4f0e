"""Builders for routinestack test data.

Usage:
    from tests.helpers import make_action, make_stack, make_routine, make_data
"""

from __future__ import annotations

from typing import Any

from routinestack import const
from routinestack.type_defs import (
    ActionData,
    HabitData,
    HabitMeta,
    RoutineData,
    StackData,
)

# Fixed dates (2024-01-15 is a Monday)
MONDAY = "2024-01-15"
TUESDAY = "2024-01-16"


def make_action(
    action_id: str,
    *,
    completed: bool = False,
    skipped: bool = False,
    streak: int = 0,
    text: str | None = None,
) -> ActionData:
    """Build an action."""
    return ActionData(
        id=action_id,
        text=text or f"Action {action_id}",
        completed=completed,
        skipped=skipped,
        streak=streak,
    )


def make_stack(
    stack_id: str,
    actions: list[ActionData] | None = None,
    **fields: Any,
) -> StackData:
    """Build a stack; keyword arguments override any stack field."""
    stack = StackData(
        id=stack_id,
        title=f"Stack {stack_id}",
        isExpanded=False,
        actions=actions if actions is not None else [make_action("a1")],
        streak=0,
        scheduleType=None,
        scheduleDays=[],
        interval=None,
        isSchedulable=True,
        startDate=None,
        isOneTime=False,
        dayOfMonth=None,
    )
    stack.update(fields)  # type: ignore[typeddict-item]
    return stack


def make_weekly_stack(
    stack_id: str,
    days: list[str],
    actions: list[ActionData] | None = None,
    **fields: Any,
) -> StackData:
    """Build a weekly stack on the given weekdays."""
    return make_stack(
        stack_id,
        actions,
        scheduleType=const.SCHEDULE_TYPE_WEEKLY,
        scheduleDays=days,
        **fields,
    )


def make_routine(
    routine_id: str,
    stacks: list[StackData] | None = None,
    **fields: Any,
) -> RoutineData:
    """Build a routine; keyword arguments override any routine field."""
    routine = RoutineData(
        id=routine_id,
        title=f"Routine {routine_id}",
        description="",
        stacks=stacks or [],
        days=[],
        streak=0,
        scheduleType=None,
        interval=None,
        startDate=None,
        dayOfMonth=None,
    )
    routine.update(fields)  # type: ignore[typeddict-item]
    return routine


def make_data(
    routines: list[RoutineData] | None = None,
    library: list[StackData] | None = None,
) -> HabitData:
    """Build a full snapshot with an empty ledger."""
    return HabitData(
        meta=HabitMeta(schemaVersion=const.SCHEMA_VERSION, completionLedger=[]),
        routines=routines or [],
        unscheduledStacks=library or [],
    )


def routine_stack(data: HabitData, routine_id: str, stack_id: str) -> StackData:
    """Fetch a routine-held stack from a snapshot (test lookup, raises if absent)."""
    routine = next(r for r in data[const.DATA_ROUTINES] if r["id"] == routine_id)
    return next(s for s in routine[const.DATA_ROUTINE_STACKS] if s["id"] == stack_id)


def stack_action(stack: StackData, action_id: str) -> ActionData:
    """Fetch an action from a stack (test lookup, raises if absent)."""
    return next(a for a in stack[const.DATA_STACK_ACTIONS] if a["id"] == action_id)
