"""Type definitions for routinestack data structures.

TypedDicts describe the persisted snapshot shape (static keys, camelCase as
stored). They are STATIC ANALYSIS ONLY: runtime tolerance for missing or
malformed fields lives in data_builders.normalize_*().

The stack parent is a small tagged union instead of a magic string:
`LibraryParent` for the unscheduled library, `RoutineParent(routine_id)` for a
stack held by a routine.

IMPORTANT: This file must NOT import from engines or the coordinator.
Only import from const.py and typing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NotRequired, TypedDict

from . import const

# =============================================================================
# Type Aliases (for readability)
# =============================================================================

ActionId = str
StackId = str
RoutineId = str
ISODate = str  # ISO 8601 date string (no time) "2026-01-18"


# =============================================================================
# Entity Types
# =============================================================================


class ActionData(TypedDict):
    """A single trackable step within a stack."""

    id: ActionId
    text: str
    completed: bool
    skipped: bool
    streak: int


class StackData(TypedDict):
    """An ordered list of 1-9 actions plus its schedule."""

    id: StackId
    title: str
    isExpanded: bool
    actions: list[ActionData]
    streak: int
    scheduleType: str | None
    scheduleDays: list[str]
    interval: int | None
    isSchedulable: bool
    startDate: ISODate | None
    isOneTime: bool
    dayOfMonth: int | None


class RoutineData(TypedDict):
    """A named, scheduled collection of stacks."""

    id: RoutineId
    title: str
    description: str
    stacks: list[StackData]
    days: list[str]
    streak: int
    scheduleType: str | None
    interval: int | None
    startDate: ISODate | None
    dayOfMonth: int | None


class LedgerEntry(TypedDict):
    """Persisted completion ledger row."""

    ownerId: str
    itemId: str
    date: ISODate


class HabitMeta(TypedDict):
    """Snapshot metadata."""

    schemaVersion: int
    completionLedger: list[LedgerEntry]


class HabitData(TypedDict):
    """The whole aggregate: routines plus the unscheduled library."""

    meta: HabitMeta
    routines: list[RoutineData]
    unscheduledStacks: list[StackData]


class ScheduleOptions(TypedDict):
    """Schedule edit payload for set_stack_schedule / update_routine_schedule."""

    type: str | None
    days: NotRequired[list[str] | None]
    interval: NotRequired[int | None]
    isSchedulable: NotRequired[bool]
    startDate: NotRequired[ISODate | None]
    dayOfMonth: NotRequired[int | None]


# Stacks and routines share the schedule fields the evaluator reads.
SchedulableItem = StackData | RoutineData


# =============================================================================
# Stack Parent (tagged union)
# =============================================================================


@dataclass(frozen=True)
class LibraryParent:
    """The unscheduled stack library."""

    @property
    def owner_id(self) -> str:
        """Ledger owner id for stacks held by the library."""
        return const.LIBRARY_ID


@dataclass(frozen=True)
class RoutineParent:
    """A routine holding a stack."""

    routine_id: RoutineId

    @property
    def owner_id(self) -> str:
        """Ledger owner id for stacks held by this routine."""
        return self.routine_id


Parent = LibraryParent | RoutineParent

LIBRARY = LibraryParent()


def parent_from_id(parent_id: str) -> Parent:
    """Map an external parent id ("library" or a routine id) to a Parent."""
    if parent_id == const.LIBRARY_ID:
        return LIBRARY
    return RoutineParent(parent_id)
