# File: __init__.py
"""The routinestack habit engine.

Routines hold ordered stacks of actions; the engines decide what is due on a
date, track streaks and keep every stack under exactly one parent. The
HabitCoordinator holds the live snapshot and persists it through HabitStore.
"""

from .coordinator import HabitCoordinator
from .data_builders import EntityValidationError
from .store import HabitStore, PersistenceError
from .type_defs import LIBRARY, LibraryParent, RoutineParent

__all__ = [
    "LIBRARY",
    "EntityValidationError",
    "HabitCoordinator",
    "HabitStore",
    "LibraryParent",
    "PersistenceError",
    "RoutineParent",
]
