"""Engine modules for routinestack.

Contains the pure computation engines:
- schedule_engine: Due-date evaluation and calendar range queries
- stack_engine: Action state machine and stack/routine completion status
- aggregate_engine: Routine/stack CRUD, reorder and reassignment
- streak_engine: Completion ledger and streak rules
"""

# Use relative imports within package to avoid mypy module resolution issues
from .aggregate_engine import AggregateEngine
from .schedule_engine import ScheduleEngine, get_schedule_days
from .stack_engine import StackEngine
from .streak_engine import CompletionLedger, StreakEngine

__all__ = [
    "AggregateEngine",
    "CompletionLedger",
    "ScheduleEngine",
    "StackEngine",
    "StreakEngine",
    "get_schedule_days",
]
