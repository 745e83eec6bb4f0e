# File: const.py
"""Constants for routinestack.

This file centralizes schedule types, persisted field keys, defaults, ledger
owner identifiers and the package logger for consistency across the engines,
builders, store and coordinator.
"""

import logging

# ------------------------------------------------------------------------------------------------
# General
# ------------------------------------------------------------------------------------------------
ROUTINESTACK_TITLE = "RoutineStack"
DOMAIN = "routinestack"

# Logger
LOGGER = logging.getLogger(__package__)

# Storage and Versioning
STORAGE_KEY = "routinestack_data"
STORAGE_VERSION = 1
SCHEMA_VERSION = 1

# ------------------------------------------------------------------------------------------------
# Schedule Types
# ------------------------------------------------------------------------------------------------
SCHEDULE_TYPE_DAILY = "daily"
SCHEDULE_TYPE_WEEKLY = "weekly"
SCHEDULE_TYPE_INTERVAL = "interval"
SCHEDULE_TYPE_BIWEEKLY = "biweekly"
SCHEDULE_TYPE_MONTHLY = "monthly"
SCHEDULE_TYPE_ONE_TIME = "oneTime"
SCHEDULE_TYPE_NONE = "none"

SCHEDULE_TYPES: frozenset[str] = frozenset(
    {
        SCHEDULE_TYPE_DAILY,
        SCHEDULE_TYPE_WEEKLY,
        SCHEDULE_TYPE_INTERVAL,
        SCHEDULE_TYPE_BIWEEKLY,
        SCHEDULE_TYPE_MONTHLY,
        SCHEDULE_TYPE_ONE_TIME,
        SCHEDULE_TYPE_NONE,
    }
)

# Schedule types that never build a streak (unset is handled separately)
NON_STREAK_SCHEDULE_TYPES: frozenset[str] = frozenset(
    {SCHEDULE_TYPE_NONE, SCHEDULE_TYPE_ONE_TIME}
)

# ------------------------------------------------------------------------------------------------
# Calendar
# ------------------------------------------------------------------------------------------------
# Index matches date.weekday() (0=Monday). Fixed English names, never locale derived.
WEEKDAY_NAMES: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

DAYS_PER_WEEK = 7
MONTHS_PER_YEAR = 12
MIN_DAY_OF_MONTH = 1
MAX_DAY_OF_MONTH = 31
DEFAULT_NEXT_DUE_HORIZON_DAYS = 366

# ------------------------------------------------------------------------------------------------
# Action States (derived from completed/skipped flags)
# ------------------------------------------------------------------------------------------------
ACTION_STATE_PENDING = "pending"
ACTION_STATE_COMPLETED = "completed"
ACTION_STATE_SKIPPED = "skipped"

# ------------------------------------------------------------------------------------------------
# Persisted Data Keys (snapshot shape, camelCase as stored)
# ------------------------------------------------------------------------------------------------
DATA_META = "meta"
DATA_META_SCHEMA_VERSION = "schemaVersion"
DATA_META_COMPLETION_LEDGER = "completionLedger"
DATA_ROUTINES = "routines"
DATA_UNSCHEDULED_STACKS = "unscheduledStacks"

# Action
DATA_ACTION_ID = "id"
DATA_ACTION_TEXT = "text"
DATA_ACTION_COMPLETED = "completed"
DATA_ACTION_SKIPPED = "skipped"
DATA_ACTION_STREAK = "streak"

# Stack
DATA_STACK_ID = "id"
DATA_STACK_TITLE = "title"
DATA_STACK_IS_EXPANDED = "isExpanded"
DATA_STACK_ACTIONS = "actions"
DATA_STACK_STREAK = "streak"
DATA_STACK_SCHEDULE_TYPE = "scheduleType"
DATA_STACK_SCHEDULE_DAYS = "scheduleDays"
DATA_STACK_INTERVAL = "interval"
DATA_STACK_IS_SCHEDULABLE = "isSchedulable"
DATA_STACK_START_DATE = "startDate"
DATA_STACK_IS_ONE_TIME = "isOneTime"
DATA_STACK_DAY_OF_MONTH = "dayOfMonth"

# Routine
DATA_ROUTINE_ID = "id"
DATA_ROUTINE_TITLE = "title"
DATA_ROUTINE_DESCRIPTION = "description"
DATA_ROUTINE_STACKS = "stacks"
DATA_ROUTINE_DAYS = "days"
DATA_ROUTINE_STREAK = "streak"
DATA_ROUTINE_SCHEDULE_TYPE = "scheduleType"
DATA_ROUTINE_INTERVAL = "interval"
DATA_ROUTINE_START_DATE = "startDate"
DATA_ROUTINE_DAY_OF_MONTH = "dayOfMonth"

# Ledger entries
DATA_LEDGER_OWNER_ID = "ownerId"
DATA_LEDGER_ITEM_ID = "itemId"
DATA_LEDGER_DATE = "date"

# Legacy row keys accepted on load (old backing-store column names)
LEGACY_KEY_MAP: dict[str, str] = {
    DATA_STACK_SCHEDULE_TYPE: "schedule_type",
    DATA_STACK_SCHEDULE_DAYS: "schedule_days",
    DATA_STACK_IS_SCHEDULABLE: "is_schedulable",
    DATA_STACK_START_DATE: "start_date",
    DATA_STACK_DAY_OF_MONTH: "day_of_month",
    DATA_STACK_IS_EXPANDED: "is_expanded",
    DATA_STACK_IS_ONE_TIME: "is_one_time",
}

# ------------------------------------------------------------------------------------------------
# Parents, Sentinels and Ledger Owners
# ------------------------------------------------------------------------------------------------
# Sentinel id used by external callers for the library; never a real routine id.
LIBRARY_ID = "library"

# Ad-hoc "Today" bucket for one-off stacks
TODAY_ROUTINE_ID = "today-routine"
TODAY_ROUTINE_TITLE = "Today"
TODAY_ROUTINE_DESCRIPTION = "One-time stacks for today"

# Owner id used for routine-level ledger entries (routines have no parent)
LEDGER_OWNER_ROUTINES = "routines"

# ------------------------------------------------------------------------------------------------
# Limits and Defaults
# ------------------------------------------------------------------------------------------------
MIN_ACTIONS_PER_STACK = 1
MAX_ACTIONS_PER_STACK = 9
DEFAULT_STREAK = 0
DEFAULT_ZERO = 0
SENTINEL_EMPTY = ""

# Options
CONF_TIMEZONE = "timezone"
CONF_SAVE_DELAY = "save_delay"
CONF_STORAGE_PATH = "storage_path"
CONF_MAX_ACTIONS_PER_STACK = "max_actions_per_stack"

DEFAULT_TIMEZONE = "UTC"
DEFAULT_SAVE_DELAY = 1.0
DEFAULT_STORAGE_PATH = "routinestack_data.json"

# Validation failure reasons (EntityValidationError.reason)
ERROR_EMPTY_TITLE = "empty_title"
ERROR_TOO_FEW_ACTIONS = "too_few_actions"
ERROR_TOO_MANY_ACTIONS = "too_many_actions"
ERROR_INVALID_SCHEDULE_TYPE = "invalid_schedule_type"
ERROR_INVALID_WEEKDAY = "invalid_weekday"
ERROR_LIBRARY_ROUTINE_ID = "library_routine_id"
