"""Entity lifecycle and snapshot (de)serialization helpers.

This module is the SINGLE SOURCE OF TRUTH for:
- Entity field defaults
- Creation-time business validation (title, 1-9 actions, schedule type)
- Tolerant normalization of persisted/external data
- Snapshot serialization for the persistence collaborator

## Build vs Normalize

`build_*()` functions sit on the creation/editing boundary. They generate ids,
apply defaults and RAISE `EntityValidationError` when business rules fail.

`normalize_*()` functions sit on the load boundary. They NEVER raise: corrupt
or legacy values are coerced (bad actions → [], bad numbers → default) so the
engine stays usable with partially-corrupt input.

`serialize_habit_data()` followed by `normalize_habit_data()` reproduces an
equal snapshot.
"""

from __future__ import annotations

import copy
import json
from typing import Any
import uuid

from . import const
from .type_defs import (
    ActionData,
    HabitData,
    HabitMeta,
    LedgerEntry,
    RoutineData,
    ScheduleOptions,
    StackData,
)
from .utils.dt_utils import dt_to_iso_date

# ==============================================================================
# HELPER FUNCTIONS FOR FIELD NORMALIZATION
# ==============================================================================


def _new_id() -> str:
    return str(uuid.uuid4())


def _get(raw: dict[str, Any], key: str, default: Any = None) -> Any:
    """Read a field, falling back to its legacy row key if present."""
    if key in raw:
        return raw[key]
    legacy_key = const.LEGACY_KEY_MAP.get(key)
    if legacy_key and legacy_key in raw:
        return raw[legacy_key]
    return default


def _normalize_list_field(value: Any) -> list[Any]:
    """Normalize a field that should be a list.

    Handles cases where the value might be:
    - Already a list → return a copy
    - None → return empty list
    - A non-empty string → single-element list (never iterate characters)
    - Anything else → empty list
    """
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    if isinstance(value, str):
        return [value] if value else []
    return []


def _normalize_weekdays(value: Any) -> list[str]:
    """Keep only known weekday names, preserving order and dropping repeats."""
    days: list[str] = []
    for day in _normalize_list_field(value):
        if day in const.WEEKDAY_NAMES and day not in days:
            days.append(day)
    return days


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _coerce_streak(value: Any) -> int:
    """Streaks are non-negative ints; anything unusable becomes 0."""
    if isinstance(value, bool):
        return const.DEFAULT_STREAK
    try:
        streak = int(value)
    except (TypeError, ValueError):
        return const.DEFAULT_STREAK
    return max(const.DEFAULT_STREAK, streak)


def _coerce_positive_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _coerce_day_of_month(value: Any) -> int | None:
    day = _coerce_positive_int(value)
    if day is None or day > const.MAX_DAY_OF_MONTH:
        return None
    return day


def _coerce_schedule_type(value: Any) -> str | None:
    if value in const.SCHEDULE_TYPES:
        return value
    if value not in (None, const.SENTINEL_EMPTY):
        const.LOGGER.warning("Unknown scheduleType '%s' coerced to unset", value)
    return None


def _parse_json_container(value: Any) -> Any:
    """Decode JSON strings (legacy rows stored nested arrays as text)."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value or "[]")
    except (json.JSONDecodeError, ValueError):
        const.LOGGER.warning("Malformed JSON container coerced to empty list")
        return []


# ==============================================================================
# EXCEPTIONS
# ==============================================================================


class EntityValidationError(Exception):
    """Validation error raised when creating or editing an entity.

    Attributes:
        field: The DATA_* key of the offending field
        reason: The ERROR_* constant describing the failure
        placeholders: Optional details (limits, offending values)

    Example:
        raise EntityValidationError(
            field=const.DATA_STACK_ACTIONS,
            reason=const.ERROR_TOO_MANY_ACTIONS,
            placeholders={"max": "9"},
        )
    """

    def __init__(
        self,
        field: str,
        reason: str,
        placeholders: dict[str, str] | None = None,
    ) -> None:
        """Initialize EntityValidationError."""
        self.field = field
        self.reason = reason
        self.placeholders = placeholders or {}
        super().__init__(f"{field}: {reason}")


# ==============================================================================
# ACTIONS
# ==============================================================================


def build_action(text: str, *, action_id: str | None = None) -> ActionData:
    """Build a fresh pending action with streak 0."""
    return ActionData(
        id=action_id or _new_id(),
        text=str(text),
        completed=False,
        skipped=False,
        streak=const.DEFAULT_STREAK,
    )


def normalize_action(raw: Any) -> ActionData | None:
    """Coerce one persisted action; non-dict entries are dropped (None)."""
    if not isinstance(raw, dict):
        return None
    completed = _coerce_bool(raw.get(const.DATA_ACTION_COMPLETED))
    skipped = _coerce_bool(raw.get(const.DATA_ACTION_SKIPPED)) and not completed
    return ActionData(
        id=str(raw.get(const.DATA_ACTION_ID) or _new_id()),
        text=str(raw.get(const.DATA_ACTION_TEXT) or const.SENTINEL_EMPTY),
        completed=completed,
        skipped=skipped,
        streak=_coerce_streak(raw.get(const.DATA_ACTION_STREAK)),
    )


def normalize_actions(raw: Any) -> list[ActionData]:
    """Coerce an actions field to a list of actions.

    Accepts a list, a JSON string, or an object whose values are actions.
    Anything else yields an empty list.
    """
    value = _parse_json_container(raw)
    if isinstance(value, dict):
        value = list(value.values())
    if not isinstance(value, list):
        if value is not None:
            const.LOGGER.warning(
                "Malformed actions field (%s) coerced to empty list",
                type(value).__name__,
            )
        return []
    actions: list[ActionData] = []
    for entry in value:
        action = normalize_action(entry)
        if action is not None:
            actions.append(action)
    return actions


# ==============================================================================
# SCHEDULE
# ==============================================================================


def build_schedule_fields(options: ScheduleOptions) -> dict[str, Any]:
    """Validate a schedule edit and map it onto stack schedule fields.

    Raises:
        EntityValidationError: Unknown schedule type or weekday name.
    """
    schedule_type = options.get("type")
    if schedule_type not in (None, *const.SCHEDULE_TYPES):
        raise EntityValidationError(
            field=const.DATA_STACK_SCHEDULE_TYPE,
            reason=const.ERROR_INVALID_SCHEDULE_TYPE,
            placeholders={"value": str(schedule_type)},
        )

    raw_days = options.get("days") or []
    unknown = [d for d in raw_days if d not in const.WEEKDAY_NAMES]
    if unknown:
        raise EntityValidationError(
            field=const.DATA_STACK_SCHEDULE_DAYS,
            reason=const.ERROR_INVALID_WEEKDAY,
            placeholders={"value": ", ".join(map(str, unknown))},
        )

    return {
        const.DATA_STACK_SCHEDULE_TYPE: schedule_type,
        const.DATA_STACK_SCHEDULE_DAYS: _normalize_weekdays(raw_days),
        const.DATA_STACK_INTERVAL: _coerce_positive_int(options.get("interval")),
        const.DATA_STACK_IS_SCHEDULABLE: options.get("isSchedulable") is not False,
        const.DATA_STACK_START_DATE: dt_to_iso_date(options.get("startDate")),
        const.DATA_STACK_DAY_OF_MONTH: _coerce_day_of_month(options.get("dayOfMonth")),
    }


# ==============================================================================
# STACKS
# ==============================================================================


def build_stack(
    user_input: dict[str, Any],
    existing: StackData | None = None,
    *,
    max_actions: int = const.MAX_ACTIONS_PER_STACK,
) -> StackData:
    """Build stack data for create or update operations.

    One function handles both create (existing=None) and update (existing=StackData).
    `actions` may be given as strings (labels) or action dicts.

    Raises:
        EntityValidationError: Empty title, or fewer than 1 / more than
            max_actions actions.
    """

    def get_field(data_key: str, default: Any) -> Any:
        """Get field value: user_input > existing > default."""
        if data_key in user_input:
            return user_input[data_key]
        if existing is not None:
            return existing.get(data_key, default)
        return default

    title = str(get_field(const.DATA_STACK_TITLE, const.SENTINEL_EMPTY)).strip()
    if not title:
        raise EntityValidationError(
            field=const.DATA_STACK_TITLE, reason=const.ERROR_EMPTY_TITLE
        )

    actions: list[ActionData] = []
    for entry in _normalize_list_field(get_field(const.DATA_STACK_ACTIONS, [])):
        if isinstance(entry, dict):
            action = normalize_action(entry)
            if action is not None:
                actions.append(action)
        elif str(entry).strip():
            actions.append(build_action(str(entry).strip()))

    if len(actions) < const.MIN_ACTIONS_PER_STACK:
        raise EntityValidationError(
            field=const.DATA_STACK_ACTIONS,
            reason=const.ERROR_TOO_FEW_ACTIONS,
            placeholders={"min": str(const.MIN_ACTIONS_PER_STACK)},
        )
    if len(actions) > max_actions:
        raise EntityValidationError(
            field=const.DATA_STACK_ACTIONS,
            reason=const.ERROR_TOO_MANY_ACTIONS,
            placeholders={"max": str(max_actions)},
        )

    stack_id = existing.get(const.DATA_STACK_ID) if existing else None
    return StackData(
        id=str(stack_id or user_input.get(const.DATA_STACK_ID) or _new_id()),
        title=title,
        isExpanded=_coerce_bool(get_field(const.DATA_STACK_IS_EXPANDED, False)),
        actions=actions,
        streak=_coerce_streak(get_field(const.DATA_STACK_STREAK, 0)),
        scheduleType=_coerce_schedule_type(
            get_field(const.DATA_STACK_SCHEDULE_TYPE, None)
        ),
        scheduleDays=_normalize_weekdays(get_field(const.DATA_STACK_SCHEDULE_DAYS, [])),
        interval=_coerce_positive_int(get_field(const.DATA_STACK_INTERVAL, None)),
        isSchedulable=get_field(const.DATA_STACK_IS_SCHEDULABLE, True) is not False,
        startDate=dt_to_iso_date(get_field(const.DATA_STACK_START_DATE, None)),
        isOneTime=_coerce_bool(get_field(const.DATA_STACK_IS_ONE_TIME, False)),
        dayOfMonth=_coerce_day_of_month(get_field(const.DATA_STACK_DAY_OF_MONTH, None)),
    )


def normalize_stack(raw: Any) -> StackData | None:
    """Coerce one persisted stack; non-dict entries are dropped (None)."""
    if not isinstance(raw, dict):
        return None
    return StackData(
        id=str(raw.get(const.DATA_STACK_ID) or _new_id()),
        title=str(raw.get(const.DATA_STACK_TITLE) or const.SENTINEL_EMPTY),
        isExpanded=_coerce_bool(_get(raw, const.DATA_STACK_IS_EXPANDED, False)),
        actions=normalize_actions(raw.get(const.DATA_STACK_ACTIONS)),
        streak=_coerce_streak(raw.get(const.DATA_STACK_STREAK)),
        scheduleType=_coerce_schedule_type(_get(raw, const.DATA_STACK_SCHEDULE_TYPE)),
        scheduleDays=_normalize_weekdays(_get(raw, const.DATA_STACK_SCHEDULE_DAYS)),
        interval=_coerce_positive_int(raw.get(const.DATA_STACK_INTERVAL)),
        isSchedulable=_get(raw, const.DATA_STACK_IS_SCHEDULABLE, True) is not False,
        startDate=dt_to_iso_date(_get(raw, const.DATA_STACK_START_DATE)),
        isOneTime=_coerce_bool(_get(raw, const.DATA_STACK_IS_ONE_TIME, False)),
        dayOfMonth=_coerce_day_of_month(_get(raw, const.DATA_STACK_DAY_OF_MONTH)),
    )


def normalize_stacks(raw: Any) -> list[StackData]:
    """Coerce a stacks field (list or JSON string) to a list of stacks."""
    value = _parse_json_container(raw)
    if not isinstance(value, list):
        return []
    return [s for s in (normalize_stack(entry) for entry in value) if s is not None]


def reset_stack_streaks(stack: StackData) -> StackData:
    """Return a copy of the stack with its own and all action streaks zeroed."""
    updated = copy.deepcopy(stack)
    updated[const.DATA_STACK_STREAK] = const.DEFAULT_STREAK
    for action in updated[const.DATA_STACK_ACTIONS]:
        action[const.DATA_ACTION_STREAK] = const.DEFAULT_STREAK
    return updated


# ==============================================================================
# ROUTINES
# ==============================================================================


def build_routine(
    user_input: dict[str, Any],
    existing: RoutineData | None = None,
) -> RoutineData:
    """Build routine data for create or update operations.

    Raises:
        EntityValidationError: Empty title, or the reserved library id.
    """

    def get_field(data_key: str, default: Any) -> Any:
        """Get field value: user_input > existing > default."""
        if data_key in user_input:
            return user_input[data_key]
        if existing is not None:
            return existing.get(data_key, default)
        return default

    title = str(get_field(const.DATA_ROUTINE_TITLE, const.SENTINEL_EMPTY)).strip()
    if not title:
        raise EntityValidationError(
            field=const.DATA_ROUTINE_TITLE, reason=const.ERROR_EMPTY_TITLE
        )

    routine_id = str(
        (existing or {}).get(const.DATA_ROUTINE_ID)
        or user_input.get(const.DATA_ROUTINE_ID)
        or _new_id()
    )
    if routine_id == const.LIBRARY_ID:
        raise EntityValidationError(
            field=const.DATA_ROUTINE_ID, reason=const.ERROR_LIBRARY_ROUTINE_ID
        )

    return RoutineData(
        id=routine_id,
        title=title,
        description=str(
            get_field(const.DATA_ROUTINE_DESCRIPTION, const.SENTINEL_EMPTY) or ""
        ),
        stacks=normalize_stacks(get_field(const.DATA_ROUTINE_STACKS, [])),
        days=_normalize_weekdays(get_field(const.DATA_ROUTINE_DAYS, [])),
        streak=_coerce_streak(get_field(const.DATA_ROUTINE_STREAK, 0)),
        scheduleType=_coerce_schedule_type(
            get_field(const.DATA_ROUTINE_SCHEDULE_TYPE, None)
        ),
        interval=_coerce_positive_int(get_field(const.DATA_ROUTINE_INTERVAL, None)),
        startDate=dt_to_iso_date(get_field(const.DATA_ROUTINE_START_DATE, None)),
        dayOfMonth=_coerce_day_of_month(
            get_field(const.DATA_ROUTINE_DAY_OF_MONTH, None)
        ),
    )


def normalize_routine(raw: Any) -> RoutineData | None:
    """Coerce one persisted routine; non-dicts and the library sentinel are dropped."""
    if not isinstance(raw, dict):
        return None
    routine_id = str(raw.get(const.DATA_ROUTINE_ID) or _new_id())
    if routine_id == const.LIBRARY_ID:
        const.LOGGER.warning("Dropping persisted routine using the library id")
        return None
    return RoutineData(
        id=routine_id,
        title=str(raw.get(const.DATA_ROUTINE_TITLE) or const.SENTINEL_EMPTY),
        description=str(raw.get(const.DATA_ROUTINE_DESCRIPTION) or const.SENTINEL_EMPTY),
        stacks=normalize_stacks(raw.get(const.DATA_ROUTINE_STACKS)),
        days=_normalize_weekdays(raw.get(const.DATA_ROUTINE_DAYS)),
        streak=_coerce_streak(raw.get(const.DATA_ROUTINE_STREAK)),
        scheduleType=_coerce_schedule_type(_get(raw, const.DATA_ROUTINE_SCHEDULE_TYPE)),
        interval=_coerce_positive_int(raw.get(const.DATA_ROUTINE_INTERVAL)),
        startDate=dt_to_iso_date(_get(raw, const.DATA_ROUTINE_START_DATE)),
        dayOfMonth=_coerce_day_of_month(_get(raw, const.DATA_ROUTINE_DAY_OF_MONTH)),
    )


# ==============================================================================
# SNAPSHOT
# ==============================================================================


def build_default_habit_data() -> HabitData:
    """Return the canonical empty snapshot for fresh installations."""
    return HabitData(
        meta=HabitMeta(
            schemaVersion=const.SCHEMA_VERSION,
            completionLedger=[],
        ),
        routines=[],
        unscheduledStacks=[],
    )


def normalize_ledger_entries(raw: Any) -> list[LedgerEntry]:
    """Coerce persisted ledger rows; rows with bad ids or dates are dropped."""
    entries: list[LedgerEntry] = []
    for row in _normalize_list_field(raw):
        if not isinstance(row, dict):
            continue
        owner_id = row.get(const.DATA_LEDGER_OWNER_ID)
        item_id = row.get(const.DATA_LEDGER_ITEM_ID)
        day = dt_to_iso_date(row.get(const.DATA_LEDGER_DATE))
        if not owner_id or not item_id or day is None:
            continue
        entries.append(
            LedgerEntry(ownerId=str(owner_id), itemId=str(item_id), date=day)
        )
    return entries


def normalize_habit_data(raw: Any) -> HabitData:
    """Coerce a persisted snapshot into a well-formed HabitData.

    Never raises; a non-dict input yields the default empty snapshot.
    """
    if not isinstance(raw, dict):
        if raw is not None:
            const.LOGGER.warning(
                "Persisted snapshot is %s, starting empty", type(raw).__name__
            )
        return build_default_habit_data()

    meta = raw.get(const.DATA_META)
    meta = meta if isinstance(meta, dict) else {}

    routines: list[RoutineData] = []
    for entry in _normalize_list_field(_parse_json_container(raw.get(const.DATA_ROUTINES))):
        routine = normalize_routine(entry)
        if routine is not None:
            routines.append(routine)

    return HabitData(
        meta=HabitMeta(
            schemaVersion=_coerce_positive_int(meta.get(const.DATA_META_SCHEMA_VERSION))
            or const.SCHEMA_VERSION,
            completionLedger=normalize_ledger_entries(
                meta.get(const.DATA_META_COMPLETION_LEDGER)
            ),
        ),
        routines=routines,
        unscheduledStacks=normalize_stacks(raw.get(const.DATA_UNSCHEDULED_STACKS)),
    )


def serialize_habit_data(data: HabitData) -> dict[str, Any]:
    """Return a JSON-ready deep copy of the snapshot with every field present."""
    return {
        const.DATA_META: {
            const.DATA_META_SCHEMA_VERSION: data[const.DATA_META][
                const.DATA_META_SCHEMA_VERSION
            ],
            const.DATA_META_COMPLETION_LEDGER: [
                dict(entry)
                for entry in data[const.DATA_META][const.DATA_META_COMPLETION_LEDGER]
            ],
        },
        const.DATA_ROUTINES: [
            _serialize_routine(routine) for routine in data[const.DATA_ROUTINES]
        ],
        const.DATA_UNSCHEDULED_STACKS: [
            _serialize_stack(stack) for stack in data[const.DATA_UNSCHEDULED_STACKS]
        ],
    }


def _serialize_stack(stack: StackData) -> dict[str, Any]:
    return {
        const.DATA_STACK_ID: stack[const.DATA_STACK_ID],
        const.DATA_STACK_TITLE: stack[const.DATA_STACK_TITLE],
        const.DATA_STACK_IS_EXPANDED: stack[const.DATA_STACK_IS_EXPANDED],
        const.DATA_STACK_ACTIONS: [
            {
                const.DATA_ACTION_ID: a[const.DATA_ACTION_ID],
                const.DATA_ACTION_TEXT: a[const.DATA_ACTION_TEXT],
                const.DATA_ACTION_COMPLETED: a[const.DATA_ACTION_COMPLETED],
                const.DATA_ACTION_SKIPPED: a[const.DATA_ACTION_SKIPPED],
                const.DATA_ACTION_STREAK: a[const.DATA_ACTION_STREAK],
            }
            for a in stack[const.DATA_STACK_ACTIONS]
        ],
        const.DATA_STACK_STREAK: stack[const.DATA_STACK_STREAK],
        const.DATA_STACK_SCHEDULE_TYPE: stack[const.DATA_STACK_SCHEDULE_TYPE],
        const.DATA_STACK_SCHEDULE_DAYS: list(stack[const.DATA_STACK_SCHEDULE_DAYS]),
        const.DATA_STACK_INTERVAL: stack[const.DATA_STACK_INTERVAL],
        const.DATA_STACK_IS_SCHEDULABLE: stack[const.DATA_STACK_IS_SCHEDULABLE],
        const.DATA_STACK_START_DATE: stack[const.DATA_STACK_START_DATE],
        const.DATA_STACK_IS_ONE_TIME: stack[const.DATA_STACK_IS_ONE_TIME],
        const.DATA_STACK_DAY_OF_MONTH: stack[const.DATA_STACK_DAY_OF_MONTH],
    }


def _serialize_routine(routine: RoutineData) -> dict[str, Any]:
    return {
        const.DATA_ROUTINE_ID: routine[const.DATA_ROUTINE_ID],
        const.DATA_ROUTINE_TITLE: routine[const.DATA_ROUTINE_TITLE],
        const.DATA_ROUTINE_DESCRIPTION: routine[const.DATA_ROUTINE_DESCRIPTION],
        const.DATA_ROUTINE_STACKS: [
            _serialize_stack(stack) for stack in routine[const.DATA_ROUTINE_STACKS]
        ],
        const.DATA_ROUTINE_DAYS: list(routine[const.DATA_ROUTINE_DAYS]),
        const.DATA_ROUTINE_STREAK: routine[const.DATA_ROUTINE_STREAK],
        const.DATA_ROUTINE_SCHEDULE_TYPE: routine[const.DATA_ROUTINE_SCHEDULE_TYPE],
        const.DATA_ROUTINE_INTERVAL: routine[const.DATA_ROUTINE_INTERVAL],
        const.DATA_ROUTINE_START_DATE: routine[const.DATA_ROUTINE_START_DATE],
        const.DATA_ROUTINE_DAY_OF_MONTH: routine[const.DATA_ROUTINE_DAY_OF_MONTH],
    }
