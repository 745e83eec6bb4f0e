"""Schedule Engine for routinestack.

Decides whether a stack or routine is "due" on a calendar date.

- Pure, deterministic: identical inputs always give identical results.
- Date-only: callers pass a `datetime.date`; "today" is just `is_due(item, clock())`.
- Permissive: a misconfigured schedule (missing startDate, interval, dayOfMonth)
  is never due rather than an error, so a due-date scan never crashes.
- `dateutil.rrule` drives range iteration for calendar views.

IMPORTANT: This module must NOT import from coordinator.py.
Only import from const.py, type_defs.py, and utils.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from dateutil.rrule import DAILY, rrule

from .. import const
from ..utils.dt_utils import (
    days_between,
    dt_parse_date,
    dt_weekday_name,
    months_between,
    weeks_between,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ..type_defs import RoutineData, SchedulableItem, StackData


def get_schedule_days(item: SchedulableItem | dict[str, Any]) -> list[str]:
    """Return the weekday set for an item.

    Stacks carry `scheduleDays`; routines carry the legacy `days` field.
    """
    if const.DATA_STACK_SCHEDULE_DAYS in item:
        days = item.get(const.DATA_STACK_SCHEDULE_DAYS)
    else:
        days = item.get(const.DATA_ROUTINE_DAYS)
    return list(days) if isinstance(days, list) else []


class ScheduleEngine:
    """Pure logic engine for schedule evaluation.

    All methods are static - no instance state, no clock access.
    """

    @staticmethod
    def is_due(item: SchedulableItem | dict[str, Any], target: date) -> bool:
        """Check if an item is scheduled for the target date.

        Precedence:
        1. isSchedulable explicitly False → never due
        2. No schedule days AND no scheduleType → due (legacy always-due items)
        3. Dispatch on scheduleType (unset falls back to weekly)

        Args:
            item: Stack or routine data
            target: Calendar date to evaluate

        Returns:
            True if the item is due on the target date.
        """
        if item.get(const.DATA_STACK_IS_SCHEDULABLE) is False:
            return False

        schedule_type = item.get(const.DATA_STACK_SCHEDULE_TYPE)
        schedule_days = get_schedule_days(item)

        if not schedule_days and not schedule_type:
            return True

        if not schedule_type or schedule_type == const.SCHEDULE_TYPE_WEEKLY:
            return dt_weekday_name(target) in schedule_days

        if schedule_type == const.SCHEDULE_TYPE_DAILY:
            return True

        if schedule_type == const.SCHEDULE_TYPE_INTERVAL:
            return ScheduleEngine._is_interval_due(item, target)

        if schedule_type == const.SCHEDULE_TYPE_BIWEEKLY:
            return ScheduleEngine._is_biweekly_due(item, target, schedule_days)

        if schedule_type == const.SCHEDULE_TYPE_MONTHLY:
            return ScheduleEngine._is_monthly_due(item, target)

        if schedule_type == const.SCHEDULE_TYPE_ONE_TIME:
            start = dt_parse_date(item.get(const.DATA_STACK_START_DATE))
            return start is not None and start == target

        if schedule_type == const.SCHEDULE_TYPE_NONE:
            return False

        const.LOGGER.debug(
            "Unknown scheduleType '%s' on '%s', using weekly days",
            schedule_type,
            item.get(const.DATA_STACK_TITLE),
        )
        return dt_weekday_name(target) in schedule_days

    @staticmethod
    def is_due_today(
        item: SchedulableItem | dict[str, Any], clock: Callable[[], date]
    ) -> bool:
        """Check if an item is due on the clock's current date."""
        return ScheduleEngine.is_due(item, clock())

    @staticmethod
    def matching_weekday(
        item: SchedulableItem | dict[str, Any], target: date
    ) -> str | None:
        """Return the matched weekday name for due weekly/biweekly items.

        Returns None when the item is not due, or its schedule is not
        weekday-based.
        """
        schedule_type = item.get(const.DATA_STACK_SCHEDULE_TYPE)
        if schedule_type not in (
            None,
            const.SCHEDULE_TYPE_WEEKLY,
            const.SCHEDULE_TYPE_BIWEEKLY,
        ):
            return None
        if not get_schedule_days(item):
            return None
        if not ScheduleEngine.is_due(item, target):
            return None
        return dt_weekday_name(target)

    # =========================================================================
    # Range queries
    # =========================================================================

    @staticmethod
    def get_due_dates(
        item: SchedulableItem | dict[str, Any], start: date, end: date
    ) -> list[date]:
        """List every date in [start, end] on which the item is due."""
        if end < start:
            return []
        days = rrule(
            DAILY,
            dtstart=datetime.combine(start, datetime.min.time()),
            until=datetime.combine(end, datetime.min.time()),
        )
        return [day.date() for day in days if ScheduleEngine.is_due(item, day.date())]

    @staticmethod
    def next_due_date(
        item: SchedulableItem | dict[str, Any],
        after: date,
        horizon_days: int = const.DEFAULT_NEXT_DUE_HORIZON_DAYS,
    ) -> date | None:
        """Return the first due date strictly after `after`, within a horizon."""
        first = after + timedelta(days=1)
        days = rrule(
            DAILY,
            dtstart=datetime.combine(first, datetime.min.time()),
            count=horizon_days,
        )
        for day in days:
            if ScheduleEngine.is_due(item, day.date()):
                return day.date()
        return None

    @staticmethod
    def routines_for_date(
        routines: Iterable[RoutineData], target: date
    ) -> list[RoutineData]:
        """Filter routines down to those due on the target date."""
        return [r for r in routines if ScheduleEngine.is_due(r, target)]

    @staticmethod
    def stacks_for_date(stacks: Iterable[StackData], target: date) -> list[StackData]:
        """Filter stacks down to those due on the target date."""
        return [s for s in stacks if ScheduleEngine.is_due(s, target)]

    # =========================================================================
    # Private: per-type evaluation
    # =========================================================================

    @staticmethod
    def _positive_int(value: Any) -> int | None:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            return None
        return value

    @staticmethod
    def _is_interval_due(item: SchedulableItem | dict[str, Any], target: date) -> bool:
        """Every N days from startDate."""
        start = dt_parse_date(item.get(const.DATA_STACK_START_DATE))
        interval = ScheduleEngine._positive_int(item.get(const.DATA_STACK_INTERVAL))
        if start is None or interval is None:
            const.LOGGER.debug(
                "Interval schedule on '%s' missing startDate/interval, not due",
                item.get(const.DATA_STACK_TITLE),
            )
            return False
        elapsed = days_between(start, target)
        return elapsed >= 0 and elapsed % interval == 0

    @staticmethod
    def _is_biweekly_due(
        item: SchedulableItem | dict[str, Any],
        target: date,
        schedule_days: list[str],
    ) -> bool:
        """Every N weeks from startDate, on the listed weekdays."""
        start = dt_parse_date(item.get(const.DATA_STACK_START_DATE))
        interval = ScheduleEngine._positive_int(item.get(const.DATA_STACK_INTERVAL))
        if start is None or interval is None:
            return False
        if dt_weekday_name(target) not in schedule_days:
            return False
        weeks = weeks_between(start, target)
        return weeks >= 0 and weeks % interval == 0

    @staticmethod
    def _is_monthly_due(item: SchedulableItem | dict[str, Any], target: date) -> bool:
        """On dayOfMonth, every N calendar months from startDate."""
        start = dt_parse_date(item.get(const.DATA_STACK_START_DATE))
        day_of_month = ScheduleEngine._positive_int(
            item.get(const.DATA_STACK_DAY_OF_MONTH)
        )
        interval = ScheduleEngine._positive_int(item.get(const.DATA_STACK_INTERVAL))
        if start is None or day_of_month is None or interval is None:
            return False
        if target.day != day_of_month:
            return False
        months = months_between(start, target)
        return months >= 0 and months % interval == 0
