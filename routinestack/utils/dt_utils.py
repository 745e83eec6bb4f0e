# File: utils/dt_utils.py
"""Date and calendar utilities for routinestack.

Pure Python date functions. The engines never read the wall clock directly;
they receive a `date`, and only the default clock provider here touches
`datetime.now()`.

Calendar rules:
    - Weekday names use the proleptic Gregorian calendar via `date.weekday()`
      mapped onto fixed English names. Platform locale is never consulted.
    - Month differences are calendar month differences, not day counts.

Functions:
    - get_timezone: Resolve an IANA name to a ZoneInfo
    - dt_today_local: Get today's date in the reference timezone
    - dt_today_iso: Get today's date as ISO string
    - dt_parse_date: Parse ISO date or datetime strings to a date
    - dt_weekday_name: English weekday name for a date
    - days_between / weeks_between / months_between: Signed calendar differences
"""

from __future__ import annotations

from datetime import UTC, date, datetime
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Third-party date utilities
from dateutil.parser import isoparse

from .. import const

# Module-level logger
_LOGGER = logging.getLogger(__name__)

# Default reference timezone - callers pass their configured zone explicitly
DEFAULT_TIME_ZONE: ZoneInfo = ZoneInfo(const.DEFAULT_TIMEZONE)


# ==============================================================================
# Timezone / Clock
# ==============================================================================


def get_timezone(name: str | None) -> ZoneInfo:
    """Resolve an IANA timezone name.

    Args:
        name: Timezone name such as "Europe/Berlin". None means UTC.

    Returns:
        ZoneInfo for the name, or UTC if the name is unknown.
    """
    if not name:
        return DEFAULT_TIME_ZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        _LOGGER.warning("Unknown timezone '%s', falling back to UTC", name)
        return DEFAULT_TIME_ZONE


def dt_today_local(tz: ZoneInfo | None = None) -> date:
    """Return today's date in the reference timezone as a `datetime.date`.

    Args:
        tz: Optional timezone override. Uses DEFAULT_TIME_ZONE if not provided.

    Returns:
        Today's date in the specified timezone.

    Example:
        datetime.date(2025, 4, 7)
    """
    tz_info = tz or DEFAULT_TIME_ZONE
    return datetime.now(UTC).astimezone(tz_info).date()


def dt_today_iso(tz: ZoneInfo | None = None) -> str:
    """Return today's date in the reference timezone as ISO string (YYYY-MM-DD)."""
    return dt_today_local(tz).isoformat()


# ==============================================================================
# Parsing
# ==============================================================================


def dt_parse_date(value: str | date | datetime | None) -> date | None:
    """Safely normalize a date-ish value into a `datetime.date`.

    Accepts:
    - date / datetime objects (datetimes are reduced to their date part)
    - "2025-04-07" (ISO date)
    - "2025-04-07T00:00:00.000Z" (ISO datetime, date part as written)

    Args:
        value: Value to parse, or None

    Returns:
        datetime.date or None if parsing fails.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    try:
        return date.fromisoformat(value)
    except ValueError:
        pass

    try:
        return isoparse(value).date()
    except (ValueError, OverflowError):
        _LOGGER.debug("Unparseable date value: %s", value)
        return None


def dt_to_iso_date(value: str | date | datetime | None) -> str | None:
    """Normalize a date-ish value to an ISO date string, or None."""
    parsed = dt_parse_date(value)
    return parsed.isoformat() if parsed else None


# ==============================================================================
# Calendar Arithmetic
# ==============================================================================


def dt_weekday_name(target: date) -> str:
    """Return the English weekday name ("Monday".."Sunday") for a date."""
    return const.WEEKDAY_NAMES[target.weekday()]


def days_between(start: date, target: date) -> int:
    """Return signed whole days from start to target (negative if before)."""
    return (target - start).days


def weeks_between(start: date, target: date) -> int:
    """Return floored whole weeks from start to target.

    Floor division keeps dates before start negative (e.g. -1 day → -1 week).
    """
    return days_between(start, target) // const.DAYS_PER_WEEK


def months_between(start: date, target: date) -> int:
    """Return the calendar month difference from start to target.

    Examples:
        2024-01-31 → 2024-02-01 = 1 (calendar months, not elapsed time)
        2024-03-15 → 2024-01-15 = -2
    """
    return (target.year - start.year) * const.MONTHS_PER_YEAR + (
        target.month - start.month
    )
