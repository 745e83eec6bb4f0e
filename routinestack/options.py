# File: options.py
"""Configuration schema and defaults for routinestack.

Options:
    timezone: IANA name fixing the reference calendar of the default clock
    save_delay: Debounce quiet period (seconds) before persisting
    storage_path: JSON storage file location
    max_actions_per_stack: Upper bound enforced when adding actions (1-9)
"""

from __future__ import annotations

from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import voluptuous as vol

from . import const


def _timezone(value: Any) -> str:
    """Validate an IANA timezone name."""
    name = str(value)
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as err:
        raise vol.Invalid(f"unknown timezone '{name}'") from err
    return name


OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Optional(const.CONF_TIMEZONE, default=const.DEFAULT_TIMEZONE): _timezone,
        vol.Optional(const.CONF_SAVE_DELAY, default=const.DEFAULT_SAVE_DELAY): vol.All(
            vol.Coerce(float), vol.Range(min=0)
        ),
        vol.Optional(
            const.CONF_STORAGE_PATH, default=const.DEFAULT_STORAGE_PATH
        ): vol.All(str, vol.Length(min=1)),
        vol.Optional(
            const.CONF_MAX_ACTIONS_PER_STACK, default=const.MAX_ACTIONS_PER_STACK
        ): vol.All(
            vol.Coerce(int),
            vol.Range(min=const.MIN_ACTIONS_PER_STACK, max=const.MAX_ACTIONS_PER_STACK),
        ),
    }
)


def validate_options(raw: dict[str, Any] | None = None) -> dict[str, Any]:
    """Validate options and fill in defaults.

    Raises:
        voluptuous.Invalid: An option is unknown or out of range.
    """
    return OPTIONS_SCHEMA(dict(raw or {}))
