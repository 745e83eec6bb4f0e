# File: store.py
"""Handles persistent data storage for routinestack.

Saves and loads the habit snapshot as a JSON file so routines, library stacks,
streaks and the completion ledger survive restarts. The file wraps the
snapshot with a version and key:

    {"version": 1, "key": "routinestack_data", "data": {...snapshot...}}

Writes go to a temporary file that is then renamed over the target, so an
interrupted save never leaves a truncated file behind.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiofiles
import aiofiles.os

from . import const
from .data_builders import (
    build_default_habit_data,
    normalize_habit_data,
    serialize_habit_data,
)

if TYPE_CHECKING:
    from .type_defs import HabitData


class PersistenceError(Exception):
    """Saving the snapshot failed (file system or serialization)."""


class HabitStore:
    """Handles persistent storage operations for the habit snapshot.

    Loading never raises: a missing file starts fresh, and unreadable or
    malformed content is coerced through normalize_habit_data(). Saving
    raises PersistenceError so the caller can roll back.
    """

    def __init__(
        self,
        path: str | Path = const.DEFAULT_STORAGE_PATH,
        storage_key: str = const.STORAGE_KEY,
    ) -> None:
        """Initialize the store.

        Args:
            path: Location of the JSON storage file.
            storage_key: Key written into the file wrapper.
        """
        self._path = Path(path)
        self._storage_key = storage_key

    @staticmethod
    def get_default_structure() -> HabitData:
        """Return canonical empty data structure for fresh installations."""
        return build_default_habit_data()

    @property
    def path(self) -> Path:
        """The storage file path."""
        return self._path

    async def async_load(self) -> HabitData:
        """Load the snapshot from storage.

        If no file exists, returns the default empty structure.
        """
        if not await aiofiles.os.path.exists(self._path):
            const.LOGGER.info(
                "INFO: No existing storage found at %s. Initializing new data",
                self._path,
            )
            return HabitStore.get_default_structure()

        try:
            async with aiofiles.open(self._path, encoding="utf-8") as f:
                content = await f.read()
            wrapper = json.loads(content)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as err:
            const.LOGGER.warning(
                "WARNING: Could not read storage file %s: %s. Starting empty",
                self._path,
                err,
            )
            return HabitStore.get_default_structure()

        raw = self._unwrap(wrapper)
        data = normalize_habit_data(raw)
        const.LOGGER.info(
            "INFO: Loaded %d routine(s) and %d library stack(s) from %s",
            len(data[const.DATA_ROUTINES]),
            len(data[const.DATA_UNSCHEDULED_STACKS]),
            self._path,
        )
        return data

    def _unwrap(self, wrapper: Any) -> Any:
        """Extract the snapshot from the file wrapper.

        A bare snapshot (no wrapper) is accepted as-is.
        """
        if not isinstance(wrapper, dict) or "data" not in wrapper:
            return wrapper
        if wrapper.get("key") not in (None, self._storage_key):
            const.LOGGER.warning(
                "WARNING: Storage key mismatch in %s: expected '%s', found '%s'",
                self._path,
                self._storage_key,
                wrapper.get("key"),
            )
        version = wrapper.get("version")
        if version != const.STORAGE_VERSION:
            const.LOGGER.warning(
                "WARNING: Storage version %s differs from %s, coercing data",
                version,
                const.STORAGE_VERSION,
            )
        return wrapper["data"]

    async def async_save(self, data: HabitData) -> None:
        """Save the snapshot to storage.

        Raises:
            PersistenceError: Wraps OSError when file system issues prevent
                saving, TypeError when data contains non-serializable types,
                and ValueError when data is invalid for JSON serialization.
        """
        temp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            content = json.dumps(
                {
                    "version": const.STORAGE_VERSION,
                    "key": self._storage_key,
                    "data": serialize_habit_data(data),
                },
                indent=2,
                ensure_ascii=False,
            )
            if self._path.parent != Path():
                await aiofiles.os.makedirs(self._path.parent, exist_ok=True)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(content)
            await aiofiles.os.replace(temp_path, self._path)
            const.LOGGER.debug("DEBUG: Data saved successfully to %s", self._path)
        except OSError as err:
            const.LOGGER.error(
                "ERROR: Failed to save storage due to file system error: %s. "
                "Check disk space and file permissions for %s",
                err,
                self._path,
            )
            raise PersistenceError(str(err)) from err
        except TypeError as err:
            const.LOGGER.error(
                "ERROR: Failed to save storage due to non-serializable data: %s. "
                "Data contains types that cannot be converted to JSON",
                err,
            )
            raise PersistenceError(str(err)) from err
        except ValueError as err:
            const.LOGGER.error(
                "ERROR: Failed to save storage due to invalid data format: %s. "
                "Data structure may be corrupted",
                err,
            )
            raise PersistenceError(str(err)) from err

    async def async_remove(self) -> None:
        """Delete the storage file completely from disk."""
        try:
            await aiofiles.os.remove(self._path)
            const.LOGGER.info("INFO: Storage file removed successfully: %s", self._path)
        except FileNotFoundError:
            const.LOGGER.debug("DEBUG: No storage file to remove at %s", self._path)
        except OSError as err:
            const.LOGGER.error(
                "ERROR: Failed to remove storage file %s: %s. Check file permissions",
                self._path,
                err,
            )
            raise PersistenceError(str(err)) from err
