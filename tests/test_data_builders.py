"""Tests for data_builders - creation validation and tolerant load coercion."""

from __future__ import annotations

import json

import pytest

from routinestack import const
from routinestack.data_builders import (
    EntityValidationError,
    build_default_habit_data,
    build_routine,
    build_schedule_fields,
    build_stack,
    normalize_actions,
    normalize_habit_data,
    normalize_stack,
    serialize_habit_data,
)
from tests.helpers import make_action, make_data, make_routine, make_stack

# =============================================================================
# TEST: BUILD (creation boundary)
# =============================================================================


class TestBuildStack:
    """Creation-time validation raises EntityValidationError."""

    def test_build_from_labels(self) -> None:
        stack = build_stack({"title": "  Morning  ", "actions": ["Water", "Stretch"]})
        assert stack["title"] == "Morning"
        assert [a["text"] for a in stack["actions"]] == ["Water", "Stretch"]
        assert all(a["streak"] == 0 and not a["completed"] for a in stack["actions"])
        assert stack["isSchedulable"]
        assert stack["id"]

    def test_empty_title_rejected(self) -> None:
        with pytest.raises(EntityValidationError) as err:
            build_stack({"title": "  ", "actions": ["x"]})
        assert err.value.field == const.DATA_STACK_TITLE
        assert err.value.reason == const.ERROR_EMPTY_TITLE

    def test_no_actions_rejected(self) -> None:
        with pytest.raises(EntityValidationError) as err:
            build_stack({"title": "Empty", "actions": ["", "   "]})
        assert err.value.reason == const.ERROR_TOO_FEW_ACTIONS

    def test_ten_actions_rejected(self) -> None:
        with pytest.raises(EntityValidationError) as err:
            build_stack({"title": "Big", "actions": [str(i) for i in range(10)]})
        assert err.value.reason == const.ERROR_TOO_MANY_ACTIONS
        assert err.value.placeholders == {"max": "9"}

    def test_custom_limit(self) -> None:
        with pytest.raises(EntityValidationError):
            build_stack({"title": "Small", "actions": ["a", "b", "c"]}, max_actions=2)

    def test_update_keeps_existing_fields(self) -> None:
        existing = make_stack("s", [make_action("a", streak=3)], streak=2)
        updated = build_stack({"title": "Renamed"}, existing)
        assert updated["id"] == "s"
        assert updated["streak"] == 2
        assert updated["actions"][0]["streak"] == 3


class TestBuildRoutine:
    def test_build(self) -> None:
        routine = build_routine({"title": "Morning", "days": ["Monday", "Caturday"]})
        assert routine["days"] == ["Monday"]
        assert routine["stacks"] == []
        assert routine["streak"] == 0

    def test_library_id_rejected(self) -> None:
        with pytest.raises(EntityValidationError) as err:
            build_routine({"id": const.LIBRARY_ID, "title": "Sneaky"})
        assert err.value.reason == const.ERROR_LIBRARY_ROUTINE_ID


class TestBuildSchedule:
    def test_unknown_weekday_rejected(self) -> None:
        with pytest.raises(EntityValidationError) as err:
            build_schedule_fields({"type": const.SCHEDULE_TYPE_WEEKLY, "days": ["Moonday"]})
        assert err.value.reason == const.ERROR_INVALID_WEEKDAY

    def test_explicit_not_schedulable(self) -> None:
        fields = build_schedule_fields(
            {"type": const.SCHEDULE_TYPE_WEEKLY, "days": ["Monday"], "isSchedulable": False}
        )
        assert fields["isSchedulable"] is False
        assert fields["scheduleDays"] == ["Monday"]


# =============================================================================
# TEST: NORMALIZE (load boundary)
# =============================================================================


class TestNormalizeActions:
    """Malformed action fields never raise."""

    def test_json_string(self) -> None:
        raw = json.dumps([{"id": "a", "text": "Floss", "completed": True}])
        assert normalize_actions(raw)[0]["completed"] is True

    def test_object_of_actions(self) -> None:
        actions = normalize_actions({"0": {"id": "a"}, "1": {"id": "b"}})
        assert [a["id"] for a in actions] == ["a", "b"]

    @pytest.mark.parametrize("raw", [None, 42, "not json", True, "{broken"])
    def test_garbage_becomes_empty(self, raw: object) -> None:
        assert normalize_actions(raw) == []

    def test_missing_id_gets_uuid(self) -> None:
        (action,) = normalize_actions([{"text": "Read"}])
        assert len(action["id"]) == 36

    def test_completed_wins_over_skipped(self) -> None:
        (action,) = normalize_actions([{"id": "a", "completed": True, "skipped": True}])
        assert action["completed"] and not action["skipped"]

    @pytest.mark.parametrize(("raw", "expected"), [("7", 7), (-3, 0), ("x", 0), (None, 0)])
    def test_streak_coercion(self, raw: object, expected: int) -> None:
        (action,) = normalize_actions([{"id": "a", "streak": raw}])
        assert action["streak"] == expected


class TestNormalizeStack:
    def test_legacy_row_keys(self) -> None:
        stack = normalize_stack(
            {
                "id": "s",
                "title": "Legacy",
                "actions": "[]",
                "schedule_type": "interval",
                "schedule_days": "Monday",
                "is_schedulable": False,
                "start_date": "2024-01-15T00:00:00.000Z",
                "day_of_month": 40,
                "is_expanded": "true",
                "interval": "3",
            }
        )
        assert stack is not None
        assert stack["scheduleType"] == const.SCHEDULE_TYPE_INTERVAL
        assert stack["scheduleDays"] == ["Monday"]
        assert stack["isSchedulable"] is False
        assert stack["startDate"] == "2024-01-15"
        assert stack["dayOfMonth"] is None
        assert stack["isExpanded"] is True
        assert stack["interval"] == 3

    def test_unknown_schedule_type_unset(self) -> None:
        stack = normalize_stack({"id": "s", "scheduleType": "fortnightly"})
        assert stack is not None
        assert stack["scheduleType"] is None

    def test_non_dict_dropped(self) -> None:
        assert normalize_stack("stack") is None


class TestNormalizeHabitData:
    def test_non_dict_gives_default(self) -> None:
        assert normalize_habit_data(["nope"]) == build_default_habit_data()

    def test_library_routine_dropped(self) -> None:
        data = normalize_habit_data(
            {"routines": [{"id": const.LIBRARY_ID, "title": "x"}, {"id": "r", "title": "y"}]}
        )
        assert [r["id"] for r in data["routines"]] == ["r"]

    def test_routine_stacks_json_string(self) -> None:
        data = normalize_habit_data(
            {"routines": [{"id": "r", "stacks": json.dumps([{"id": "s", "title": "t"}])}]}
        )
        assert data["routines"][0]["stacks"][0]["id"] == "s"

    def test_bad_ledger_rows_dropped(self) -> None:
        data = normalize_habit_data(
            {
                "meta": {
                    "completionLedger": [
                        {"ownerId": "r", "itemId": "s", "date": "2024-01-15"},
                        {"ownerId": "r", "date": "2024-01-15"},
                        "junk",
                    ]
                }
            }
        )
        assert data["meta"]["completionLedger"] == [
            {"ownerId": "r", "itemId": "s", "date": "2024-01-15"}
        ]


# =============================================================================
# TEST: ROUND TRIP
# =============================================================================


class TestRoundTrip:
    """serialize → JSON → normalize reproduces an equal snapshot."""

    def test_full_snapshot(self) -> None:
        data = make_data(
            routines=[
                make_routine(
                    "r",
                    [
                        make_stack(
                            "s",
                            [
                                make_action("a1", completed=True, streak=3),
                                make_action("a2", skipped=True),
                            ],
                            streak=2,
                            isExpanded=True,
                            scheduleType=const.SCHEDULE_TYPE_BIWEEKLY,
                            scheduleDays=["Monday", "Friday"],
                            interval=2,
                            startDate="2024-01-15",
                        )
                    ],
                    description="Before work",
                    days=["Monday"],
                    streak=5,
                    scheduleType=const.SCHEDULE_TYPE_MONTHLY,
                    interval=1,
                    startDate="2024-01-01",
                    dayOfMonth=1,
                )
            ],
            library=[
                make_stack(
                    "lib",
                    isSchedulable=False,
                    isOneTime=True,
                    scheduleType=const.SCHEDULE_TYPE_ONE_TIME,
                    startDate="2024-02-29",
                )
            ],
        )
        data["meta"]["completionLedger"] = [
            {"ownerId": "r", "itemId": "s", "date": "2024-01-15"}
        ]

        restored = normalize_habit_data(json.loads(json.dumps(serialize_habit_data(data))))
        assert restored == data
