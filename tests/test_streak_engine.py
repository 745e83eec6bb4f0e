"""Tests for StreakEngine and CompletionLedger.

Covers the weekly Monday scenarios (complete on schedule, complete off
schedule, routine completion), same-day idempotence, skip cascades and the
end-of-day reset.
"""

from __future__ import annotations

from datetime import date

import pytest

from routinestack import const
from routinestack.engines.aggregate_engine import AggregateEngine
from routinestack.engines.stack_engine import StackEngine
from routinestack.engines.streak_engine import CompletionLedger, StreakEngine
from routinestack.type_defs import LIBRARY, RoutineParent
from tests.helpers import (
    make_action,
    make_data,
    make_routine,
    make_stack,
    make_weekly_stack,
    routine_stack,
    stack_action,
)

MONDAY = date(2024, 1, 15)
TUESDAY = date(2024, 1, 16)
ROUTINE = RoutineParent("r")


def monday_routine(*stacks, **fields):
    return make_data(routines=[make_routine("r", list(stacks), **fields)])


# =============================================================================
# TEST: COMPLETION LEDGER
# =============================================================================


class TestCompletionLedger:
    """Last-completed dates per (owner, item)."""

    def test_record_and_query(self) -> None:
        ledger = CompletionLedger()
        ledger.record("s1", "a1", MONDAY)
        assert ledger.completed_on("s1", "a1", MONDAY)
        assert not ledger.completed_on("s1", "a1", TUESDAY)
        assert ledger.last_completed("s1", "a1") == MONDAY
        assert ledger.last_completed("s1", "a2") is None

    def test_prune_drops_older_entries(self) -> None:
        ledger = CompletionLedger()
        ledger.record("s1", "a1", MONDAY)
        ledger.record("s1", "a2", TUESDAY)
        assert ledger.prune(TUESDAY) == 1
        assert ("s1", "a1") not in ledger
        assert ("s1", "a2") in ledger

    def test_entries_round_trip(self) -> None:
        ledger = CompletionLedger()
        ledger.record("routines", "r", MONDAY)
        ledger.record("library", "s", TUESDAY)
        assert CompletionLedger.from_entries(ledger.to_entries()) == ledger

    def test_bad_dates_skipped(self) -> None:
        ledger = CompletionLedger.from_entries(
            [{"ownerId": "s", "itemId": "a", "date": "not-a-date"}]
        )
        assert len(ledger) == 0

    def test_copy_is_independent(self) -> None:
        ledger = CompletionLedger()
        clone = ledger.copy()
        clone.record("s", "a", MONDAY)
        assert len(ledger) == 0


# =============================================================================
# TEST: TRACKING POLICY
# =============================================================================


class TestShouldTrackStreak:
    """Which items build streaks."""

    @pytest.mark.parametrize(
        ("fields", "expected"),
        [
            ({"scheduleType": const.SCHEDULE_TYPE_WEEKLY}, True),
            ({"scheduleType": const.SCHEDULE_TYPE_DAILY}, True),
            ({"scheduleType": const.SCHEDULE_TYPE_INTERVAL}, True),
            ({"scheduleType": None}, False),
            ({"scheduleType": const.SCHEDULE_TYPE_NONE}, False),
            ({"scheduleType": const.SCHEDULE_TYPE_ONE_TIME}, False),
            (
                {"scheduleType": const.SCHEDULE_TYPE_WEEKLY, "isSchedulable": False},
                False,
            ),
        ],
    )
    def test_policy(self, fields: dict, expected: bool) -> None:
        assert StreakEngine.should_track_streak(make_stack("s", **fields)) is expected


# =============================================================================
# TEST: COMPLETE ACTION
# =============================================================================


class TestCompleteAction:
    """Completion on and off schedule."""

    def test_completion_on_due_day(self) -> None:
        """Monday stack completed on Monday: every streak moves to 1."""
        data = monday_routine(
            make_weekly_stack("s", ["Monday"], [make_action("a1"), make_action("a2")])
        )
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a1", MONDAY)
        assert routine_stack(data, "r", "s")["streak"] == 0
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a2", MONDAY)

        stack = routine_stack(data, "r", "s")
        assert stack["streak"] == 1
        assert stack_action(stack, "a1")["streak"] == 1
        assert stack_action(stack, "a2")["streak"] == 1
        assert StackEngine.is_stack_completed(stack)

    def test_completion_when_not_due_earns_no_credit(self) -> None:
        """Monday stack completed on Tuesday: allowed, but no streaks move."""
        data = monday_routine(
            make_weekly_stack("s", ["Monday"], [make_action("a1"), make_action("a2")])
        )
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a1", TUESDAY)
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a2", TUESDAY)

        stack = routine_stack(data, "r", "s")
        assert stack["streak"] == 0
        assert [a["streak"] for a in stack["actions"]] == [0, 0]
        assert all(a["completed"] for a in stack["actions"])
        assert StackEngine.is_stack_completed(stack)

    def test_routine_completes_after_last_due_stack(self) -> None:
        """Routine completes only once every due stack is fully completed."""
        data = monday_routine(
            make_weekly_stack("s1", ["Monday"], [make_action("a")]),
            make_weekly_stack("s2", ["Monday"], [make_action("b")]),
            streak=4,
        )
        data = StreakEngine.complete_action(data, ROUTINE, "s1", "a", MONDAY)
        routine = data["routines"][0]
        assert not StackEngine.is_routine_completed(routine, MONDAY)
        assert routine["streak"] == 4

        data = StreakEngine.complete_action(data, ROUTINE, "s2", "b", MONDAY)
        routine = data["routines"][0]
        assert StackEngine.is_routine_completed(routine, MONDAY)
        assert routine["streak"] == 5
        assert not any(s["isExpanded"] for s in routine["stacks"])

    def test_same_day_completion_is_idempotent(self) -> None:
        data = monday_routine(make_weekly_stack("s", ["Monday"], [make_action("a")]))
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)

        stack = routine_stack(data, "r", "s")
        assert stack_action(stack, "a")["streak"] == 1
        assert stack["streak"] == 1
        assert data["routines"][0]["streak"] == 1

    def test_completion_on_next_occurrence_increments_again(self) -> None:
        data = monday_routine(make_weekly_stack("s", ["Monday"], [make_action("a")]))
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)
        data = StreakEngine.reset_completed_items(data, MONDAY)
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", date(2024, 1, 22))

        stack = routine_stack(data, "r", "s")
        assert stack["streak"] == 2
        assert stack_action(stack, "a")["streak"] == 2

    def test_one_time_stack_never_tracks(self) -> None:
        data = monday_routine(
            make_stack(
                "s",
                [make_action("a")],
                scheduleType=const.SCHEDULE_TYPE_ONE_TIME,
                startDate=MONDAY.isoformat(),
            )
        )
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)
        stack = routine_stack(data, "r", "s")
        assert stack["streak"] == 0
        assert stack_action(stack, "a")["streak"] == 0
        assert data["routines"][0]["streak"] == 0

    def test_legacy_routine_builds_no_streak(self) -> None:
        """Untyped stacks on weekdays: complete, miss, complete leaves no streak."""
        data = monday_routine(
            make_stack("s", [make_action("a")], scheduleDays=["Monday"]),
            days=["Monday"],
        )
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)
        assert StackEngine.is_routine_completed(data["routines"][0], MONDAY)
        data = StreakEngine.reset_completed_items(data, MONDAY)
        data = StreakEngine.reset_completed_items(data, date(2024, 1, 22))
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", date(2024, 1, 29))

        assert data["routines"][0]["streak"] == 0
        assert routine_stack(data, "r", "s")["streak"] == 0

    def test_mixed_routine_credited_whichever_stack_finishes_last(self) -> None:
        data = monday_routine(
            make_weekly_stack("tracked", ["Monday"], [make_action("a")]),
            make_stack("legacy", [make_action("b")], scheduleDays=["Monday"]),
        )
        data = StreakEngine.complete_action(data, ROUTINE, "tracked", "a", MONDAY)
        data = StreakEngine.complete_action(data, ROUTINE, "legacy", "b", MONDAY)
        assert data["routines"][0]["streak"] == 1

    def test_routine_with_no_due_stacks_cannot_complete(self) -> None:
        data = monday_routine(make_weekly_stack("s", ["Friday"], [make_action("a")]))
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)
        assert data["routines"][0]["streak"] == 0

    def test_auto_expands_next_due_stack(self) -> None:
        data = monday_routine(
            make_weekly_stack("s1", ["Monday"], [make_action("a")], isExpanded=True),
            make_weekly_stack("s2", ["Monday"], [make_action("b")]),
        )
        data = StreakEngine.complete_action(data, ROUTINE, "s1", "a", MONDAY)
        assert not routine_stack(data, "r", "s1")["isExpanded"]
        assert routine_stack(data, "r", "s2")["isExpanded"]

    def test_library_stack_completion(self) -> None:
        data = make_data(
            library=[make_weekly_stack("lib", ["Monday"], [make_action("a")])]
        )
        data = StreakEngine.complete_action(data, LIBRARY, "lib", "a", MONDAY)
        assert data["unscheduledStacks"][0]["streak"] == 1
        ledger = CompletionLedger.from_data(data)
        assert ledger.completed_on(const.LIBRARY_ID, "lib", MONDAY)

    def test_unknown_ids_are_noops(self, caplog: pytest.LogCaptureFixture) -> None:
        data = monday_routine(make_weekly_stack("s", ["Monday"], [make_action("a")]))
        assert StreakEngine.complete_action(data, ROUTINE, "nope", "a", MONDAY) is data
        assert StreakEngine.complete_action(data, ROUTINE, "s", "nope", MONDAY) is data
        assert (
            StreakEngine.complete_action(data, RoutineParent("x"), "s", "a", MONDAY)
            is data
        )
        assert "not found" in caplog.text

    def test_input_snapshot_not_mutated(self) -> None:
        data = monday_routine(make_weekly_stack("s", ["Monday"], [make_action("a")]))
        StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)
        assert not routine_stack(data, "r", "s")["actions"][0]["completed"]
        assert data["meta"]["completionLedger"] == []


# =============================================================================
# TEST: SKIP ACTION
# =============================================================================


class TestSkipAction:
    """Skip breaks the chain at every level."""

    def test_skip_resets_action_stack_and_routine(self) -> None:
        data = monday_routine(
            make_weekly_stack(
                "s", ["Monday"], [make_action("a1"), make_action("a2", streak=6)], streak=3
            ),
            streak=2,
        )
        data = StreakEngine.skip_action(data, ROUTINE, "s", "a2")

        stack = routine_stack(data, "r", "s")
        assert stack_action(stack, "a2")["streak"] == 0
        assert stack_action(stack, "a2")["skipped"]
        assert stack["streak"] == 0
        assert data["routines"][0]["streak"] == 0

    def test_skip_blocks_stack_streak_that_day(self) -> None:
        data = monday_routine(
            make_weekly_stack("s", ["Monday"], [make_action("a1"), make_action("a2")])
        )
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a1", MONDAY)
        data = StreakEngine.skip_action(data, ROUTINE, "s", "a2")
        stack = routine_stack(data, "r", "s")
        assert StackEngine.is_stack_completed(stack)
        assert stack["streak"] == 0

    def test_skip_after_full_completion_resets_stack(self) -> None:
        data = monday_routine(
            make_weekly_stack("s", ["Monday"], [make_action("a1"), make_action("a2")])
        )
        for action_id in ("a1", "a2"):
            data = StreakEngine.complete_action(data, ROUTINE, "s", action_id, MONDAY)
        assert routine_stack(data, "r", "s")["streak"] == 1

        data = StreakEngine.skip_action(data, ROUTINE, "s", "a1")
        assert routine_stack(data, "r", "s")["streak"] == 0

    def test_complete_after_skip_is_undo_via_redo(self) -> None:
        data = monday_routine(make_weekly_stack("s", ["Monday"], [make_action("a")]))
        data = StreakEngine.skip_action(data, ROUTINE, "s", "a")
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)
        action = stack_action(routine_stack(data, "r", "s"), "a")
        assert action["completed"] and not action["skipped"]

    def test_skip_does_not_auto_advance(self) -> None:
        data = monday_routine(
            make_weekly_stack("s1", ["Monday"], [make_action("a")], isExpanded=True),
            make_weekly_stack("s2", ["Monday"], [make_action("b")]),
        )
        data = StreakEngine.skip_action(data, ROUTINE, "s1", "a")
        assert routine_stack(data, "r", "s1")["isExpanded"]
        assert not routine_stack(data, "r", "s2")["isExpanded"]

    def test_unknown_action_is_noop(self) -> None:
        data = monday_routine(make_weekly_stack("s", ["Monday"], [make_action("a")]))
        assert StreakEngine.skip_action(data, ROUTINE, "s", "missing") is data


# =============================================================================
# TEST: END OF DAY RESET
# =============================================================================


class TestResetCompletedItems:
    """End-of-day flag clearing and missed-streak zeroing."""

    def test_incomplete_due_stack_loses_streak(self) -> None:
        data = monday_routine(
            make_weekly_stack(
                "s",
                ["Monday"],
                [make_action("a1", completed=True, streak=3), make_action("a2", streak=2)],
                streak=5,
            ),
            streak=7,
        )
        data = StreakEngine.reset_completed_items(data, MONDAY)

        stack = routine_stack(data, "r", "s")
        assert stack["streak"] == 0
        assert stack_action(stack, "a1")["streak"] == 3
        assert stack_action(stack, "a2")["streak"] == 0
        assert not any(a["completed"] or a["skipped"] for a in stack["actions"])
        assert data["routines"][0]["streak"] == 0

    def test_completed_items_keep_streaks(self) -> None:
        data = monday_routine(make_weekly_stack("s", ["Monday"], [make_action("a")]))
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)
        data = StreakEngine.reset_completed_items(data, MONDAY)

        stack = routine_stack(data, "r", "s")
        assert stack["streak"] == 1
        assert stack_action(stack, "a") == {
            "id": "a",
            "text": "Action a",
            "completed": False,
            "skipped": False,
            "streak": 1,
        }
        assert data["routines"][0]["streak"] == 1

    def test_credited_stack_keeps_streak_after_new_action(self) -> None:
        """A stack credited that day keeps its streak even if edited afterwards."""
        data = monday_routine(make_weekly_stack("s", ["Monday"], [make_action("a")]))
        data = StreakEngine.complete_action(data, ROUTINE, "s", "a", MONDAY)
        data = AggregateEngine.add_action(data, ROUTINE, "s", "Late addition")
        assert not StackEngine.is_stack_fully_completed(routine_stack(data, "r", "s"))

        data = StreakEngine.reset_completed_items(data, MONDAY)
        stack = routine_stack(data, "r", "s")
        assert stack["streak"] == 1
        assert stack_action(stack, "a")["streak"] == 1
        assert data["routines"][0]["streak"] == 1

    def test_stack_not_due_keeps_streaks(self) -> None:
        data = monday_routine(
            make_weekly_stack("s", ["Friday"], [make_action("a", streak=4)], streak=4),
            streak=4,
        )
        data = StreakEngine.reset_completed_items(data, MONDAY)
        stack = routine_stack(data, "r", "s")
        assert stack["streak"] == 4
        assert stack_action(stack, "a")["streak"] == 4
        assert data["routines"][0]["streak"] == 4

    def test_skipped_action_streak_zeroed(self) -> None:
        data = monday_routine(
            make_weekly_stack("s", ["Friday"], [make_action("a", skipped=True, streak=2)])
        )
        data = StreakEngine.reset_completed_items(data, MONDAY)
        assert stack_action(routine_stack(data, "r", "s"), "a")["streak"] == 0

    def test_library_flags_cleared(self) -> None:
        data = make_data(
            library=[
                make_stack(
                    "lib", [make_action("a", completed=True)], isSchedulable=False
                )
            ]
        )
        data = StreakEngine.reset_completed_items(data, MONDAY)
        assert not data["unscheduledStacks"][0]["actions"][0]["completed"]

    def test_old_ledger_entries_pruned(self) -> None:
        data = monday_routine(make_weekly_stack("s", ["Monday"], [make_action("a")]))
        data["meta"]["completionLedger"] = [
            {"ownerId": "s", "itemId": "a", "date": "2024-01-08"},
            {"ownerId": "r", "itemId": "s", "date": "2024-01-15"},
        ]
        data = StreakEngine.reset_completed_items(data, MONDAY)
        assert data["meta"]["completionLedger"] == [
            {"ownerId": "r", "itemId": "s", "date": "2024-01-15"}
        ]
