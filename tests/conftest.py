"""Shared fixtures for routinestack tests."""

from __future__ import annotations

from datetime import date

import pytest

from routinestack import const
from routinestack.type_defs import HabitData
from tests.helpers import make_action, make_data, make_routine, make_weekly_stack


class FakeClock:
    """Injectable clock whose date tests can move."""

    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture
def monday() -> date:
    """A fixed Monday."""
    return date(2024, 1, 15)


@pytest.fixture
def clock(monday: date) -> FakeClock:
    """Clock pinned to Monday 2024-01-15."""
    return FakeClock(monday)


@pytest.fixture
def morning_data() -> HabitData:
    """Snapshot with a Monday routine of two stacks plus one library stack."""
    return make_data(
        routines=[
            make_routine(
                "morning",
                [
                    make_weekly_stack(
                        "wake",
                        ["Monday"],
                        [make_action("w1"), make_action("w2")],
                    ),
                    make_weekly_stack(
                        "stretch",
                        ["Monday"],
                        [make_action("s1")],
                    ),
                ],
                days=["Monday"],
                scheduleType=const.SCHEDULE_TYPE_WEEKLY,
            )
        ],
        library=[
            make_weekly_stack(
                "reading",
                ["Monday"],
                [make_action("r1", streak=4)],
                streak=3,
                isSchedulable=False,
            )
        ],
    )
