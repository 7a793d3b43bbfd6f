from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from xiuxian.clock import (
    advance_time,
    compare_times,
    create_initial_time,
    format_time,
    is_new_day,
    is_new_month,
    is_new_year,
)
from xiuxian.models.time import GameTime


def test_advancing_past_the_last_ke_rolls_into_a_new_day() -> None:
    start = GameTime(ke=96, day=3, ten_day=1, month=1, year=1)

    result = advance_time(start)

    assert result == GameTime(ke=1, day=4, ten_day=1, month=1, year=1)
    assert is_new_day(start, result)


def test_year_rollover_carries_through_every_unit() -> None:
    start = GameTime(ke=96, day=10, ten_day=3, month=12, year=7)

    result = advance_time(start)

    assert result == GameTime(ke=1, day=1, ten_day=1, month=1, year=8)
    assert is_new_month(start, result)
    assert is_new_year(start, result)


@pytest.mark.parametrize("first, second", [(1, 1), (95, 2), (400, 3000), (0, 96 * 360)])
def test_advance_is_associative(first: int, second: int) -> None:
    start = GameTime(ke=17, day=9, ten_day=2, month=11, year=3)

    stepwise = advance_time(advance_time(start, first), second)
    combined = advance_time(start, first + second)

    assert stepwise == combined
    assert compare_times(combined, start) == first + second


def test_advance_rejects_negative_deltas() -> None:
    with pytest.raises(ValueError):
        advance_time(create_initial_time(), -1)


def test_ticks_within_a_day_are_not_a_new_day() -> None:
    start = create_initial_time()

    assert not is_new_day(start, advance_time(start, 95))
    assert is_new_day(start, advance_time(start, 96))


def test_format_time_uses_day_of_month() -> None:
    assert format_time(GameTime(ke=5, day=4, ten_day=2, month=6, year=2)) == "Year 2, Month 6, Day 14"
