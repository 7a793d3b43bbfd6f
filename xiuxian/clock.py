"""Game calendar arithmetic.

Time advances in ke (96 per day).  Days roll into ten-day periods, three
ten-days make a month and twelve months make a year.
"""

from __future__ import annotations

from .models.time import (
    DAYS_PER_TEN_DAY,
    KE_PER_DAY,
    MONTHS_PER_YEAR,
    TEN_DAYS_PER_MONTH,
    GameTime,
)


def create_initial_time() -> GameTime:
    return GameTime(ke=1, day=1, ten_day=1, month=1, year=1)


def advance_time(time: GameTime, ke_delta: int = 1) -> GameTime:
    """Return ``time`` moved forward by ``ke_delta`` ke.

    Any delta is carried through every unit, so advancing by ``a`` then ``b``
    equals advancing by ``a + b``.
    """

    if ke_delta < 0:
        raise ValueError("Game time cannot move backwards")

    day_carry, ke = divmod(time.ke - 1 + ke_delta, KE_PER_DAY)
    ten_day_carry, day = divmod(time.day - 1 + day_carry, DAYS_PER_TEN_DAY)
    month_carry, ten_day = divmod(time.ten_day - 1 + ten_day_carry, TEN_DAYS_PER_MONTH)
    year_carry, month = divmod(time.month - 1 + month_carry, MONTHS_PER_YEAR)
    return GameTime(
        ke=ke + 1,
        day=day + 1,
        ten_day=ten_day + 1,
        month=month + 1,
        year=time.year + year_carry,
    )


def is_new_day(old: GameTime, new: GameTime) -> bool:
    return (
        old.day != new.day
        or old.ten_day != new.ten_day
        or old.month != new.month
        or old.year != new.year
    )


def is_new_ten_day(old: GameTime, new: GameTime) -> bool:
    return old.ten_day != new.ten_day or old.month != new.month or old.year != new.year


def is_new_month(old: GameTime, new: GameTime) -> bool:
    return old.month != new.month or old.year != new.year


def is_new_year(old: GameTime, new: GameTime) -> bool:
    return old.year != new.year


def compare_times(a: GameTime, b: GameTime) -> int:
    """Negative when ``a`` is earlier than ``b``, zero when equal, positive otherwise."""

    return a.total_ke() - b.total_ke()


def format_time(time: GameTime) -> str:
    return f"Year {time.year}, Month {time.month}, Day {time.day_of_month}"


def format_time_detailed(time: GameTime) -> str:
    return f"{format_time(time)}, Ke {time.ke}"


__all__ = [
    "advance_time",
    "compare_times",
    "create_initial_time",
    "format_time",
    "format_time_detailed",
    "is_new_day",
    "is_new_month",
    "is_new_ten_day",
    "is_new_year",
]
