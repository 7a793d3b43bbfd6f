"""In-game calendar representation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ._validation import FieldSpec, ModelValidator, validate_payload

KE_PER_DAY = 96
DAYS_PER_TEN_DAY = 10
TEN_DAYS_PER_MONTH = 3
MONTHS_PER_YEAR = 12

DAYS_PER_MONTH = DAYS_PER_TEN_DAY * TEN_DAYS_PER_MONTH
DAYS_PER_YEAR = DAYS_PER_MONTH * MONTHS_PER_YEAR


@dataclass(frozen=True, slots=True)
class GameTime:
    """A point on the game calendar. Every unit counts from one."""

    ke: int = 1
    day: int = 1
    ten_day: int = 1
    month: int = 1
    year: int = 1

    def total_ke(self) -> int:
        """Flatten the calendar into a single comparable ke count."""

        return (
            self.year * DAYS_PER_YEAR * KE_PER_DAY
            + self.month * DAYS_PER_MONTH * KE_PER_DAY
            + self.ten_day * DAYS_PER_TEN_DAY * KE_PER_DAY
            + self.day * KE_PER_DAY
            + self.ke
        )

    @property
    def day_of_month(self) -> int:
        return (self.ten_day - 1) * DAYS_PER_TEN_DAY + self.day

    def to_dict(self) -> dict[str, int]:
        return {
            "ke": self.ke,
            "day": self.day,
            "ten_day": self.ten_day,
            "month": self.month,
            "year": self.year,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GameTime":
        payload = validate_payload(cls, data)
        return cls(
            ke=payload["ke"],
            day=payload["day"],
            ten_day=payload["ten_day"],
            month=payload["month"],
            year=payload["year"],
        )


class GameTimeValidator(ModelValidator):
    model = GameTime
    fields = {
        "ke": FieldSpec(int, "a ke between 1 and 96", minimum=1, maximum=KE_PER_DAY),
        "day": FieldSpec(int, "a day between 1 and 10", minimum=1, maximum=DAYS_PER_TEN_DAY),
        "ten_day": FieldSpec(
            int, "a ten-day between 1 and 3", minimum=1, maximum=TEN_DAYS_PER_MONTH
        ),
        "month": FieldSpec(int, "a month between 1 and 12", minimum=1, maximum=MONTHS_PER_YEAR),
        "year": FieldSpec(int, "a positive year", minimum=1),
    }


GameTime.validator = GameTimeValidator


__all__ = [
    "DAYS_PER_TEN_DAY",
    "GameTime",
    "KE_PER_DAY",
    "MONTHS_PER_YEAR",
    "TEN_DAYS_PER_MONTH",
]
