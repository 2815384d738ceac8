from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

# 0 = today, 1 = yesterday, 2 = two days ago
MAX_START_OFFSET_DAYS = 2


def fmt_day(d: date) -> str:
    return d.strftime("%Y-%m-%d")


@dataclass(frozen=True, slots=True)
class DateWindow:
    """Inclusive day range. Default is today..today."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"DateWindow start {self.start} is after end {self.end}")

    @classmethod
    def today(cls, *, today: Optional[date] = None) -> "DateWindow":
        d = today or date.today()
        return cls(start=d, end=d)

    @classmethod
    def from_offset(cls, offset_days: int, *, today: Optional[date] = None) -> "DateWindow":
        """Widen the start bound by `offset_days`; the end bound stays at today."""
        off = int(offset_days)
        if off < 0 or off > MAX_START_OFFSET_DAYS:
            raise ValueError(f"offset_days must be within 0..{MAX_START_OFFSET_DAYS}, got {offset_days}")
        d = today or date.today()
        return cls(start=d - timedelta(days=off), end=d)

    @classmethod
    def ordered(cls, a: date, b: date) -> "DateWindow":
        return cls(start=min(a, b), end=max(a, b))

    @property
    def start_str(self) -> str:
        return fmt_day(self.start)

    @property
    def end_str(self) -> str:
        return fmt_day(self.end)
