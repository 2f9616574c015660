"""Calendar dates and the inclusive date window of an event.

Dates travel as canonical ``YYYY-MM-DD`` strings; lexical order of such
strings is chronological order, so most of the code compares strings and
only parses into ``datetime.date`` where arithmetic is needed.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from datefinder.errors import InvalidRangeError

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = date | str


def parse_date(value: DateLike) -> date:
    """Parse a ``YYYY-MM-DD`` string (or pass a ``date`` through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not DATE_RE.match(value):
        raise ValueError(f"invalid date format: {value}")
    return date.fromisoformat(value)


def format_date(value: DateLike) -> str:
    return parse_date(value).isoformat()


def is_calendar_date(value: str) -> bool:
    try:
        parse_date(value)
    except ValueError:
        return False
    return True


def local_today() -> date:
    # Local wall clock, midnight; no timezone conversion.
    return datetime.now().date()


class _DaySequence:
    """Finite, restartable sequence of date strings."""

    def __init__(self, start: date, end: date) -> None:
        self._start = start
        self._end = end

    def __iter__(self) -> Iterator[str]:
        day = self._start
        while day <= self._end:
            yield day.isoformat()
            day += timedelta(days=1)

    def __len__(self) -> int:
        return (self._end - self._start).days + 1


@dataclass(frozen=True)
class DateWindow:
    start: date
    end: date  # inclusive

    @classmethod
    def normalize(cls, raw_start: DateLike, raw_end: DateLike) -> DateWindow:
        start = parse_date(raw_start)
        end = parse_date(raw_end)
        if start > end:
            raise InvalidRangeError(
                detail=f"Window start {start.isoformat()} is after end {end.isoformat()}",
                start=start.isoformat(),
                end=end.isoformat(),
            )
        return cls(start=start, end=end)

    @classmethod
    def for_month(cls, year: int, month: int) -> DateWindow:
        """Whole calendar month; ``month`` is 1-based."""
        last_day = calendar.monthrange(year, month)[1]
        return cls(start=date(year, month, 1), end=date(year, month, last_day))

    @classmethod
    def from_legacy(cls, month: int, year: int) -> DateWindow:
        """Window for legacy documents, which store a 0-based month."""
        return cls.for_month(year, month + 1)

    def days_between(self) -> _DaySequence:
        return _DaySequence(self.start, self.end)

    def contains(self, day: DateLike) -> bool:
        return self.start <= parse_date(day) <= self.end

    def to_document(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}
