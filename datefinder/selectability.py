"""Which calendar days a participant may toggle."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from enum import Enum
from typing import NamedTuple

from datefinder.dates import DateLike, DateWindow, format_date, parse_date
from datefinder.errors import InvalidSelectionError


class Selectability(str, Enum):
    SELECTABLE = "selectable"
    PAST_DATE = "past_date"
    OUTSIDE_WINDOW = "outside_window"


class DayStatus(NamedTuple):
    selectability: Selectability
    is_today: bool

    @property
    def selectable(self) -> bool:
        return self.selectability is Selectability.SELECTABLE


def classify(day: DateLike, window: DateWindow, today: date) -> Selectability:
    """Classify ``day``; past dates win over window membership."""
    d = parse_date(day)
    if d < today:
        return Selectability.PAST_DATE
    if not window.contains(d):
        return Selectability.OUTSIDE_WINDOW
    return Selectability.SELECTABLE


def describe(day: DateLike, window: DateWindow, today: date) -> DayStatus:
    d = parse_date(day)
    return DayStatus(classify(d, window, today), d == today)


def ensure_selectable(day: DateLike, window: DateWindow, today: date) -> str:
    """Return the canonical date string or raise ``InvalidSelectionError``."""
    result = classify(day, window, today)
    if result is Selectability.SELECTABLE:
        return format_date(day)
    if result is Selectability.PAST_DATE:
        detail = "Date is in the past"
    else:
        detail = "Date is outside the event window"
    raise InvalidSelectionError(
        detail=detail,
        date=format_date(day),
        reason=result.value,
    )


def toggle_date(dates: Iterable[str], day: str) -> frozenset[str]:
    current = frozenset(dates)
    if day in current:
        return current - {day}
    return current | {day}


def apply_toggle(
    dates: Iterable[str], day: DateLike, window: DateWindow, today: date
) -> frozenset[str]:
    """Toggle ``day`` in ``dates`` after checking it is selectable."""
    return toggle_date(dates, ensure_selectable(day, window, today))
