"""Month grid for the availability calendar.

Weeks start on Monday. Labels use the single locale the service ships
(Russian).
"""

from __future__ import annotations

import calendar
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date

from datefinder.aggregation import AggregationEngine, HeatLevel, heat_level
from datefinder.dates import DateWindow, parse_date
from datefinder.models.event import Participant
from datefinder.selectability import Selectability, describe

MONTH_NAMES = (
    "Январь", "Февраль", "Март", "Апрель", "Май", "Июнь",
    "Июль", "Август", "Сентябрь", "Октябрь", "Ноябрь", "Декабрь",
)
MONTH_ABBREVIATIONS = (
    "янв.", "февр.", "мар.", "апр.", "мая", "июн.",
    "июл.", "авг.", "сент.", "окт.", "нояб.", "дек.",
)
WEEKDAY_LABELS = ("Пн", "Вт", "Ср", "Чт", "Пт", "Сб", "Вс")


@dataclass(frozen=True)
class DayCell:
    date: str
    day: int
    selectability: Selectability
    is_today: bool
    selected: bool
    count: int
    heat: HeatLevel


@dataclass(frozen=True)
class MonthGrid:
    year: int
    month: int
    leading_blanks: int
    cells: tuple[DayCell, ...]

    @property
    def label(self) -> str:
        return month_label(self.year, self.month)


def month_label(year: int, month: int) -> str:
    return f"{MONTH_NAMES[month - 1]} {year}"


def short_label(day: str) -> str:
    """Chart label such as ``10 янв.``."""
    d = parse_date(day)
    return f"{d.day} {MONTH_ABBREVIATIONS[d.month - 1]}"


def previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def build_month(
    year: int,
    month: int,
    window: DateWindow,
    today: date,
    participants: Mapping[str, Participant],
    participant_id: str | None = None,
) -> MonthGrid:
    first_weekday, days_in_month = calendar.monthrange(year, month)
    engine = AggregationEngine(participants)
    counts = engine.vote_counts()
    viewer = participants.get(participant_id) if participant_id else None
    selected = viewer.dates if viewer else frozenset()

    cells = []
    for day in range(1, days_in_month + 1):
        current = date(year, month, day)
        key = current.isoformat()
        status = describe(current, window, today)
        count = counts.get(key, 0)
        cells.append(
            DayCell(
                date=key,
                day=day,
                selectability=status.selectability,
                is_today=status.is_today,
                selected=key in selected,
                count=count,
                heat=heat_level(count, engine.participant_count),
            )
        )
    # monthrange() already counts weekdays from Monday = 0
    return MonthGrid(year=year, month=month, leading_blanks=first_weekday, cells=tuple(cells))
