import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from datefinder.dates import DateWindow, is_calendar_date

logger = logging.getLogger("datefinder.models")

ANONYMOUS_NAME = "Аноним"


class Participant(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    dates: frozenset[str] = frozenset()

    @field_serializer("dates")
    def _sorted_dates(self, dates: frozenset[str]) -> list[str]:
        return sorted(dates)

    def to_document(self) -> dict[str, Any]:
        return {"name": self.name, "dates": sorted(self.dates)}


class EventData(BaseModel):
    """The event aggregate as stored and as pushed to subscribers."""

    id: str
    name: str
    window: DateWindow
    participants: dict[str, Participant] = Field(default_factory=dict)
    created_at: int

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], event_id: str | None = None) -> "EventData":
        """Build an event from a stored document, coercing malformed entries."""
        eid = str(doc.get("id") or event_id or "")
        window_doc = doc.get("window")
        if isinstance(window_doc, Mapping):
            window = DateWindow.normalize(window_doc["start"], window_doc["end"])
        else:
            window = DateWindow.from_legacy(int(doc["month"]), int(doc["year"]))
        participants: dict[str, Participant] = {}
        raw = doc.get("participants") or {}
        for pid, entry in raw.items():
            participant = coerce_participant(str(pid), entry)
            if participant is None:
                logger.warning("Dropping malformed participant %s on event %s", pid, eid)
                continue
            participants[participant.id] = participant
        created_at = doc.get("created_at", doc.get("createdAt", 0))
        return cls(
            id=eid,
            name=str(doc.get("name") or ""),
            window=window,
            participants=participants,
            created_at=int(created_at or 0),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "window": self.window.to_document(),
            "participants": {pid: p.to_document() for pid, p in self.participants.items()},
            "created_at": self.created_at,
        }


def coerce_participant(pid: str, entry: Any) -> Participant | None:
    if not isinstance(entry, Mapping):
        return None
    name = entry.get("name")
    name = name.strip() if isinstance(name, str) else ""
    raw_dates = entry.get("dates") or []
    if isinstance(raw_dates, str):
        raw_dates = [raw_dates]
    dates = frozenset(d for d in raw_dates if isinstance(d, str) and is_calendar_date(d))
    return Participant(id=pid, name=name or ANONYMOUS_NAME, dates=dates)


class ParticipantRef(BaseModel):
    id: str
    name: str


class AggregationResultModel(BaseModel):
    date: str
    label: str
    count: int
    voter_names: list[str]
    absent_names: list[str]


class ParticipantSummary(BaseModel):
    id: str
    name: str
    initial: str
    date_count: int
    dates: list[str]


class EventView(BaseModel):
    event: EventData
    participant_count: int
    vote_counts: dict[str, int]
    ranked_dates: list[AggregationResultModel]
    max_count: int
    participants: list[ParticipantSummary]


class CreateEventResponse(BaseModel):
    event_id: str
    creator: ParticipantRef


class ParticipantDatesResponse(BaseModel):
    event_id: str
    participant: Participant


class IdentityOutcomeResponse(BaseModel):
    status: str
    id: str | None = None
    name: str | None = None
    matched_id: str | None = None
    matched_name: str | None = None


class CalendarCell(BaseModel):
    date: str
    day: int
    selectability: str
    is_today: bool
    selected: bool
    count: int
    heat: int


class CalendarMonthResponse(BaseModel):
    year: int
    month: int
    label: str
    weekdays: list[str]
    leading_blanks: int
    cells: list[CalendarCell]
    previous: dict[str, int]
    next: dict[str, int]
