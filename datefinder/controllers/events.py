import logging
from datetime import date
from typing import Optional, List

from fastapi import APIRouter, Query
from pydantic import BaseModel, field_validator, model_validator

from datefinder.aggregation import AggregationEngine
from datefinder.config import get_settings
from datefinder.dates import DateWindow, is_calendar_date, local_today, parse_date
from datefinder.dependencies import OptionalBus, Store
from datefinder.models.event import (
    AggregationResultModel,
    CalendarCell,
    CalendarMonthResponse,
    CreateEventResponse,
    EventData,
    EventView,
    ParticipantDatesResponse,
    ParticipantRef,
)
from datefinder.month_view import (
    WEEKDAY_LABELS,
    build_month,
    month_label,
    next_month,
    previous_month,
    short_label,
)
from datefinder.producers import event_producer

logger = logging.getLogger("datefinder.events")
router = APIRouter(tags=["events"])


def _validate_date(v: str) -> str:
    if not is_calendar_date(v):
        raise ValueError(f"invalid date format: {v}")
    return v


def _resolve_today(raw: Optional[str]) -> date:
    return parse_date(raw) if raw else local_today()


class CreateEventRequest(BaseModel):
    name: str
    creator_name: str
    creator_id: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    month: Optional[int] = None
    year: Optional[int] = None

    @field_validator("name", "creator_name")
    @classmethod
    def validate_length(cls, v: str) -> str:
        if len(v) > 200:
            raise ValueError("must be at most 200 characters")
        return v

    @field_validator("start", "end")
    @classmethod
    def validate_dates(cls, v: Optional[str]) -> Optional[str]:
        return _validate_date(v) if v is not None else v

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= 12:
            raise ValueError("month must be 1-12")
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "CreateEventRequest":
        has_range = self.start is not None and self.end is not None
        has_month = self.month is not None and self.year is not None
        if not has_range and not has_month:
            raise ValueError("either start and end, or month and year, are required")
        return self

    def window(self) -> DateWindow:
        if self.start is not None and self.end is not None:
            return DateWindow.normalize(self.start, self.end)
        return DateWindow.for_month(self.year, self.month)


class ToggleDateRequest(BaseModel):
    date: str
    name: str
    today: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return _validate_date(v)

    @field_validator("today")
    @classmethod
    def validate_today(cls, v: Optional[str]) -> Optional[str]:
        return _validate_date(v) if v is not None else v


class ReplaceDatesRequest(BaseModel):
    name: str
    dates: List[str]

    @field_validator("dates")
    @classmethod
    def validate_dates(cls, v: List[str]) -> List[str]:
        for d in v:
            _validate_date(d)
        return v


def build_event_view(event: EventData, limit: int) -> EventView:
    engine = AggregationEngine(event.participants)
    ranked = [
        AggregationResultModel(
            date=r.date,
            label=short_label(r.date),
            count=r.count,
            voter_names=list(r.voter_names),
            absent_names=list(r.absent_names),
        )
        for r in engine.ranked_dates(limit)
    ]
    return EventView(
        event=event,
        participant_count=engine.participant_count,
        vote_counts=engine.vote_counts(),
        ranked_dates=ranked,
        max_count=engine.max_count(),
        participants=engine.participant_summaries(),
    )


@router.post("/events", status_code=201, response_model=CreateEventResponse)
async def create_event(req: CreateEventRequest, store: Store) -> CreateEventResponse:
    window = req.window()
    logger.info("POST /events name=%s window=%s..%s", req.name, window.start, window.end)
    event_id, creator = await event_producer.create_event(
        store,
        req.name,
        window,
        req.creator_name,
        creator_id=req.creator_id,
        participant_id_length=get_settings().events.participant_id_length,
    )
    return CreateEventResponse(event_id=event_id, creator=ParticipantRef(id=creator.id, name=creator.name))


@router.get("/events/{event_id}", response_model=EventView)
async def get_event(
    event_id: str,
    store: Store,
    limit: Optional[int] = Query(None, ge=1, le=366, description="Number of ranked dates"),
) -> EventView:
    event = await event_producer.load_event(store, event_id)
    return build_event_view(event, limit or get_settings().events.ranking_limit)


@router.get("/events/{event_id}/ranking", response_model=List[AggregationResultModel])
async def get_ranking(
    event_id: str,
    store: Store,
    limit: Optional[int] = Query(None, ge=1, le=366),
) -> List[AggregationResultModel]:
    event = await event_producer.load_event(store, event_id)
    return build_event_view(event, limit or get_settings().events.ranking_limit).ranked_dates


@router.get("/events/{event_id}/calendar", response_model=CalendarMonthResponse)
async def get_calendar(
    event_id: str,
    store: Store,
    year: Optional[int] = Query(None, ge=1, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    participant_id: Optional[str] = Query(None),
    today: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
) -> CalendarMonthResponse:
    event = await event_producer.load_event(store, event_id)
    year = year or event.window.start.year
    month = month or event.window.start.month
    grid = build_month(year, month, event.window, _resolve_today(today), event.participants, participant_id)
    prev_year, prev_month = previous_month(year, month)
    next_year, next_month_ = next_month(year, month)
    return CalendarMonthResponse(
        year=year,
        month=month,
        label=month_label(year, month),
        weekdays=list(WEEKDAY_LABELS),
        leading_blanks=grid.leading_blanks,
        cells=[
            CalendarCell(
                date=c.date,
                day=c.day,
                selectability=c.selectability.value,
                is_today=c.is_today,
                selected=c.selected,
                count=c.count,
                heat=int(c.heat),
            )
            for c in grid.cells
        ],
        previous={"year": prev_year, "month": prev_month},
        next={"year": next_year, "month": next_month_},
    )


@router.post("/events/{event_id}/participants/{participant_id}/toggle", response_model=ParticipantDatesResponse)
async def toggle_date(
    event_id: str,
    participant_id: str,
    req: ToggleDateRequest,
    store: Store,
    bus: OptionalBus,
) -> ParticipantDatesResponse:
    logger.info("POST /events/%s/participants/%s/toggle date=%s", event_id, participant_id, req.date)
    participant = await event_producer.toggle_participant_date(
        store, bus, event_id, participant_id, req.name, req.date, _resolve_today(req.today)
    )
    return ParticipantDatesResponse(event_id=event_id, participant=participant)


@router.put("/events/{event_id}/participants/{participant_id}", response_model=ParticipantDatesResponse)
async def replace_dates(
    event_id: str,
    participant_id: str,
    req: ReplaceDatesRequest,
    store: Store,
    bus: OptionalBus,
) -> ParticipantDatesResponse:
    logger.info("PUT /events/%s/participants/%s dates=%d", event_id, participant_id, len(req.dates))
    participant = await event_producer.replace_participant_dates(
        store, bus, event_id, participant_id, req.name, req.dates
    )
    return ParticipantDatesResponse(event_id=event_id, participant=participant)
