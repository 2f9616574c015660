import logging
from collections.abc import Iterable
from datetime import date

from datefinder.bus import EventBus
from datefinder.dates import DateLike, DateWindow, format_date
from datefinder.errors import InvalidNameError, InvalidSelectionError, NotFoundError
from datefinder.identity import Identity, generate_id, normalize_name
from datefinder.models.event import EventData, Participant
from datefinder.selectability import apply_toggle
from datefinder.store import EventStore

logger = logging.getLogger("datefinder.events")


async def create_event(
    store: EventStore,
    name: str,
    window: DateWindow,
    creator_name: str,
    creator_id: str | None = None,
    participant_id_length: int = 7,
) -> tuple[str, Identity]:
    event_name = (name or "").strip()
    if not event_name:
        raise InvalidNameError(detail="Event name must not be empty")
    creator = Identity(
        id=creator_id or generate_id(participant_id_length),
        name=normalize_name(creator_name),
    )
    event_id = await store.create_event(event_name, window, creator.name, creator.id)
    logger.info(
        "Created event id=%s window=%s..%s creator=%s",
        event_id, window.start, window.end, creator.id,
    )
    return event_id, creator


async def load_event(store: EventStore, event_id: str) -> EventData:
    event = await store.get_event(event_id)
    if event is None:
        logger.warning("Event not found: %s", event_id)
        raise NotFoundError(event_id=event_id)
    return event


async def publish_snapshot(store: EventStore, bus: EventBus | None, event_id: str) -> EventData | None:
    """Re-read the stored event and push it to subscribers."""
    event = await store.get_event(event_id)
    if event is None or bus is None:
        return event
    try:
        await bus.publish_snapshot(event)
    except Exception:
        # The write itself succeeded; subscribers resync on the next snapshot.
        logger.warning("Failed to publish snapshot for event %s", event_id, exc_info=True)
    return event


async def toggle_participant_date(
    store: EventStore,
    bus: EventBus | None,
    event_id: str,
    participant_id: str,
    participant_name: str,
    day: DateLike,
    today: date,
) -> Participant:
    name = normalize_name(participant_name)
    event = await load_event(store, event_id)
    current = event.participants.get(participant_id)
    dates = apply_toggle(current.dates if current else (), day, event.window, today)
    await store.replace_participant_dates(event_id, participant_id, name, dates)
    logger.info(
        "Toggled %s for participant=%s on event=%s (now %d dates)",
        format_date(day), participant_id, event_id, len(dates),
    )
    await publish_snapshot(store, bus, event_id)
    return Participant(id=participant_id, name=name, dates=dates)


async def replace_participant_dates(
    store: EventStore,
    bus: EventBus | None,
    event_id: str,
    participant_id: str,
    participant_name: str,
    dates: Iterable[str],
) -> Participant:
    name = normalize_name(participant_name)
    canonical = set()
    for d in dates:
        try:
            canonical.add(format_date(d))
        except ValueError:
            raise InvalidSelectionError(detail=f"Invalid date: {d}", date=str(d)) from None
    await store.replace_participant_dates(event_id, participant_id, name, canonical)
    logger.info(
        "Replaced dates for participant=%s on event=%s (%d dates)",
        participant_id, event_id, len(canonical),
    )
    await publish_snapshot(store, bus, event_id)
    return Participant(id=participant_id, name=name, dates=frozenset(canonical))


async def bind_participant(
    store: EventStore,
    bus: EventBus | None,
    event: EventData,
    identity: Identity,
) -> Participant:
    """Make sure the resolved identity has an entry on the event.

    A new participant starts with no dates; an existing one keeps its dates
    and takes the (possibly changed) name.
    """
    existing = event.participants.get(identity.id)
    if existing is not None and existing.name == identity.name:
        return existing
    dates = existing.dates if existing else frozenset()
    await store.replace_participant_dates(event.id, identity.id, identity.name, dates)
    logger.info("Bound participant id=%s to event=%s", identity.id, event.id)
    await publish_snapshot(store, bus, event.id)
    return Participant(id=identity.id, name=identity.name, dates=dates)
