import logging
from functools import partial
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from datefinder.config import get_settings
from datefinder.dependencies import DeviceIdentity, OptionalBus, Store
from datefinder.identity import Accept, IdentityReconciler, ReconcilerState, generate_id
from datefinder.models.event import IdentityOutcomeResponse
from datefinder.producers import event_producer

logger = logging.getLogger("datefinder.identity")
router = APIRouter(prefix="/events/{event_id}/identity", tags=["identity"])


class ProposeNameRequest(BaseModel):
    name: str
    caller_id: Optional[str] = None


class ConfirmRequest(BaseModel):
    matched_id: str


async def _reconciler(identity_store: DeviceIdentity) -> IdentityReconciler:
    id_length = get_settings().events.participant_id_length
    return await IdentityReconciler.restore(identity_store, partial(generate_id, id_length))


@router.get("", response_model=IdentityOutcomeResponse, response_model_exclude_none=True)
async def current_identity(event_id: str, identity_store: DeviceIdentity) -> IdentityOutcomeResponse:
    pending = await identity_store.load_pending()
    if pending is not None:
        return IdentityOutcomeResponse(
            status=ReconcilerState.CONFIRM.value,
            matched_id=pending.matched_id,
            matched_name=pending.matched_name,
        )
    identity = await identity_store.load()
    if identity is None:
        return IdentityOutcomeResponse(status=ReconcilerState.INPUT.value)
    return IdentityOutcomeResponse(status=ReconcilerState.RESOLVED.value, id=identity.id, name=identity.name)


@router.post("", response_model=IdentityOutcomeResponse, response_model_exclude_none=True)
async def propose_name(
    event_id: str,
    req: ProposeNameRequest,
    store: Store,
    bus: OptionalBus,
    identity_store: DeviceIdentity,
) -> IdentityOutcomeResponse:
    event = await event_producer.load_event(store, event_id)
    reconciler = await _reconciler(identity_store)
    caller_id = req.caller_id
    if caller_id is None:
        stored = await identity_store.load()
        caller_id = stored.id if stored else None

    # participant entry first, device identity second
    outcome = await reconciler.propose(
        req.name,
        caller_id,
        event.participants,
        on_resolved=partial(event_producer.bind_participant, store, bus, event),
    )
    if isinstance(outcome, Accept):
        return IdentityOutcomeResponse(status="accept", id=outcome.id, name=outcome.name)
    return IdentityOutcomeResponse(
        status="needs_confirmation",
        matched_id=outcome.matched_id,
        matched_name=outcome.matched_name,
    )


@router.post("/confirm", response_model=IdentityOutcomeResponse, response_model_exclude_none=True)
async def confirm_identity(
    event_id: str,
    req: ConfirmRequest,
    store: Store,
    bus: OptionalBus,
    identity_store: DeviceIdentity,
) -> IdentityOutcomeResponse:
    event = await event_producer.load_event(store, event_id)
    reconciler = await _reconciler(identity_store)
    resolved = await reconciler.confirm(
        req.matched_id,
        on_resolved=partial(event_producer.bind_participant, store, bus, event),
    )
    return IdentityOutcomeResponse(status=ReconcilerState.RESOLVED.value, id=resolved.id, name=resolved.name)


@router.post("/deny", response_model=IdentityOutcomeResponse, response_model_exclude_none=True)
async def deny_identity(event_id: str, identity_store: DeviceIdentity) -> IdentityOutcomeResponse:
    reconciler = await _reconciler(identity_store)
    await reconciler.deny()
    return IdentityOutcomeResponse(status=ReconcilerState.INPUT.value)
