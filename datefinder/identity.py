"""Participant identity reconciliation.

When someone enters a display name that another participant of the event
already uses (case-insensitively), they are asked whether they *are* that
participant. Confirming adopts the existing participant id; denying sends
them back to pick another name.

    INPUT --propose(no match)--> RESOLVED
    INPUT --propose(match)-----> CONFIRM --confirm--> RESOLVED
                                         --deny-----> INPUT

The caller's chosen identity is persisted through an injected
``IdentityStore`` (the per-device "who am I" record). No uniqueness is
enforced across concurrent proposals; two devices confirming the same
participant in the same refresh window both end up bound to it.
"""

from __future__ import annotations

import json
import logging
import secrets
import string
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import redis.asyncio as redis

from datefinder.errors import IdentityStateError, InvalidNameError
from datefinder.models.event import Participant

logger = logging.getLogger("datefinder.identity")

ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(length: int = 7) -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


class ReconcilerState(str, Enum):
    INPUT = "input"
    CONFIRM = "confirm"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Identity:
    id: str
    name: str


@dataclass(frozen=True)
class Accept:
    id: str
    name: str


@dataclass(frozen=True)
class NeedsConfirmation:
    matched_id: str
    matched_name: str


@dataclass(frozen=True)
class Resolved:
    id: str
    name: str


Outcome = Accept | NeedsConfirmation
ResolveHook = Callable[[Identity], Awaitable[None]]


def normalize_name(candidate: str | None) -> str:
    name = (candidate or "").strip()
    if not name:
        raise InvalidNameError()
    return name


def find_collision(
    candidate: str,
    caller_id: str | None,
    participants: Mapping[str, Participant],
) -> Participant | None:
    """First participant (by id) whose name equals ``candidate`` ignoring case.

    The caller's own entry never counts as a collision.
    """
    wanted = candidate.strip().casefold()
    for pid in sorted(participants):
        if pid == caller_id:
            continue
        participant = participants[pid]
        if participant.name.strip().casefold() == wanted:
            return participant
    return None


class IdentityStore(Protocol):
    async def load(self) -> Identity | None: ...

    async def save(self, identity: Identity) -> None: ...

    async def load_pending(self) -> NeedsConfirmation | None: ...

    async def save_pending(self, pending: NeedsConfirmation) -> None: ...

    async def clear_pending(self) -> None: ...


class MemoryIdentityStore:
    def __init__(self, identity: Identity | None = None) -> None:
        self.identity = identity
        self.pending: NeedsConfirmation | None = None

    async def load(self) -> Identity | None:
        return self.identity

    async def save(self, identity: Identity) -> None:
        self.identity = identity

    async def load_pending(self) -> NeedsConfirmation | None:
        return self.pending

    async def save_pending(self, pending: NeedsConfirmation) -> None:
        self.pending = pending

    async def clear_pending(self) -> None:
        self.pending = None


class RedisIdentityStore:
    """Identity of one device, kept in Redis.

    The identity itself is shared by all events (like a browser's local
    storage); a pending confirmation belongs to one event and expires.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        device_id: str,
        event_id: str | None = None,
        prefix: str = "df",
        pending_ttl: int = 900,
    ) -> None:
        self.redis_client = redis_client
        self.identity_key = f"{prefix}:identity:{device_id}"
        self.pending_key = f"{self.identity_key}:pending:{event_id or '-'}"
        self.pending_ttl = pending_ttl

    async def load(self) -> Identity | None:
        raw = await self.redis_client.get(self.identity_key)
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return Identity(id=data["id"], name=data["name"])
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring unreadable identity at %s", self.identity_key)
            return None

    async def save(self, identity: Identity) -> None:
        await self.redis_client.set(
            self.identity_key, json.dumps({"id": identity.id, "name": identity.name})
        )

    async def load_pending(self) -> NeedsConfirmation | None:
        raw = await self.redis_client.get(self.pending_key)
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return NeedsConfirmation(matched_id=data["matched_id"], matched_name=data["matched_name"])
        except (ValueError, KeyError, TypeError):
            return None

    async def save_pending(self, pending: NeedsConfirmation) -> None:
        payload = {"matched_id": pending.matched_id, "matched_name": pending.matched_name}
        await self.redis_client.setex(self.pending_key, self.pending_ttl, json.dumps(payload))

    async def clear_pending(self) -> None:
        await self.redis_client.delete(self.pending_key)


class IdentityReconciler:
    def __init__(
        self,
        store: IdentityStore,
        id_factory: Callable[[], str] = generate_id,
    ) -> None:
        self.store = store
        self.id_factory = id_factory
        self.state = ReconcilerState.INPUT
        self.pending: NeedsConfirmation | None = None
        self.resolved: Resolved | None = None

    @classmethod
    async def restore(
        cls, store: IdentityStore, id_factory: Callable[[], str] = generate_id
    ) -> IdentityReconciler:
        """Rebuild a reconciler, resuming a stored pending confirmation."""
        reconciler = cls(store, id_factory)
        pending = await store.load_pending()
        if pending is not None:
            reconciler.state = ReconcilerState.CONFIRM
            reconciler.pending = pending
        return reconciler

    async def propose(
        self,
        candidate_name: str | None,
        caller_id: str | None,
        participants: Mapping[str, Participant],
        on_resolved: ResolveHook | None = None,
    ) -> Outcome:
        """Accept the name or ask for confirmation.

        ``on_resolved`` runs before anything is stored; if it raises, the
        stored identity and any pending prompt stay as they were.
        """
        name = normalize_name(candidate_name)
        match = find_collision(name, caller_id, participants)
        if match is None:
            identity = Identity(id=caller_id or self.id_factory(), name=name)
            if on_resolved is not None:
                await on_resolved(identity)
            if self.pending is not None:
                await self.store.clear_pending()
                self.pending = None
            await self.store.save(identity)
            self.state = ReconcilerState.RESOLVED
            self.resolved = Resolved(id=identity.id, name=identity.name)
            logger.info("Identity accepted id=%s", identity.id)
            return Accept(id=identity.id, name=identity.name)

        pending = NeedsConfirmation(matched_id=match.id, matched_name=match.name)
        await self.store.save_pending(pending)
        self.state = ReconcilerState.CONFIRM
        self.pending = pending
        logger.info("Name collision with participant id=%s, confirmation required", match.id)
        return pending

    async def confirm(self, matched_id: str, on_resolved: ResolveHook | None = None) -> Resolved:
        if self.state is not ReconcilerState.CONFIRM or self.pending is None:
            raise IdentityStateError()
        if matched_id != self.pending.matched_id:
            raise IdentityStateError(
                detail="Confirmed participant does not match the pending name",
                matched_id=matched_id,
            )
        identity = Identity(id=self.pending.matched_id, name=self.pending.matched_name)
        if on_resolved is not None:
            await on_resolved(identity)
        await self.store.save(identity)
        await self.store.clear_pending()
        resolved = Resolved(id=identity.id, name=identity.name)
        self.state = ReconcilerState.RESOLVED
        self.pending = None
        self.resolved = resolved
        logger.info("Identity adopted id=%s", resolved.id)
        return resolved

    async def deny(self) -> None:
        if self.state is not ReconcilerState.CONFIRM:
            raise IdentityStateError()
        await self.store.clear_pending()
        self.state = ReconcilerState.INPUT
        self.pending = None
