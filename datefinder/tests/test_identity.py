"""Tests for name collision handling and the identity reconciler."""

import json
from unittest.mock import AsyncMock

import pytest

from datefinder.errors import IdentityStateError, InvalidNameError, NotFoundError, PersistenceError
from datefinder.identity import (
    ID_ALPHABET,
    Accept,
    Identity,
    IdentityReconciler,
    MemoryIdentityStore,
    NeedsConfirmation,
    ReconcilerState,
    RedisIdentityStore,
    Resolved,
    find_collision,
    generate_id,
)


def _ids(*values):
    it = iter(values)
    return lambda: next(it)


class TestGenerateId:
    def test_length_and_alphabet(self):
        pid = generate_id()
        assert len(pid) == 7
        assert set(pid) <= set(ID_ALPHABET)
        assert len(generate_id(10)) == 10


class TestFindCollision:
    def test_case_insensitive_match(self, make_participants):
        participants = make_participants(p1=("alice", []))
        match = find_collision("Alice", None, participants)
        assert match is not None
        assert match.id == "p1"

    def test_callers_own_entry_is_not_a_collision(self, make_participants):
        participants = make_participants(p1=("Alice", []))
        assert find_collision("alice", "p1", participants) is None

    def test_first_match_by_id(self, make_participants):
        participants = make_participants(p2=("Bob", []), p1=("BOB", []))
        assert find_collision("bob", None, participants).id == "p1"

    def test_surrounding_whitespace_ignored(self, make_participants):
        participants = make_participants(p1=("Alice", []))
        assert find_collision("  alice ", None, participants).id == "p1"


class TestPropose:
    @pytest.mark.asyncio
    async def test_collision_requires_confirmation(self, make_participants):
        """Proposing "Alice" when "alice" exists asks for confirmation."""
        store = MemoryIdentityStore()
        reconciler = IdentityReconciler(store)

        outcome = await reconciler.propose("Alice", None, make_participants(p1=("alice", [])))

        assert outcome == NeedsConfirmation(matched_id="p1", matched_name="alice")
        assert reconciler.state is ReconcilerState.CONFIRM
        assert store.pending == outcome
        assert store.identity is None

    @pytest.mark.asyncio
    async def test_no_collision_accepts_with_fresh_id(self, make_participants):
        store = MemoryIdentityStore()
        reconciler = IdentityReconciler(store, id_factory=_ids("newid01"))

        outcome = await reconciler.propose(" Bob ", None, make_participants(p1=("Alice", [])))

        assert outcome == Accept(id="newid01", name="Bob")
        assert reconciler.state is ReconcilerState.RESOLVED
        assert reconciler.resolved == Resolved(id="newid01", name="Bob")
        assert store.identity == Identity(id="newid01", name="Bob")

    @pytest.mark.asyncio
    async def test_no_collision_keeps_caller_id(self, make_participants):
        store = MemoryIdentityStore()
        reconciler = IdentityReconciler(store, id_factory=_ids())

        outcome = await reconciler.propose("Alicia", "p1", make_participants(p1=("Alice", [])))

        assert outcome == Accept(id="p1", name="Alicia")

    @pytest.mark.asyncio
    async def test_rename_to_own_name_is_accepted(self, make_participants):
        reconciler = IdentityReconciler(MemoryIdentityStore())
        outcome = await reconciler.propose("ALICE", "p1", make_participants(p1=("Alice", [])))
        assert outcome == Accept(id="p1", name="ALICE")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", None])
    async def test_blank_name_rejected(self, name):
        store = MemoryIdentityStore()
        reconciler = IdentityReconciler(store)
        with pytest.raises(InvalidNameError):
            await reconciler.propose(name, None, {})
        assert reconciler.state is ReconcilerState.INPUT
        assert store.identity is None

    @pytest.mark.asyncio
    async def test_accept_clears_stale_pending(self, make_participants):
        store = MemoryIdentityStore()
        reconciler = IdentityReconciler(store, id_factory=_ids("x000001"))
        participants = make_participants(p1=("Alice", []))

        await reconciler.propose("alice", None, participants)
        outcome = await reconciler.propose("Carol", None, participants)

        assert isinstance(outcome, Accept)
        assert store.pending is None
        assert reconciler.pending is None


class TestConfirmAndDeny:
    @pytest.mark.asyncio
    async def test_confirm_adopts_matched_participant(self, make_participants):
        store = MemoryIdentityStore()
        reconciler = IdentityReconciler(store)
        await reconciler.propose("Alice", None, make_participants(p1=("alice", [])))

        resolved = await reconciler.confirm("p1")

        assert resolved == Resolved(id="p1", name="alice")
        assert reconciler.state is ReconcilerState.RESOLVED
        assert store.identity == Identity(id="p1", name="alice")
        assert store.pending is None

    @pytest.mark.asyncio
    async def test_deny_returns_to_input_without_identity(self, make_participants):
        store = MemoryIdentityStore()
        reconciler = IdentityReconciler(store)
        await reconciler.propose("Alice", None, make_participants(p1=("alice", [])))

        await reconciler.deny()

        assert reconciler.state is ReconcilerState.INPUT
        assert store.identity is None
        assert store.pending is None

    @pytest.mark.asyncio
    async def test_confirm_without_pending_fails(self):
        reconciler = IdentityReconciler(MemoryIdentityStore())
        with pytest.raises(IdentityStateError) as exc_info:
            await reconciler.confirm("p1")
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_confirm_with_other_id_fails(self, make_participants):
        reconciler = IdentityReconciler(MemoryIdentityStore())
        await reconciler.propose("Alice", None, make_participants(p1=("alice", [])))
        with pytest.raises(IdentityStateError):
            await reconciler.confirm("p2")
        assert reconciler.state is ReconcilerState.CONFIRM

    @pytest.mark.asyncio
    async def test_deny_without_pending_fails(self):
        with pytest.raises(IdentityStateError):
            await IdentityReconciler(MemoryIdentityStore()).deny()


class TestRestore:
    @pytest.mark.asyncio
    async def test_restore_resumes_pending_confirmation(self):
        store = MemoryIdentityStore()
        store.pending = NeedsConfirmation(matched_id="p1", matched_name="alice")

        reconciler = await IdentityReconciler.restore(store)

        assert reconciler.state is ReconcilerState.CONFIRM
        assert (await reconciler.confirm("p1")).id == "p1"

    @pytest.mark.asyncio
    async def test_restore_without_pending_starts_at_input(self):
        reconciler = await IdentityReconciler.restore(MemoryIdentityStore())
        assert reconciler.state is ReconcilerState.INPUT


class TestRedisIdentityStore:
    @pytest.mark.asyncio
    async def test_identity_round_trip(self, fake_redis):
        store = RedisIdentityStore(fake_redis, "device-1", event_id="evt")
        assert await store.load() is None

        await store.save(Identity(id="p1", name="Alice"))

        assert await store.load() == Identity(id="p1", name="Alice")
        # the identity is shared across events
        other_event = RedisIdentityStore(fake_redis, "device-1", event_id="other")
        assert await other_event.load() == Identity(id="p1", name="Alice")

    @pytest.mark.asyncio
    async def test_pending_is_scoped_per_event_and_expires(self, fake_redis):
        store = RedisIdentityStore(fake_redis, "device-1", event_id="evt", pending_ttl=60)
        pending = NeedsConfirmation(matched_id="p1", matched_name="alice")

        await store.save_pending(pending)

        assert await store.load_pending() == pending
        assert 0 < await fake_redis.ttl(store.pending_key) <= 60
        assert await RedisIdentityStore(fake_redis, "device-1", event_id="other").load_pending() is None

        await store.clear_pending()
        assert await store.load_pending() is None

    @pytest.mark.asyncio
    async def test_unreadable_identity_is_ignored(self, fake_redis):
        store = RedisIdentityStore(fake_redis, "device-2")
        await fake_redis.set(store.identity_key, json.dumps({"name": "missing id"}))
        assert await store.load() is None

    @pytest.mark.asyncio
    async def test_reconciler_with_redis_store(self, fake_redis, make_participants):
        store = RedisIdentityStore(fake_redis, "device-3", event_id="evt")
        reconciler = IdentityReconciler(store)
        await reconciler.propose("Alice", None, make_participants(p1=("alice", [])))

        resumed = await IdentityReconciler.restore(store)
        await resumed.confirm("p1")

        assert await store.load() == Identity(id="p1", name="alice")
        assert await store.load_pending() is None


class TestResolveHook:
    @pytest.mark.asyncio
    async def test_hook_runs_before_identity_is_saved(self, make_participants):
        store = MemoryIdentityStore()
        seen = []

        async def on_resolved(identity):
            seen.append((identity, store.identity))

        reconciler = IdentityReconciler(store, id_factory=_ids("newid01"))
        await reconciler.propose("Bob", None, make_participants(p1=("Alice", [])), on_resolved=on_resolved)

        assert seen == [(Identity(id="newid01", name="Bob"), None)]
        assert store.identity == Identity(id="newid01", name="Bob")

    @pytest.mark.asyncio
    async def test_failed_hook_on_propose_keeps_previous_identity(self, make_participants):
        previous = Identity(id="old0001", name="Old")
        store = MemoryIdentityStore(previous)
        reconciler = IdentityReconciler(store, id_factory=_ids("newid01"))
        failing = AsyncMock(side_effect=PersistenceError())

        with pytest.raises(PersistenceError):
            await reconciler.propose("Bob", None, make_participants(p1=("Alice", [])), on_resolved=failing)

        assert store.identity == previous
        assert reconciler.state is ReconcilerState.INPUT
        assert reconciler.resolved is None

    @pytest.mark.asyncio
    async def test_failed_hook_on_confirm_keeps_pending(self, make_participants):
        store = MemoryIdentityStore()
        reconciler = IdentityReconciler(store)
        await reconciler.propose("Alice", None, make_participants(p1=("alice", [])))

        with pytest.raises(NotFoundError):
            await reconciler.confirm("p1", on_resolved=AsyncMock(side_effect=NotFoundError()))

        assert store.identity is None
        assert store.pending == NeedsConfirmation(matched_id="p1", matched_name="alice")
        assert reconciler.state is ReconcilerState.CONFIRM
        assert (await reconciler.confirm("p1")).id == "p1"
