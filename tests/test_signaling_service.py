"""Unit tests for SignalingRelay — call state machine, routing and ordering."""
import asyncio
import itertools

import pytest

from app.schemas.call import CallState
from app.services.presence_service import PresenceTracker
from app.services.signaling_service import InMemorySignalingBus, SignalingRelay
from app.utils.errors import InvalidOperation, NotFound, UnreachablePeer


@pytest.fixture
def presence(clock):
    tracker = PresenceTracker(clock=clock)
    tracker.connect("alice")
    tracker.connect("bob")
    return tracker


@pytest.fixture
def bus():
    return InMemorySignalingBus()


@pytest.fixture
def relay(presence, bus, clock):
    counter = itertools.count(1)
    return SignalingRelay(
        presence,
        bus,
        ring_timeout=30,
        history_limit=3,
        clock=clock,
        id_factory=lambda: f"call-{next(counter)}",
    )


def _names(events):
    return [e.name for e in events]


class TestRequest:

    @pytest.mark.asyncio
    async def test_request_rings_and_notifies_receiver_once(self, relay, bus):
        session_id = await relay.request_call("alice", "bob", "video")

        assert relay.get_session(session_id).state is CallState.RINGING
        assert len(bus.events) == 1
        event = bus.events[0]
        assert event.name == "incoming-call"
        assert event.channel == "user-bob"
        assert event.payload == {"callerId": "alice", "callType": "video", "sessionId": session_id}

    @pytest.mark.asyncio
    async def test_subscriber_receives_routed_event(self, relay, bus):
        inbox = bus.subscribe("user-bob")
        session_id = await relay.request_call("alice", "bob", "video")
        event = inbox.get_nowait()
        assert (event.name, event.session_id, event.sequence) == ("incoming-call", session_id, 1)

    @pytest.mark.asyncio
    async def test_offline_receiver_unreachable(self, relay, presence, bus):
        presence.disconnect("bob")
        with pytest.raises(UnreachablePeer):
            await relay.request_call("alice", "bob", "voice")
        assert bus.events == []
        assert relay.live_session_count == 0

    @pytest.mark.asyncio
    async def test_reachability_check_can_be_disabled(self, presence, bus):
        relay = SignalingRelay(presence, bus, require_reachable=False)
        session_id = await relay.request_call("alice", "carol", "voice")
        assert relay.get_session(session_id).state is CallState.RINGING

    @pytest.mark.asyncio
    async def test_invalid_requests(self, relay):
        with pytest.raises(InvalidOperation):
            await relay.request_call("alice", "alice", "video")
        with pytest.raises(InvalidOperation):
            await relay.request_call("alice", "bob", "hologram")

    @pytest.mark.asyncio
    async def test_active_session_set_for_both(self, relay, presence):
        session_id = await relay.request_call("alice", "bob", "video")
        assert presence.get("alice").active_session_id == session_id
        assert presence.get("bob").active_session_id == session_id


class TestAnswer:

    @pytest.mark.asyncio
    async def test_accept_notifies_caller(self, relay, bus):
        session_id = await relay.request_call("alice", "bob", "video")
        session = await relay.accept_call(session_id, by_user="bob")

        assert session.state is CallState.ACCEPTED
        assert session.answered_at is not None
        last = bus.events[-1]
        assert (last.name, last.channel) == ("call-accepted", "user-alice")
        assert last.payload == {"receiverId": "bob", "sessionId": session_id}

    @pytest.mark.asyncio
    async def test_accept_after_reject_rejected(self, relay, bus):
        session_id = await relay.request_call("alice", "bob", "video")
        await relay.reject_call(session_id)

        assert _names(bus.for_channel("user-alice")) == ["call-rejected"]
        with pytest.raises(InvalidOperation):
            await relay.accept_call(session_id)

    @pytest.mark.asyncio
    async def test_accept_after_end_rejected(self, relay):
        session_id = await relay.request_call("alice", "bob", "video")
        await relay.end_call(session_id, ended_by="alice")
        with pytest.raises(InvalidOperation):
            await relay.accept_call(session_id)

    @pytest.mark.asyncio
    async def test_caller_cannot_accept(self, relay):
        session_id = await relay.request_call("alice", "bob", "video")
        with pytest.raises(InvalidOperation):
            await relay.accept_call(session_id, by_user="alice")
        with pytest.raises(InvalidOperation):
            await relay.reject_call(session_id, by_user="mallory")
        assert relay.get_session(session_id).state is CallState.RINGING

    @pytest.mark.asyncio
    async def test_unknown_session(self, relay):
        with pytest.raises(NotFound):
            await relay.accept_call("nope")
        with pytest.raises(NotFound):
            await relay.end_call("nope", ended_by="alice")


class TestEnd:

    @pytest.mark.asyncio
    async def test_end_notifies_other_party(self, relay, bus, clock, presence):
        session_id = await relay.request_call("alice", "bob", "video")
        await relay.accept_call(session_id)
        clock.advance(95)

        session = await relay.end_call(session_id, ended_by="bob")

        assert session.state is CallState.ENDED
        assert session.duration_seconds == 95
        last = bus.events[-1]
        assert (last.name, last.channel) == ("call-ended", "user-alice")
        assert last.payload == {"userId": "bob", "sessionId": session_id}
        assert presence.get("alice").active_session_id is None

    @pytest.mark.asyncio
    async def test_double_end_is_noop(self, relay, bus):
        session_id = await relay.request_call("alice", "bob", "video")
        await relay.end_call(session_id, ended_by="alice")
        emitted = len(bus.events)

        session = await relay.end_call(session_id, ended_by="bob")

        assert session.state is CallState.ENDED
        assert session.ended_by == "alice"
        assert len(bus.events) == emitted

    @pytest.mark.asyncio
    async def test_non_participant_cannot_end(self, relay):
        session_id = await relay.request_call("alice", "bob", "video")
        with pytest.raises(InvalidOperation):
            await relay.end_call(session_id, ended_by="mallory")


class TestMissedAndDisconnect:

    @pytest.mark.asyncio
    async def test_unanswered_call_missed(self, relay, bus, clock):
        session_id = await relay.request_call("alice", "bob", "video")
        clock.advance(10)
        assert await relay.expire_unanswered() == []

        clock.advance(25)
        assert await relay.expire_unanswered() == [session_id]
        assert relay.get_session(session_id).state is CallState.MISSED
        assert _names(bus.for_channel("user-bob")) == ["incoming-call", "call-missed"]
        assert _names(bus.for_channel("user-alice")) == ["call-missed"]

    @pytest.mark.asyncio
    async def test_accepted_call_never_missed(self, relay, clock):
        session_id = await relay.request_call("alice", "bob", "video")
        await relay.accept_call(session_id)
        clock.advance(3600)
        assert await relay.expire_unanswered() == []

    @pytest.mark.asyncio
    async def test_last_disconnect_ends_live_calls(self, relay, presence, bus):
        session_id = await relay.request_call("alice", "bob", "video")
        await relay.accept_call(session_id)

        presence.disconnect("bob")
        assert await relay.handle_disconnect("bob") == [session_id]

        session = relay.get_session(session_id)
        assert session.end_reason == "disconnected"
        assert bus.events[-1].channel == "user-alice"

    @pytest.mark.asyncio
    async def test_still_connected_user_keeps_calls(self, relay):
        session_id = await relay.request_call("alice", "bob", "video")
        assert await relay.handle_disconnect("bob") == []
        assert relay.get_session(session_id).state is CallState.RINGING


class TestOrderingAndHistory:

    @pytest.mark.asyncio
    async def test_racing_accept_and_end_keep_state_machine_order(self, relay, bus):
        session_id = await relay.request_call("alice", "bob", "video")

        results = await asyncio.gather(
            relay.accept_call(session_id, by_user="bob"),
            relay.end_call(session_id, ended_by="alice"),
            return_exceptions=True,
        )

        assert not any(isinstance(r, Exception) for r in results)
        events = [e for e in bus.events if e.session_id == session_id]
        assert [e.sequence for e in events] == [1, 2, 3]
        assert _names(events) == ["incoming-call", "call-accepted", "call-ended"]

    @pytest.mark.asyncio
    async def test_find_live_session_by_pair(self, relay):
        session_id = await relay.request_call("alice", "bob", "voice")
        assert relay.find_live_session("bob", "alice").session_id == session_id
        await relay.end_call(session_id, ended_by="alice")
        assert relay.find_live_session("alice", "bob") is None

    @pytest.mark.asyncio
    async def test_history_newest_first_and_bounded(self, relay, clock):
        ids = []
        for _ in range(4):
            session_id = await relay.request_call("alice", "bob", "video")
            clock.advance(1)
            await relay.end_call(session_id, ended_by="alice")
            ids.append(session_id)

        history = relay.history_for("bob")
        assert [s.session_id for s in history] == list(reversed(ids[1:]))
        assert relay.get_session(ids[0]).state is CallState.ENDED

    @pytest.mark.asyncio
    async def test_hangup_after_history_eviction_is_noop(self, relay, presence, bus):
        presence.connect("dave")
        first = await relay.request_call("alice", "bob", "video")
        await relay.end_call(first, ended_by="alice")
        for _ in range(3):
            session_id = await relay.request_call("carol", "dave", "voice")
            await relay.end_call(session_id, ended_by="carol")
        assert first not in [s.session_id for s in relay.history_for("alice")]
        emitted = len(bus.events)

        session = await relay.end_call(first, ended_by="bob")

        assert session.state is CallState.ENDED
        assert session.ended_by == "alice"
        assert len(bus.events) == emitted
        with pytest.raises(InvalidOperation):
            await relay.accept_call(first)

    @pytest.mark.asyncio
    async def test_terminal_record_is_bounded(self, presence, bus):
        relay = SignalingRelay(presence, bus, history_limit=1, terminal_limit=2)
        ids = []
        for _ in range(3):
            session_id = await relay.request_call("alice", "bob", "video")
            await relay.end_call(session_id, ended_by="alice")
            ids.append(session_id)

        with pytest.raises(NotFound):
            relay.get_session(ids[0])
        assert relay.get_session(ids[1]).state is CallState.ENDED


class FlakyBus(InMemorySignalingBus):
    """Fails the next publish of each named event once."""

    def __init__(self, *failing):
        super().__init__()
        self.failing = set(failing)

    async def publish(self, event):
        if event.name in self.failing:
            self.failing.discard(event.name)
            raise ConnectionError(f"transport dropped {event.name}")
        await super().publish(event)


class TestPublishFailure:

    @pytest.fixture
    def flaky(self):
        return FlakyBus()

    @pytest.fixture
    def relay(self, presence, flaky, clock):
        return SignalingRelay(presence, flaky, ring_timeout=30, clock=clock)

    @pytest.mark.asyncio
    async def test_failed_request_leaves_no_session(self, relay, flaky, presence):
        flaky.failing.add("incoming-call")
        with pytest.raises(ConnectionError):
            await relay.request_call("alice", "bob", "video")
        assert relay.live_session_count == 0
        assert presence.get("bob").active_session_id is None

    @pytest.mark.asyncio
    async def test_failed_accept_can_be_retried(self, relay, flaky):
        session_id = await relay.request_call("alice", "bob", "video")
        flaky.failing.add("call-accepted")

        with pytest.raises(ConnectionError):
            await relay.accept_call(session_id, by_user="bob")
        assert relay.get_session(session_id).state is CallState.RINGING
        assert relay.get_session(session_id).answered_at is None

        session = await relay.accept_call(session_id, by_user="bob")
        assert session.state is CallState.ACCEPTED
        assert [e.sequence for e in flaky.events] == [1, 2]

    @pytest.mark.asyncio
    async def test_failed_reject_keeps_call_ringing(self, relay, flaky, presence):
        session_id = await relay.request_call("alice", "bob", "video")
        flaky.failing.add("call-rejected")

        with pytest.raises(ConnectionError):
            await relay.reject_call(session_id)

        assert relay.get_session(session_id).state is CallState.RINGING
        assert relay.live_session_count == 1
        assert relay.history_for("alice") == []
        assert presence.get("alice").active_session_id == session_id

    @pytest.mark.asyncio
    async def test_failed_end_keeps_call_live(self, relay, flaky):
        session_id = await relay.request_call("alice", "bob", "video")
        await relay.accept_call(session_id)
        flaky.failing.add("call-ended")

        with pytest.raises(ConnectionError):
            await relay.end_call(session_id, ended_by="alice")
        assert relay.get_session(session_id).state is CallState.ACCEPTED
        assert relay.find_live_session("alice", "bob").session_id == session_id

        await relay.end_call(session_id, ended_by="alice")
        assert [e.sequence for e in flaky.events] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_failed_expiry_retried_on_next_sweep(self, relay, flaky, clock):
        session_id = await relay.request_call("alice", "bob", "video")
        clock.advance(31)
        flaky.failing.add("call-missed")

        with pytest.raises(ConnectionError):
            await relay.expire_unanswered()
        assert relay.get_session(session_id).state is CallState.RINGING

        assert await relay.expire_unanswered() == [session_id]
        assert relay.get_session(session_id).state is CallState.MISSED
