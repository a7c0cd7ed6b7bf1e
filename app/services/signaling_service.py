"""
Kindred — Call-signaling relay.

Tracks two-party call sessions and routes their setup/teardown events to
per-user channels (``user-<id>``) on a ``SignalingBus``.  Media never passes
through here; only the handshake does.

Session state machine::

    RINGING ──accept──▶ ACCEPTED ──end──▶ ENDED
       │ ├──reject──▶ REJECTED
       │ ├──end─────▶ ENDED
       │ └──timeout─▶ MISSED
       (REJECTED, ENDED and MISSED are terminal)

Events, always addressed to the *other* party's channel:

    incoming-call  {callerId, callType, sessionId}   → receiver
    call-accepted  {receiverId, sessionId}           → caller
    call-rejected  {receiverId, sessionId}           → caller
    call-ended     {userId, sessionId}               → the party who did not hang up
    call-missed    {callerId, receiverId, sessionId} → both parties

Each session has its own lock and every event is published while that lock is
held, so two parties racing on one session observe its events in state-machine
order.  A transition is committed only after its event has been published, so
a failed publish leaves the session exactly as it was.  Terminal sessions are
remembered by id (bounded by ``terminal_limit``) and the most recent ones also
back call history (bounded by ``history_limit``).
"""

from __future__ import annotations

import asyncio
import uuid
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

import structlog

from app.schemas.call import CallSession, CallState, CallType, SignalEvent, user_channel
from app.services.presence_service import PresenceTracker
from app.utils.errors import InvalidOperation, NotFound, UnreachablePeer
from app.utils.locks import KeyedLock

logger = structlog.get_logger("kindred.signaling_service")

INCOMING_CALL = "incoming-call"
CALL_ACCEPTED = "call-accepted"
CALL_REJECTED = "call-rejected"
CALL_ENDED = "call-ended"
CALL_MISSED = "call-missed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalingBus(Protocol):
    async def publish(self, event: SignalEvent) -> None: ...


class InMemorySignalingBus:
    """Records every event and fans it out to per-channel queues."""

    def __init__(self) -> None:
        self.events: list[SignalEvent] = []
        self._subscribers: dict[str, list[asyncio.Queue]] = {}

    def subscribe(self, channel: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(channel, []).append(queue)
        return queue

    def for_channel(self, channel: str) -> list[SignalEvent]:
        return [e for e in self.events if e.channel == channel]

    async def publish(self, event: SignalEvent) -> None:
        self.events.append(event)
        for queue in self._subscribers.get(event.channel, ()):
            queue.put_nowait(event)


class SignalingRelay:
    """Owns every ``CallSession``; in memory only.

    Parameters
    ----------
    presence:
        Reachability source; also receives ``active_session_id`` updates.
    bus:
        Outbound transport for routed events.
    require_reachable:
        Refuse ``request_call`` with ``UnreachablePeer`` when the receiver
        is offline.
    ring_timeout:
        Seconds a call may ring before ``expire_unanswered`` marks it
        MISSED.  ``0`` disables expiry.
    history_limit:
        Maximum number of finished sessions kept for ``history_for``.
    terminal_limit:
        Maximum number of finished sessions remembered by id, so repeated
        hang-ups and late answers resolve against their final state.
    """

    def __init__(
        self,
        presence: PresenceTracker,
        bus: SignalingBus,
        require_reachable: bool = True,
        ring_timeout: float = 60.0,
        history_limit: int = 1000,
        terminal_limit: int = 100_000,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._presence = presence
        self._bus = bus
        self._require_reachable = require_reachable
        self._ring_timeout = ring_timeout
        self._clock = clock
        self._id_factory = id_factory
        self._live: dict[str, CallSession] = {}
        self._archive: deque[CallSession] = deque(maxlen=history_limit)
        self._finished: dict[str, CallSession] = {}
        self._terminal_limit = max(terminal_limit, history_limit)
        self._sequences: dict[str, int] = {}
        self._locks = KeyedLock()

    # ── Commands ──────────────────────────────────────────────────────────

    async def request_call(self, caller_id: str, receiver_id: str, call_type: Any) -> str:
        """Open a RINGING session and notify the receiver.

        Raises
        ------
        InvalidOperation
            Self-call, an empty user id or an unknown call type.
        UnreachablePeer
            The receiver is offline and reachability is enforced.
        """
        if not caller_id or not receiver_id:
            raise InvalidOperation("User id must be a non-empty string")
        if caller_id == receiver_id:
            raise InvalidOperation("A user cannot call themselves")
        try:
            kind = CallType(call_type)
        except ValueError:
            raise InvalidOperation(f"Unknown call type {call_type!r}") from None
        if self._require_reachable and not self._presence.is_reachable(receiver_id):
            logger.info("call_unreachable", caller=caller_id, receiver=receiver_id)
            raise UnreachablePeer(f"User {receiver_id} is not connected")

        session = CallSession(
            session_id=self._id_factory(),
            caller_id=caller_id,
            receiver_id=receiver_id,
            call_type=kind,
            started_at=self._clock(),
        )
        log = logger.bind(session_id=session.session_id, caller=caller_id, receiver=receiver_id)

        async with self._locks.hold(session.session_id):
            self._live[session.session_id] = session
            self._presence.set_active_session(caller_id, session.session_id)
            self._presence.set_active_session(receiver_id, session.session_id)
            try:
                await self._publish(
                    session,
                    INCOMING_CALL,
                    receiver_id,
                    {"callerId": caller_id, "callType": kind.value},
                )
            except Exception:
                self._live.pop(session.session_id, None)
                self._sequences.pop(session.session_id, None)
                self._presence.clear_active_session(caller_id, session.session_id)
                self._presence.clear_active_session(receiver_id, session.session_id)
                log.exception("call_request_publish_failed")
                raise

        log.info("call_requested", call_type=kind.value)
        return session.session_id

    async def accept_call(self, session_id: str, by_user: Optional[str] = None) -> CallSession:
        """RINGING → ACCEPTED; only the receiver may accept."""
        async with self._locks.hold(session_id):
            session = self._lookup(session_id)
            self._require_receiver(session, by_user, "accept")
            if session.state is not CallState.RINGING:
                raise InvalidOperation(
                    f"Cannot accept call {session_id} in state {session.state.value}"
                )
            answered_at = self._clock()
            await self._publish(
                session, CALL_ACCEPTED, session.caller_id, {"receiverId": session.receiver_id}
            )
            session.state = CallState.ACCEPTED
            session.answered_at = answered_at

        logger.info("call_accepted", session_id=session_id, receiver=session.receiver_id)
        return session.model_copy()

    async def reject_call(self, session_id: str, by_user: Optional[str] = None) -> CallSession:
        """RINGING → REJECTED; only the receiver may reject."""
        async with self._locks.hold(session_id):
            session = self._lookup(session_id)
            self._require_receiver(session, by_user, "reject")
            if session.state is not CallState.RINGING:
                raise InvalidOperation(
                    f"Cannot reject call {session_id} in state {session.state.value}"
                )
            await self._publish(
                session, CALL_REJECTED, session.caller_id, {"receiverId": session.receiver_id}
            )
            self._finish(session, CallState.REJECTED, session.receiver_id, "rejected")

        logger.info("call_rejected", session_id=session_id, receiver=session.receiver_id)
        return session.model_copy()

    async def end_call(self, session_id: str, ended_by: str) -> CallSession:
        """Hang up from RINGING or ACCEPTED; a no-op on a terminal session."""
        async with self._locks.hold(session_id):
            session = self._lookup(session_id)
            if not session.involves(ended_by):
                raise InvalidOperation(f"User {ended_by} is not a party to call {session_id}")
            if session.state.is_terminal:
                logger.debug("call_end_repeated", session_id=session_id, state=session.state.value)
                return session.model_copy()
            await self._end(session, ended_by, "hangup")

        logger.info(
            "call_ended",
            session_id=session_id,
            ended_by=ended_by,
            duration_seconds=session.duration_seconds,
        )
        return session.model_copy()

    async def expire_unanswered(self, now: Optional[datetime] = None) -> list[str]:
        """Mark sessions ringing longer than the ring timeout as MISSED."""
        if self._ring_timeout <= 0:
            return []
        now = now or self._clock()
        cutoff = now - timedelta(seconds=self._ring_timeout)
        due = [
            s.session_id
            for s in self._live.values()
            if s.state is CallState.RINGING and s.started_at <= cutoff
        ]

        expired = []
        for session_id in due:
            async with self._locks.hold(session_id):
                session = self._live.get(session_id)
                # Answered or hung up while we waited for the lock.
                if session is None or session.state is not CallState.RINGING:
                    continue
                payload = {"callerId": session.caller_id, "receiverId": session.receiver_id}
                await self._publish(session, CALL_MISSED, session.receiver_id, payload)
                await self._publish(session, CALL_MISSED, session.caller_id, payload)
                self._finish(session, CallState.MISSED, None, "no_answer", now)
            expired.append(session_id)

        if expired:
            logger.info("calls_missed", count=len(expired))
        return expired

    async def handle_disconnect(self, user_id: str) -> list[str]:
        """End the live calls of a user whose last connection has closed."""
        if self._presence.is_online(user_id):
            return []

        ended = []
        for session_id in [s.session_id for s in self._live.values() if s.involves(user_id)]:
            async with self._locks.hold(session_id):
                session = self._live.get(session_id)
                if session is None or session.state.is_terminal:
                    continue
                await self._end(session, user_id, "disconnected")
            ended.append(session_id)

        if ended:
            logger.info("calls_ended_on_disconnect", user_id=user_id, count=len(ended))
        return ended

    async def sweep_forever(self, interval: float) -> None:
        """Background loop driving ``expire_unanswered``; cancel to stop."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.expire_unanswered()
            except Exception:
                logger.exception("call_sweep_failed")

    # ── Queries ───────────────────────────────────────────────────────────

    def get_session(self, session_id: str) -> CallSession:
        return self._lookup(session_id).model_copy()

    def find_live_session(self, user_x: str, user_y: str) -> Optional[CallSession]:
        """Most recent non-terminal session between two users, if any."""
        candidates = [
            s for s in self._live.values() if s.involves(user_x) and s.involves(user_y)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.started_at).model_copy()

    def history_for(self, user_id: str, limit: Optional[int] = None) -> list[CallSession]:
        """Archived sessions involving ``user_id``, most recently finished first."""
        sessions = [s.model_copy() for s in reversed(self._archive) if s.involves(user_id)]
        return sessions[:limit] if limit is not None else sessions

    @property
    def live_session_count(self) -> int:
        return len(self._live)

    # ── Internals ─────────────────────────────────────────────────────────

    def _lookup(self, session_id: str) -> CallSession:
        session = self._live.get(session_id) or self._finished.get(session_id)
        if session is not None:
            return session
        raise NotFound(f"Call session {session_id} not found")

    @staticmethod
    def _require_receiver(session: CallSession, by_user: Optional[str], action: str) -> None:
        if by_user is None or by_user == session.receiver_id:
            return
        if by_user == session.caller_id:
            raise InvalidOperation(f"The caller cannot {action} their own call")
        raise InvalidOperation(f"User {by_user} is not a party to call {session.session_id}")

    async def _end(self, session: CallSession, ended_by: str, reason: str) -> None:
        await self._publish(
            session, CALL_ENDED, session.other_party(ended_by), {"userId": ended_by}
        )
        self._finish(session, CallState.ENDED, ended_by, reason)

    def _finish(
        self,
        session: CallSession,
        state: CallState,
        ended_by: Optional[str],
        reason: str,
        now: Optional[datetime] = None,
    ) -> None:
        session.state = state
        session.ended_at = now or self._clock()
        session.ended_by = ended_by
        session.end_reason = reason
        self._live.pop(session.session_id, None)
        self._sequences.pop(session.session_id, None)
        self._archive.append(session)
        self._finished[session.session_id] = session
        while len(self._finished) > self._terminal_limit:
            del self._finished[next(iter(self._finished))]
        self._presence.clear_active_session(session.caller_id, session.session_id)
        self._presence.clear_active_session(session.receiver_id, session.session_id)

    async def _publish(
        self,
        session: CallSession,
        name: str,
        recipient_id: str,
        payload: dict[str, Any],
    ) -> None:
        sequence = self._sequences.get(session.session_id, 0) + 1
        event = SignalEvent(
            name=name,
            channel=user_channel(recipient_id),
            payload={**payload, "sessionId": session.session_id},
            session_id=session.session_id,
            sequence=sequence,
        )
        await self._bus.publish(event)
        self._sequences[session.session_id] = sequence
