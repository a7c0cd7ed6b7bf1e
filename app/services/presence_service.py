"""
Kindred — Presence tracking.

In-memory, single-process source of truth for who is reachable.  Every
mutation is synchronous, so it runs atomically on the event loop and
interleaves safely with the signaling relay.

A user can hold several connections (tabs, devices).  They count as online
until their last connection closes.  ``connect``/``disconnect`` without a
connection id act on a single implicit connection.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from app.schemas.presence import PresenceState

logger = structlog.get_logger("kindred.presence_service")

_IMPLICIT_CONNECTION = "__implicit__"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PresenceTracker:
    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._states: dict[str, PresenceState] = {}
        self._connections: dict[str, set[str]] = {}

    # ── Connection lifecycle ──────────────────────────────────────────────

    def connect(self, user_id: str, connection_id: Optional[str] = None) -> PresenceState:
        connections = self._connections.setdefault(user_id, set())
        connections.add(connection_id or _IMPLICIT_CONNECTION)
        state = self._touch(user_id, online=True)
        logger.info(
            "presence_connected",
            user_id=user_id,
            connections=state.connection_count,
        )
        return state.model_copy()

    def disconnect(self, user_id: str, connection_id: Optional[str] = None) -> PresenceState:
        """Drop one connection, or every connection when no id is given."""
        connections = self._connections.get(user_id, set())
        if connection_id is None:
            connections.clear()
        else:
            connections.discard(connection_id)
        if not connections:
            self._connections.pop(user_id, None)

        state = self._touch(user_id, online=bool(connections))
        logger.info(
            "presence_disconnected",
            user_id=user_id,
            still_online=state.is_online,
            connections=state.connection_count,
        )
        return state.model_copy()

    # ── Active call bookkeeping ───────────────────────────────────────────

    def set_active_session(self, user_id: str, session_id: str) -> None:
        state = self._states.get(user_id) or self._touch(user_id, online=False)
        state.active_session_id = session_id

    def clear_active_session(self, user_id: str, session_id: str) -> None:
        """Clear only if ``session_id`` is still the user's active session."""
        state = self._states.get(user_id)
        if state is not None and state.active_session_id == session_id:
            state.active_session_id = None

    # ── Queries ───────────────────────────────────────────────────────────

    def is_online(self, user_id: str) -> bool:
        state = self._states.get(user_id)
        return state is not None and state.is_online

    def is_reachable(self, user_id: str) -> bool:
        return self.is_online(user_id)

    def get(self, user_id: str) -> Optional[PresenceState]:
        state = self._states.get(user_id)
        return state.model_copy() if state is not None else None

    def online_user_ids(self) -> set[str]:
        return {uid for uid, state in self._states.items() if state.is_online}

    def _touch(self, user_id: str, online: bool) -> PresenceState:
        now = self._clock()
        state = self._states.get(user_id)
        if state is None:
            state = PresenceState(user_id=user_id, is_online=online, last_seen_at=now)
            self._states[user_id] = state
        state.is_online = online
        # Latest timestamp wins; a skewed clock never moves last_seen backwards.
        if now > state.last_seen_at:
            state.last_seen_at = now
        state.connection_count = len(self._connections.get(user_id, ()))
        return state
