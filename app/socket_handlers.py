"""
Kindred — Socket.IO event handlers.

Client → server events:

    join-room    userId | {userId}
    call-request {receiverId, callType[, callerId]}
    call-accept  {sessionId} | {callerId, receiverId}
    call-reject  {sessionId} | {callerId, receiverId}
    call-end     {sessionId[, userId]} | {userId, otherUserId}

Payloads without ``sessionId`` are resolved to the live session between the
two named users.  Once a connection has joined, its user id is authoritative
and ids inside payloads only fill in for connections that have not.

Domain errors are reported to the originating connection only, as
``call-error {error, detail}``.  Malformed payloads are logged and dropped.
``call-request`` acknowledges with ``{"sessionId": ...}``.
"""

from __future__ import annotations

from typing import Any, Optional

import socketio
import structlog

from app.schemas.call import user_channel
from app.services.presence_service import PresenceTracker
from app.services.signaling_service import SignalingRelay
from app.utils.errors import KindredError, NotFound

logger = structlog.get_logger("kindred.socket_handlers")

CALL_ERROR = "call-error"


class MalformedPayload(ValueError):
    pass


def _field(data: Any, *names: str) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    for name in names:
        value = data.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def register_socketio_handlers(
    sio: socketio.AsyncServer,
    presence: PresenceTracker,
    relay: SignalingRelay,
) -> dict[str, str]:
    """Attach the signaling handlers to ``sio``.

    Returns the live ``{sid: user_id}`` map (single process only).
    """
    sid_users: dict[str, str] = {}

    async def report(sid: str, event: str, exc: KindredError) -> None:
        logger.info("socket_event_rejected", sid=sid, socket_event=event, error=exc.code, detail=exc.detail)
        await sio.emit(CALL_ERROR, exc.to_dict(), to=sid)

    def acting_user(sid: str, data: Any, *names: str) -> str:
        user_id = sid_users.get(sid) or _field(data, *names)
        if user_id is None:
            raise MalformedPayload("connection has not joined and payload names no user")
        return user_id

    def resolve_session(data: Any, user_x: Optional[str], user_y: Optional[str]) -> str:
        session_id = _field(data, "sessionId")
        if session_id is not None:
            return session_id
        if user_x is None or user_y is None:
            raise MalformedPayload("payload has neither sessionId nor both user ids")
        session = relay.find_live_session(user_x, user_y)
        if session is None:
            raise NotFound(f"No live call between {user_x} and {user_y}")
        return session.session_id

    @sio.event
    async def connect(sid, environ, auth=None):
        logger.info("socket_connected", sid=sid)

    @sio.event
    async def disconnect(sid, *args):
        user_id = sid_users.pop(sid, None)
        if user_id is None:
            logger.info("socket_disconnected", sid=sid)
            return
        presence.disconnect(user_id, sid)
        ended = await relay.handle_disconnect(user_id)
        logger.info("socket_disconnected", sid=sid, user_id=user_id, calls_ended=len(ended))

    @sio.on("join-room")
    async def join_room(sid, data):
        user_id = data.strip() if isinstance(data, str) else _field(data, "userId")
        if not user_id:
            logger.warning("socket_payload_malformed", sid=sid, socket_event="join-room")
            return

        previous = sid_users.get(sid)
        if previous is not None and previous != user_id:
            await sio.leave_room(sid, user_channel(previous))
            presence.disconnect(previous, sid)
            await relay.handle_disconnect(previous)

        sid_users[sid] = user_id
        await sio.enter_room(sid, user_channel(user_id))
        presence.connect(user_id, sid)
        logger.info("socket_joined", sid=sid, user_id=user_id, room=user_channel(user_id))

    @sio.on("call-request")
    async def call_request(sid, data):
        try:
            caller_id = acting_user(sid, data, "callerId")
            receiver_id = _field(data, "receiverId")
            if receiver_id is None:
                raise MalformedPayload("receiverId is required")
            session_id = await relay.request_call(
                caller_id, receiver_id, _field(data, "callType") or "video"
            )
        except MalformedPayload as exc:
            logger.warning("socket_payload_malformed", sid=sid, socket_event="call-request", reason=str(exc))
            return None
        except KindredError as exc:
            await report(sid, "call-request", exc)
            return None
        return {"sessionId": session_id}

    @sio.on("call-accept")
    async def call_accept(sid, data):
        try:
            receiver_id = acting_user(sid, data, "receiverId")
            session_id = resolve_session(data, _field(data, "callerId"), receiver_id)
            await relay.accept_call(session_id, by_user=receiver_id)
        except MalformedPayload as exc:
            logger.warning("socket_payload_malformed", sid=sid, socket_event="call-accept", reason=str(exc))
        except KindredError as exc:
            await report(sid, "call-accept", exc)

    @sio.on("call-reject")
    async def call_reject(sid, data):
        try:
            receiver_id = acting_user(sid, data, "receiverId")
            session_id = resolve_session(data, _field(data, "callerId"), receiver_id)
            await relay.reject_call(session_id, by_user=receiver_id)
        except MalformedPayload as exc:
            logger.warning("socket_payload_malformed", sid=sid, socket_event="call-reject", reason=str(exc))
        except KindredError as exc:
            await report(sid, "call-reject", exc)

    @sio.on("call-end")
    async def call_end(sid, data):
        try:
            user_id = acting_user(sid, data, "userId")
            session_id = resolve_session(data, user_id, _field(data, "otherUserId"))
            await relay.end_call(session_id, ended_by=user_id)
        except MalformedPayload as exc:
            logger.warning("socket_payload_malformed", sid=sid, socket_event="call-end", reason=str(exc))
        except KindredError as exc:
            await report(sid, "call-end", exc)

    return sid_users
