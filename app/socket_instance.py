"""
Kindred — Socket.IO server instance and the bus that publishes through it.
"""

from __future__ import annotations

import socketio
import structlog

from app.config import get_settings
from app.schemas.call import SignalEvent

logger = structlog.get_logger("kindred.socket")


def _cors_origins():
    # python-socketio only treats the bare string "*" as allow-all.
    settings = get_settings()
    if settings.ALLOWED_ORIGINS.strip() == "*":
        return "*"
    return settings.allowed_origins_list


sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=_cors_origins())


class SocketIOSignalingBus:
    """Publishes relay events to the Socket.IO room named by the channel.

    Every connection of a user joins ``user-<id>``, so one emit reaches all
    of that user's tabs and devices.
    """

    def __init__(self, server: socketio.AsyncServer) -> None:
        self._server = server

    async def publish(self, event: SignalEvent) -> None:
        await self._server.emit(event.name, event.payload, room=event.channel)
        logger.debug(
            "signal_emitted",
            signal=event.name,
            channel=event.channel,
            session_id=event.session_id,
            sequence=event.sequence,
        )
