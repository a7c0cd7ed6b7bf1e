"""
Kindred — Presence & call-session API

Read-only HTTP views over the real-time layer.  Calls themselves are set up
and torn down over Socket.IO (see ``app.socket_handlers``).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.dependencies import get_presence_tracker, get_signaling_relay
from app.schemas.call import CallSessionResponse
from app.schemas.presence import PresenceState
from app.services.presence_service import PresenceTracker
from app.services.signaling_service import SignalingRelay

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# GET /presence/{user_id} — Online / last-seen state
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/presence/{user_id}", response_model=PresenceState)
async def get_presence(
    user_id: str,
    presence: PresenceTracker = Depends(get_presence_tracker),
) -> PresenceState:
    state = presence.get(user_id)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No presence recorded for user {user_id}",
        )
    return state


# ──────────────────────────────────────────────────────────────────────────────
# GET /calls/history/{user_id} — Finished calls, newest first
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/calls/history/{user_id}", response_model=list[CallSessionResponse])
async def get_call_history(
    user_id: str,
    limit: Optional[int] = Query(None, ge=1),
    relay: SignalingRelay = Depends(get_signaling_relay),
) -> list[CallSessionResponse]:
    return [
        CallSessionResponse.from_session(s) for s in relay.history_for(user_id, limit=limit)
    ]


# ──────────────────────────────────────────────────────────────────────────────
# GET /calls/{session_id} — One call session (live or archived)
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/calls/{session_id}", response_model=CallSessionResponse)
async def get_call_session(
    session_id: str,
    relay: SignalingRelay = Depends(get_signaling_relay),
) -> CallSessionResponse:
    return CallSessionResponse.from_session(relay.get_session(session_id))
