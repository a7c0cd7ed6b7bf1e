from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


def user_channel(user_id: str) -> str:
    """Per-user routing address; every connection of the user joins it."""
    return f"user-{user_id}"


class CallType(str, Enum):
    VIDEO = "video"
    VOICE = "voice"


class CallState(str, Enum):
    RINGING = "ringing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ENDED = "ended"
    MISSED = "missed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({CallState.REJECTED, CallState.ENDED, CallState.MISSED})


class CallSession(BaseModel):
    session_id: str
    caller_id: str
    receiver_id: str
    call_type: CallType
    state: CallState = CallState.RINGING
    started_at: datetime
    answered_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    ended_by: Optional[str] = None
    end_reason: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[int]:
        """Talk time, counted from the answer; ``None`` if never answered."""
        if self.answered_at is None or self.ended_at is None:
            return None
        return int((self.ended_at - self.answered_at).total_seconds())

    def other_party(self, user_id: str) -> str:
        return self.receiver_id if user_id == self.caller_id else self.caller_id

    def involves(self, user_id: str) -> bool:
        return user_id in (self.caller_id, self.receiver_id)


class SignalEvent(BaseModel):
    name: str
    channel: str
    payload: dict[str, Any]
    session_id: str
    sequence: int = Field(description="Per-session emission order, starting at 1")


class CallSessionResponse(BaseModel):
    session_id: str
    caller_id: str
    receiver_id: str
    call_type: CallType
    state: CallState
    started_at: datetime
    answered_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    ended_by: Optional[str] = None
    end_reason: Optional[str] = None
    duration_seconds: Optional[int] = None

    @classmethod
    def from_session(cls, session: CallSession) -> "CallSessionResponse":
        return cls(
            **session.model_dump(),
            duration_seconds=session.duration_seconds,
        )
