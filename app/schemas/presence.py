from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class PresenceState(BaseModel):
    user_id: str
    is_online: bool
    last_seen_at: datetime
    active_session_id: Optional[str] = None
    connection_count: int = 0
