from datetime import datetime

from pydantic import BaseModel


class BlockedUser(BaseModel):
    user_id: str
    blocked_at: datetime
