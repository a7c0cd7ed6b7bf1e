from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional


def canonical_pair(user_x: str, user_y: str) -> tuple[str, str]:
    """Order a pair so that ``user_a < user_b``; one record per unordered pair."""
    return (user_x, user_y) if user_x < user_y else (user_y, user_x)


class MatchRecord(BaseModel):
    user_a_id: str
    user_b_id: str
    liked_by_a: bool = False
    liked_by_b: bool = False
    is_mutual: bool = False
    matched_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @property
    def pair(self) -> tuple[str, str]:
        return (self.user_a_id, self.user_b_id)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def other_user(self, user_id: str) -> str:
        return self.user_b_id if user_id == self.user_a_id else self.user_a_id

    def liked_by(self, user_id: str) -> bool:
        return self.liked_by_a if user_id == self.user_a_id else self.liked_by_b


class LikeResult(BaseModel):
    record: MatchRecord
    newly_mutual: bool


class MutualMatch(BaseModel):
    record: MatchRecord
    other_user_id: str


# ── API payloads ───────────────────────────────────────────────────────

class LikeResponse(BaseModel):
    status: str
    is_mutual_match: bool
    newly_mutual: bool
    matched_at: Optional[datetime] = None
    record: MatchRecord


class MutualMatchItem(BaseModel):
    other_user_id: str
    matched_at: Optional[datetime]
    created_at: datetime
