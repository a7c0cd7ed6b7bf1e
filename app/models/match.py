"""
Kindred — Match record model (one row per unordered user pair).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchRow(Base):
    __tablename__ = "match_records"
    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uq_match_pair"),
        CheckConstraint("user_a_id < user_b_id", name="ck_match_pair_canonical"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_a_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    user_b_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    liked_by_a: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    liked_by_b: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_mutual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Stamped once on the mutual transition"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<MatchRow {self.user_a_id} <-> {self.user_b_id} "
            f"mutual={self.is_mutual}>"
        )


class BlockRow(Base):
    __tablename__ = "blocks"
    __table_args__ = (
        UniqueConstraint("blocker_id", "blocked_id", name="uq_block_pair"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    blocker_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    blocked_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<BlockRow {self.blocker_id} -> {self.blocked_id}>"
