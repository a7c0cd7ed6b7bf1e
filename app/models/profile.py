"""
Kindred — Profile model (externally owned; read-only to the core).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, JSONVariant


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfileRow(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False
    )
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    gender: Mapped[str] = mapped_column(
        String, nullable=False, comment="male / female / other"
    )
    location: Mapped[dict | None] = mapped_column(
        JSONVariant, nullable=True, comment="{city, country, coordinates, isAutoDetected}"
    )
    interests: Mapped[list | None] = mapped_column(JSONVariant, nullable=True)
    lifestyle: Mapped[dict | None] = mapped_column(JSONVariant, nullable=True)
    preferences: Mapped[dict | None] = mapped_column(
        JSONVariant, nullable=True, comment="{lookingFor, ageRange, videoChat}"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    def __repr__(self) -> str:
        return f"<ProfileRow user={self.user_id!r} age={self.age}>"
