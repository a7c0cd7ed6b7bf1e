"""Profile value objects as the core sees them.

Profiles are owned by the external user directory and are immutable here.
Field aliases accept the camelCase keys stored in the ``profiles`` JSON
columns (``isAutoDetected``, ``haveKids``, ``bodyType`` ...).
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_FEET_INCHES = re.compile(r"^\s*(\d+)\s*'\s*(\d+(?:\.\d+)?)?\s*(?:\"|'')?\s*$")
_CENTIMETRES = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:cm)?\s*$", re.IGNORECASE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class KidsStatus(str, Enum):
    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"


def parse_height_cm(value: Any) -> Optional[int]:
    """Normalise a stored height to whole centimetres.

    Accepts integers/floats (already cm), ``"180 cm"``, ``"180"`` and
    feet/inches strings such as ``6'0"`` or ``5'7``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("height must be a number or a height string")
    if isinstance(value, (int, float)):
        return round(value)
    text = str(value)
    m = _FEET_INCHES.match(text)
    if m:
        feet = int(m.group(1))
        inches = float(m.group(2) or 0)
        return round(feet * 30.48 + inches * 2.54)
    m = _CENTIMETRES.match(text)
    if m:
        return round(float(m.group(1)))
    raise ValueError(f"unrecognised height {text!r}")


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class Location(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    city: Optional[str] = None
    country: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    auto_detected: bool = Field(
        False, validation_alias=AliasChoices("auto_detected", "isAutoDetected")
    )


class Lifestyle(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    zodiac: Optional[str] = None
    languages: frozenset[str] = frozenset()
    education: Optional[str] = None
    relationship_goal: Optional[str] = Field(
        None, validation_alias=AliasChoices("relationship_goal", "relationshipGoal", "relationship")
    )
    smoke: Optional[str] = None
    drink: Optional[str] = None
    height_cm: Optional[int] = Field(
        None, validation_alias=AliasChoices("height_cm", "heightCm", "height")
    )
    body_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("body_type", "bodyType")
    )
    eye_color: Optional[str] = Field(
        None, validation_alias=AliasChoices("eye_color", "eyeColor", "eyes")
    )
    hair_color: Optional[str] = Field(
        None, validation_alias=AliasChoices("hair_color", "hairColor", "hair")
    )
    has_kids: KidsStatus = Field(
        KidsStatus.UNKNOWN, validation_alias=AliasChoices("has_kids", "hasKids", "haveKids")
    )

    @field_validator("zodiac", mode="before")
    @classmethod
    def _normalise_zodiac(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip().lower()
        return v or None

    @field_validator("height_cm", mode="before")
    @classmethod
    def _parse_height(cls, v: Any) -> Optional[int]:
        return parse_height_cm(v)

    @field_validator("has_kids", mode="before")
    @classmethod
    def _parse_kids(cls, v: Any) -> KidsStatus:
        if v is None:
            return KidsStatus.UNKNOWN
        if isinstance(v, bool):
            return KidsStatus.YES if v else KidsStatus.NO
        text = str(v).strip().lower()
        if text in {"yes", "true"}:
            return KidsStatus.YES
        if text in {"no", "false"}:
            return KidsStatus.NO
        return KidsStatus.UNKNOWN


class AgeRange(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    min_age: int = Field(18, validation_alias=AliasChoices("min_age", "min"))
    max_age: int = Field(100, validation_alias=AliasChoices("max_age", "max"))


class Preferences(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    looking_for: Optional[str] = Field(
        None, validation_alias=AliasChoices("looking_for", "lookingFor")
    )
    age_range: Optional[AgeRange] = Field(
        None, validation_alias=AliasChoices("age_range", "ageRange")
    )
    video_chat: bool = Field(
        False, validation_alias=AliasChoices("video_chat", "videoChat")
    )


class Profile(BaseModel):
    """A discoverable user.  ``age >= 18`` is enforced at construction."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: str = Field(min_length=1)
    first_name: Optional[str] = None
    age: int = Field(ge=18)
    gender: Gender
    location: Location = Field(default_factory=Location)
    interests: frozenset[str] = frozenset()
    lifestyle: Lifestyle = Field(default_factory=Lifestyle)
    preferences: Preferences = Field(default_factory=Preferences)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return v if v.tzinfo is not None else v.replace(tzinfo=timezone.utc)
