"""Discovery request/response shapes.

``FilterCriteria`` enumerates every recognised browse option.  All fields are
independently optional; an unset field imposes no constraint.  Distinct
dimensions combine with AND, the set-valued ones (``zodiac_signs``,
``interests``, ``languages``) match on any overlap, and ``city``/``country``
together form a single OR-group.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.profile import Gender, KidsStatus, Profile


class FilterCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    gender: Optional[Gender] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    city: Optional[str] = None
    country: Optional[str] = None
    video_chat_only: bool = False
    zodiac_signs: frozenset[str] = frozenset()
    interests: frozenset[str] = frozenset()
    languages: frozenset[str] = frozenset()
    education: Optional[str] = None
    relationship_goal: Optional[str] = None
    has_kids: Optional[KidsStatus] = None
    smoke_frequency: Optional[str] = None
    drink_frequency: Optional[str] = None
    min_height_cm: Optional[int] = None
    max_height_cm: Optional[int] = None
    body_type: Optional[str] = None
    eye_color: Optional[str] = None
    hair_color: Optional[str] = None
    compatible_zodiac_only: bool = False


class MatchExplanation(BaseModel):
    shared_interests: list[str] = []
    shared_languages: list[str] = []
    zodiac_compatible: Optional[bool] = None


class BrowseItem(BaseModel):
    profile: Profile
    explanation: MatchExplanation


class BrowsePage(BaseModel):
    items: list[BrowseItem]
    total_count: int
    page: int
    page_size: int
    pages: int = Field(description="Total number of pages at this page size")
