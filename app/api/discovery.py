"""
Kindred — Discovery API

Browse with filters (every ``FilterCriteria`` field is a query parameter;
repeat ``zodiac`` / ``interest`` / ``language`` for multiple values) and the
preference-driven recommended feed.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_discovery_service
from app.schemas.discovery import BrowsePage, FilterCriteria
from app.schemas.profile import Gender, KidsStatus, Profile
from app.services.discovery_service import DiscoveryService

router = APIRouter()


def filter_criteria(
    gender: Optional[Gender] = None,
    min_age: Optional[int] = Query(None, ge=0),
    max_age: Optional[int] = Query(None, ge=0),
    city: Optional[str] = None,
    country: Optional[str] = None,
    video_chat_only: bool = False,
    zodiac: list[str] = Query([]),
    interest: list[str] = Query([]),
    language: list[str] = Query([]),
    education: Optional[str] = None,
    relationship_goal: Optional[str] = None,
    has_kids: Optional[KidsStatus] = None,
    smoke: Optional[str] = None,
    drink: Optional[str] = None,
    min_height_cm: Optional[int] = Query(None, ge=0),
    max_height_cm: Optional[int] = Query(None, ge=0),
    body_type: Optional[str] = None,
    eye_color: Optional[str] = None,
    hair_color: Optional[str] = None,
    compatible_zodiac_only: bool = False,
) -> FilterCriteria:
    return FilterCriteria(
        gender=gender,
        min_age=min_age,
        max_age=max_age,
        city=city,
        country=country,
        video_chat_only=video_chat_only,
        zodiac_signs=frozenset(zodiac),
        interests=frozenset(interest),
        languages=frozenset(language),
        education=education,
        relationship_goal=relationship_goal,
        has_kids=has_kids,
        smoke_frequency=smoke,
        drink_frequency=drink,
        min_height_cm=min_height_cm,
        max_height_cm=max_height_cm,
        body_type=body_type,
        eye_color=eye_color,
        hair_color=hair_color,
        compatible_zodiac_only=compatible_zodiac_only,
    )


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id} — Browse filtered profiles
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}",
    response_model=BrowsePage,
    summary="Browse candidate profiles with filters",
)
async def browse_profiles(
    user_id: str,
    criteria: FilterCriteria = Depends(filter_criteria),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    discovery: DiscoveryService = Depends(get_discovery_service),
) -> BrowsePage:
    return await discovery.browse(user_id, criteria, page=page, page_size=page_size)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/recommended — Preference-driven feed
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/recommended",
    response_model=list[Profile],
    summary="Newest profiles matching the user's own preferences",
)
async def recommended_profiles(
    user_id: str,
    limit: Optional[int] = Query(None, ge=1),
    discovery: DiscoveryService = Depends(get_discovery_service),
) -> list[Profile]:
    return await discovery.recommend(user_id, limit=limit)
