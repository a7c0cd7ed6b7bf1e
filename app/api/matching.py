"""
Kindred — Matching API

Like / pass actions and the mutual-match list.  Domain errors raised by the
registry (self-like, unknown target, directory outage) are turned into JSON
responses by the application-level ``KindredError`` handler.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response, status

from app.dependencies import get_match_registry
from app.schemas.match import LikeResponse, MutualMatchItem
from app.services.matching_service import MatchRegistry

logger = structlog.get_logger("kindred.api.matching")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST /{actor_id}/like/{target_id} — Like a profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{actor_id}/like/{target_id}",
    response_model=LikeResponse,
    summary="Like a profile",
)
async def like_profile(
    actor_id: str,
    target_id: str,
    matches: MatchRegistry = Depends(get_match_registry),
) -> LikeResponse:
    """Record a like.  ``is_mutual_match`` is true once both sides liked;
    ``newly_mutual`` only on the like that completed the match."""
    result = await matches.like(actor_id, target_id)
    record = result.record
    return LikeResponse(
        status="matched" if record.is_mutual else "liked",
        is_mutual_match=record.is_mutual,
        newly_mutual=result.newly_mutual,
        matched_at=record.matched_at,
        record=record,
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /{actor_id}/pass/{target_id} — Pass on a profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{actor_id}/pass/{target_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Pass on a profile (removes any like or match between the pair)",
)
async def pass_profile(
    actor_id: str,
    target_id: str,
    matches: MatchRegistry = Depends(get_match_registry),
) -> Response:
    await matches.pass_profile(actor_id, target_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/mutual — List mutual matches
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/mutual",
    response_model=list[MutualMatchItem],
    summary="List mutual matches, most recent first",
)
async def list_mutual_matches(
    user_id: str,
    matches: MatchRegistry = Depends(get_match_registry),
) -> list[MutualMatchItem]:
    mutual = await matches.list_mutual_matches(user_id)
    logger.debug("mutual_matches_listed", user_id=user_id, count=len(mutual))
    return [
        MutualMatchItem(
            other_user_id=m.other_user_id,
            matched_at=m.record.matched_at,
            created_at=m.record.created_at,
        )
        for m in mutual
    ]
