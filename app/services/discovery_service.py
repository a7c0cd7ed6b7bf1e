"""
Kindred — Discovery feed (browse + recommended).

Pipeline for one browse request:

  1. Validate paging and criteria (fail fast, before any I/O).
  2. Load the requester and the candidate pool from the UserDirectory,
     each read bounded by ``DIRECTORY_TIMEOUT_SECONDS``.
  3. Build the exclusion set: every counterpart with a MatchRecord in any
     state, plus everyone blocked by or blocking the requester.
  4. CandidateFilter (hard criteria, recency order), then the
     CompatibilityScorer zodiac gate.
  5. Slice the requested page and attach a display-only explanation.

Discovery never writes; a failed read leaves nothing behind.
"""

from __future__ import annotations

import math
from typing import Optional

import structlog

from app.schemas.discovery import BrowseItem, BrowsePage, FilterCriteria
from app.schemas.profile import Gender, Profile
from app.services.block_service import BlockRegistry
from app.services.candidate_filter import CandidateFilter
from app.services.compatibility_service import CompatibilityScorer
from app.services.directory_service import UserDirectory, bounded_directory_call
from app.services.matching_service import MatchRegistry
from app.utils.errors import InvalidOperation, NotFound

logger = structlog.get_logger("kindred.discovery_service")

_GENDER_PREFERENCES = {"male": Gender.MALE, "female": Gender.FEMALE}


class DiscoveryService:
    def __init__(
        self,
        directory: UserDirectory,
        matches: MatchRegistry,
        blocks: Optional[BlockRegistry] = None,
        candidate_filter: Optional[CandidateFilter] = None,
        scorer: Optional[CompatibilityScorer] = None,
        directory_timeout: float = 5.0,
        default_page_size: int = 20,
        max_page_size: int = 100,
        recommended_limit: int = 20,
    ) -> None:
        self._directory = directory
        self._matches = matches
        self._blocks = blocks
        self._filter = candidate_filter or CandidateFilter()
        self._scorer = scorer or CompatibilityScorer()
        self._directory_timeout = directory_timeout
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.recommended_limit = recommended_limit

    async def browse(
        self,
        requester_id: str,
        criteria: Optional[FilterCriteria] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> BrowsePage:
        """Return one page of filtered candidates for ``requester_id``.

        A page past the end is valid and comes back with no items.

        Raises
        ------
        InvalidOperation
            Bad paging values or out-of-range criteria.
        NotFound
            The requester has no profile in the directory.
        UpstreamUnavailable
            The directory timed out or failed.
        """
        criteria = criteria or FilterCriteria()
        page_size = self.default_page_size if page_size is None else page_size
        if page < 1:
            raise InvalidOperation(f"page must be >= 1 (got {page})")
        if not 1 <= page_size <= self.max_page_size:
            raise InvalidOperation(
                f"page_size must be between 1 and {self.max_page_size} (got {page_size})"
            )
        self._filter.validate(criteria)

        log = logger.bind(requester=requester_id, page=page, page_size=page_size)

        requester, ranked = await self._candidates(requester_id, criteria, "browse")

        total = len(ranked)
        start = (page - 1) * page_size
        items = [
            BrowseItem(profile=p, explanation=self._scorer.explain(requester, p))
            for p in ranked[start:start + page_size]
        ]

        log.info("browse_served", total=total, returned=len(items))
        return BrowsePage(
            items=items,
            total_count=total,
            page=page,
            page_size=page_size,
            pages=math.ceil(total / page_size),
        )

    async def recommend(self, requester_id: str, limit: Optional[int] = None) -> list[Profile]:
        """Newest candidates matching the requester's own stated preferences.

        ``looking_for`` of male/female becomes a gender filter, the preferred
        age range bounds the age, and the requester's city/country form the
        location group.  Exclusions are the same as for ``browse``.
        """
        limit = self.recommended_limit if limit is None else limit
        if limit < 1:
            raise InvalidOperation(f"limit must be >= 1 (got {limit})")

        requester = await self._load_requester(requester_id, "recommend")
        criteria = self.criteria_from_preferences(requester)
        _, ranked = await self._candidates(requester_id, criteria, "recommend", requester)

        logger.info(
            "recommendations_served",
            requester=requester_id,
            available=len(ranked),
            returned=min(limit, len(ranked)),
        )
        return ranked[:limit]

    @staticmethod
    def criteria_from_preferences(requester: Profile) -> FilterCriteria:
        prefs = requester.preferences
        fields: dict = {}
        looking_for = (prefs.looking_for or "").strip().lower()
        if looking_for in _GENDER_PREFERENCES:
            fields["gender"] = _GENDER_PREFERENCES[looking_for]
        if prefs.age_range is not None:
            fields["min_age"] = prefs.age_range.min_age
            fields["max_age"] = prefs.age_range.max_age
        # Location only narrows the feed when the requester has a city.
        if requester.location.city:
            fields["city"] = requester.location.city
            if requester.location.country:
                fields["country"] = requester.location.country
        return FilterCriteria(**fields)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _load_requester(self, requester_id: str, operation: str) -> Profile:
        requester = await bounded_directory_call(
            self._directory.get_profile(requester_id),
            self._directory_timeout,
            operation,
        )
        if requester is None:
            raise NotFound(f"Profile for user {requester_id} not found")
        return requester

    async def _excluded_for(self, requester_id: str) -> set[str]:
        excluded = await self._matches.list_excluded_for(requester_id)
        if self._blocks is not None:
            excluded |= await self._blocks.hidden_for(requester_id)
        excluded.add(requester_id)
        return excluded

    async def _candidates(
        self,
        requester_id: str,
        criteria: FilterCriteria,
        operation: str,
        requester: Optional[Profile] = None,
    ) -> tuple[Profile, list[Profile]]:
        if requester is None:
            requester = await self._load_requester(requester_id, operation)
        pool = await bounded_directory_call(
            self._directory.list_profiles(),
            self._directory_timeout,
            operation,
        )
        excluded = await self._excluded_for(requester_id)

        candidates = self._filter.filter(requester, criteria, pool, excluded)
        ranked = self._scorer.rank(requester, candidates, criteria.compatible_zodiac_only)
        return requester, ranked
