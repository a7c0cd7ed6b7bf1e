"""
Kindred — Candidate filtering for the discovery feed.

Pure and stateless: given the requester, a ``FilterCriteria``, the candidate
pool and the exclusion set, return the surviving profiles newest first.

Evaluation policy:
  * excluded ids (and the requester) are removed before anything else;
  * every *set* criterion must pass (AND across dimensions);
  * set-valued criteria pass on any overlap (OR within a dimension);
  * ``city`` / ``country`` form one OR-group of case-insensitive substring
    matches;
  * a candidate lacking the attribute a criterion names fails it; missing
    data is never a wildcard.

``compatible_zodiac_only`` is deliberately ignored here; it belongs to
``CompatibilityScorer.rank``.
"""

from __future__ import annotations

from typing import AbstractSet, Callable, Optional, Sequence

import structlog

from app.schemas.discovery import FilterCriteria
from app.schemas.profile import KidsStatus, Profile
from app.services.compatibility_service import ZODIAC_SIGNS
from app.utils.errors import InvalidOperation

logger = structlog.get_logger("kindred.candidate_filter")

Check = Callable[[Profile], bool]


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _same(stored: Optional[str], wanted: str) -> bool:
    if stored is None:
        return False
    return stored.strip().casefold() == wanted.strip().casefold()


def _contains(stored: Optional[str], wanted: str) -> bool:
    if stored is None:
        return False
    return wanted.strip().casefold() in stored.casefold()


def _folded(values: AbstractSet[str]) -> frozenset[str]:
    return frozenset(v.strip().casefold() for v in values if v and v.strip())


def _overlaps(stored: AbstractSet[str], wanted: frozenset[str]) -> bool:
    return not _folded(stored).isdisjoint(wanted)


class CandidateFilter:
    """Apply ``FilterCriteria`` to a candidate pool."""

    def validate(self, criteria: FilterCriteria) -> None:
        """Fail fast on out-of-range criteria instead of returning nothing."""
        if criteria.min_age is not None and criteria.min_age < 0:
            raise InvalidOperation(f"min_age must not be negative (got {criteria.min_age})")
        if criteria.max_age is not None and criteria.max_age < 0:
            raise InvalidOperation(f"max_age must not be negative (got {criteria.max_age})")
        if (
            criteria.min_age is not None
            and criteria.max_age is not None
            and criteria.min_age > criteria.max_age
        ):
            raise InvalidOperation(
                f"min_age ({criteria.min_age}) is greater than max_age ({criteria.max_age})"
            )
        if (
            criteria.min_height_cm is not None
            and criteria.max_height_cm is not None
            and criteria.min_height_cm > criteria.max_height_cm
        ):
            raise InvalidOperation(
                f"min_height_cm ({criteria.min_height_cm}) is greater than "
                f"max_height_cm ({criteria.max_height_cm})"
            )
        unknown = _folded(criteria.zodiac_signs) - ZODIAC_SIGNS
        if unknown:
            raise InvalidOperation(f"Unknown zodiac sign(s): {', '.join(sorted(unknown))}")

    def filter(
        self,
        requester: Profile,
        criteria: FilterCriteria,
        pool: Sequence[Profile],
        excluded: AbstractSet[str],
    ) -> list[Profile]:
        self.validate(criteria)

        checks = self._build_checks(criteria)
        survivors = [
            candidate
            for candidate in pool
            if candidate.user_id not in excluded
            and candidate.user_id != requester.user_id
            and all(check(candidate) for check in checks)
        ]

        # Newest first; user_id breaks recency ties so the order never
        # depends on how the pool happened to be read.
        survivors.sort(key=lambda p: p.user_id)
        survivors.sort(key=lambda p: p.created_at, reverse=True)

        logger.debug(
            "candidates_filtered",
            requester=requester.user_id,
            pool_size=len(pool),
            excluded=len(excluded),
            active_criteria=len(checks),
            survivors=len(survivors),
        )
        return survivors

    # ── Criteria compilation ─────────────────────────────────────────────

    def _build_checks(self, criteria: FilterCriteria) -> list[Check]:
        checks: list[Check] = []

        if criteria.gender is not None:
            gender = criteria.gender
            checks.append(lambda p: p.gender == gender)

        if criteria.min_age is not None:
            min_age = criteria.min_age
            checks.append(lambda p: p.age >= min_age)
        if criteria.max_age is not None:
            max_age = criteria.max_age
            checks.append(lambda p: p.age <= max_age)

        city = None if _blank(criteria.city) else criteria.city
        country = None if _blank(criteria.country) else criteria.country
        if city is not None or country is not None:
            checks.append(lambda p: self._location_matches(p, city, country))

        if criteria.video_chat_only:
            checks.append(lambda p: p.preferences.video_chat)

        signs = _folded(criteria.zodiac_signs)
        if signs:
            checks.append(lambda p: p.lifestyle.zodiac is not None and p.lifestyle.zodiac in signs)

        interests = _folded(criteria.interests)
        if interests:
            checks.append(lambda p: _overlaps(p.interests, interests))

        languages = _folded(criteria.languages)
        if languages:
            checks.append(lambda p: _overlaps(p.lifestyle.languages, languages))

        for field, attr in (
            ("education", "education"),
            ("relationship_goal", "relationship_goal"),
            ("smoke_frequency", "smoke"),
            ("drink_frequency", "drink"),
            ("body_type", "body_type"),
            ("eye_color", "eye_color"),
            ("hair_color", "hair_color"),
        ):
            wanted = getattr(criteria, field)
            if not _blank(wanted):
                checks.append(self._lifestyle_equals(attr, wanted))

        if criteria.has_kids is not None and criteria.has_kids is not KidsStatus.UNKNOWN:
            kids = criteria.has_kids
            checks.append(lambda p: p.lifestyle.has_kids is kids)

        if criteria.min_height_cm is not None:
            low = criteria.min_height_cm
            checks.append(lambda p: p.lifestyle.height_cm is not None and p.lifestyle.height_cm >= low)
        if criteria.max_height_cm is not None:
            high = criteria.max_height_cm
            checks.append(lambda p: p.lifestyle.height_cm is not None and p.lifestyle.height_cm <= high)

        return checks

    @staticmethod
    def _lifestyle_equals(attr: str, wanted: str) -> Check:
        return lambda p: _same(getattr(p.lifestyle, attr), wanted)

    @staticmethod
    def _location_matches(
        candidate: Profile, city: Optional[str], country: Optional[str]
    ) -> bool:
        if city is not None and _contains(candidate.location.city, city):
            return True
        if country is not None and _contains(candidate.location.country, country):
            return True
        return False
