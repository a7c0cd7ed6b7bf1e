"""
Kindred — Zodiac compatibility gate and match explanations.

The scorer is exclusionary, not additive: with ``compatible_zodiac_only`` set
and a recorded requester sign, candidates outside the requester's four
compatible signs are dropped and everyone else keeps the recency order
produced by CandidateFilter.  No other factor changes ordering.

Shared interests and languages are surfaced through ``explain`` for display
on browse cards only.
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from app.schemas.discovery import MatchExplanation
from app.schemas.profile import Profile

logger = structlog.get_logger("kindred.compatibility_service")


# Each sign maps to exactly four compatible signs.
ZODIAC_COMPATIBILITY: dict[str, frozenset[str]] = {
    "aries": frozenset({"leo", "sagittarius", "gemini", "aquarius"}),
    "taurus": frozenset({"virgo", "capricorn", "cancer", "pisces"}),
    "gemini": frozenset({"libra", "aquarius", "aries", "leo"}),
    "cancer": frozenset({"scorpio", "pisces", "taurus", "virgo"}),
    "leo": frozenset({"aries", "sagittarius", "gemini", "libra"}),
    "virgo": frozenset({"taurus", "capricorn", "cancer", "scorpio"}),
    "libra": frozenset({"gemini", "aquarius", "leo", "sagittarius"}),
    "scorpio": frozenset({"cancer", "pisces", "virgo", "capricorn"}),
    "sagittarius": frozenset({"aries", "leo", "libra", "aquarius"}),
    "capricorn": frozenset({"taurus", "virgo", "scorpio", "pisces"}),
    "aquarius": frozenset({"gemini", "libra", "aries", "sagittarius"}),
    "pisces": frozenset({"cancer", "scorpio", "taurus", "capricorn"}),
}

ZODIAC_SIGNS: frozenset[str] = frozenset(ZODIAC_COMPATIBILITY)


def compatible_signs(sign: Optional[str]) -> frozenset[str]:
    """Return the compatible set for ``sign`` (empty for unknown/missing)."""
    if not sign:
        return frozenset()
    return ZODIAC_COMPATIBILITY.get(sign.strip().lower(), frozenset())


def is_zodiac_compatible(sign_a: Optional[str], sign_b: Optional[str]) -> bool:
    if not sign_b:
        return False
    return sign_b.strip().lower() in compatible_signs(sign_a)


def _overlap(a: frozenset[str], b: frozenset[str]) -> list[str]:
    folded_b = {v.casefold() for v in b}
    return sorted({v for v in a if v.casefold() in folded_b}, key=str.casefold)


class CompatibilityScorer:
    """Stateless; one instance can serve every request concurrently."""

    def rank(
        self,
        requester: Profile,
        candidates: Sequence[Profile],
        compatible_zodiac_only: bool,
    ) -> list[Profile]:
        """Apply the zodiac gate, keeping the incoming order.

        A no-op when the flag is unset or the requester has no recorded sign.
        Candidates with no sign fail the gate.
        """
        requester_sign = requester.lifestyle.zodiac
        if not compatible_zodiac_only or not requester_sign:
            return list(candidates)

        allowed = compatible_signs(requester_sign)
        ranked = [c for c in candidates if c.lifestyle.zodiac in allowed]

        logger.debug(
            "zodiac_gate_applied",
            requester_sign=requester_sign,
            candidates_in=len(candidates),
            candidates_out=len(ranked),
        )
        return ranked

    def explain(self, requester: Profile, candidate: Profile) -> MatchExplanation:
        """Display-only summary of what the pair has in common."""
        zodiac_compatible: Optional[bool] = None
        if requester.lifestyle.zodiac and candidate.lifestyle.zodiac:
            zodiac_compatible = is_zodiac_compatible(
                requester.lifestyle.zodiac, candidate.lifestyle.zodiac
            )

        return MatchExplanation(
            shared_interests=_overlap(candidate.interests, requester.interests),
            shared_languages=_overlap(
                candidate.lifestyle.languages, requester.lifestyle.languages
            ),
            zodiac_compatible=zodiac_compatible,
        )
