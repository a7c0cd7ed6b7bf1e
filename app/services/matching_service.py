"""
Kindred — Like / Pass / Match state machine.

One canonical ``MatchRecord`` exists per unordered user pair:

    NONE ──like──▶ ONE_SIDED_LIKE ──like (other side)──▶ MUTUAL
      ▲                  │                                  │
      └──────── pass (either side, any state) ◀─────────────┘

  * ``is_mutual`` holds exactly when both sides have liked.
  * ``matched_at`` is stamped once, on the transition into MUTUAL, and is
    never rewritten by a repeated like.
  * A pass deletes the record outright, so the passed user can re-surface
    in discovery.  Permanent exclusion is the job of ``BlockRegistry``.

Mutations on the same pair are serialised by a per-pair lock; unrelated pairs
never contend.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from app.schemas.match import LikeResult, MatchRecord, MutualMatch, canonical_pair
from app.services.directory_service import UserDirectory, bounded_directory_call
from app.services.match_store import MatchStore
from app.utils.errors import InvalidOperation, NotFound
from app.utils.locks import KeyedLock

logger = structlog.get_logger("kindred.matching_service")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchRegistry:
    """Owns every ``MatchRecord`` transition.

    Dependencies are injected at construction so the registry can run against
    the in-memory store in tests and the SQL store in production.

    Parameters
    ----------
    store:
        Persistence for match records.
    directory:
        Optional user directory.  When given, ``like`` verifies that the
        target exists before any state is touched.
    directory_timeout:
        Upper bound, in seconds, for that verification.
    clock:
        Returns the current UTC time; overridable for tests.
    """

    def __init__(
        self,
        store: MatchStore,
        directory: Optional[UserDirectory] = None,
        directory_timeout: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._directory = directory
        self._directory_timeout = directory_timeout
        self._clock = clock
        self._locks = KeyedLock()

    # ── Commands ──────────────────────────────────────────────────────────

    async def like(self, actor_id: str, target_id: str) -> LikeResult:
        """Record that ``actor_id`` likes ``target_id``.

        Idempotent: liking again returns the stored record unchanged with
        ``newly_mutual=False``.

        Raises
        ------
        InvalidOperation
            Self-like or an empty user id.
        NotFound
            The directory does not know ``target_id``.
        UpstreamUnavailable
            The directory did not answer in time.
        """
        self._check_ids(actor_id, target_id)
        if actor_id == target_id:
            raise InvalidOperation("A user cannot like themselves")

        await self._ensure_target_exists(target_id)

        log = logger.bind(actor=actor_id, target=target_id)
        pair = canonical_pair(actor_id, target_id)

        async with self._locks.hold(pair):
            record = await self._store.get(pair)
            now = self._clock()

            if record is None:
                record = MatchRecord(user_a_id=pair[0], user_b_id=pair[1], created_at=now)
            elif record.liked_by(actor_id):
                log.debug("like_repeated", is_mutual=record.is_mutual)
                return LikeResult(record=record, newly_mutual=False)

            if actor_id == record.user_a_id:
                record.liked_by_a = True
            else:
                record.liked_by_b = True

            newly_mutual = False
            if record.liked_by_a and record.liked_by_b and not record.is_mutual:
                record.is_mutual = True
                record.matched_at = now
                newly_mutual = True

            record.updated_at = now
            await self._store.save(record)

        if newly_mutual:
            log.info("match_created", matched_at=record.matched_at.isoformat())
        else:
            log.info("like_recorded")
        return LikeResult(record=record, newly_mutual=newly_mutual)

    async def pass_profile(self, actor_id: str, target_id: str) -> bool:
        """Delete the pair's record regardless of its state.

        Returns ``True`` if a record was removed.  Passing on a pair with no
        record, or on oneself, is a successful no-op.
        """
        self._check_ids(actor_id, target_id)
        if actor_id == target_id:
            return False

        pair = canonical_pair(actor_id, target_id)
        async with self._locks.hold(pair):
            removed = await self._store.delete(pair)

        logger.info("profile_passed", actor=actor_id, target=target_id, removed=removed)
        return removed

    # ── Queries ───────────────────────────────────────────────────────────

    async def get_record(self, user_x: str, user_y: str) -> Optional[MatchRecord]:
        return await self._store.get(canonical_pair(user_x, user_y))

    async def list_mutual_matches(self, user_id: str) -> list[MutualMatch]:
        """Mutual matches for ``user_id``, most recent ``matched_at`` first."""
        records = await self._store.list_for_user(user_id)
        mutual = [r for r in records if r.is_mutual]
        mutual.sort(key=lambda r: r.other_user(user_id))
        mutual.sort(key=lambda r: r.matched_at or _EPOCH, reverse=True)
        return [MutualMatch(record=r, other_user_id=r.other_user(user_id)) for r in mutual]

    async def list_excluded_for(self, user_id: str) -> set[str]:
        """Counterparts of every record involving ``user_id``, in any state."""
        records = await self._store.list_for_user(user_id)
        return {r.other_user(user_id) for r in records}

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _check_ids(*user_ids: str) -> None:
        for user_id in user_ids:
            if not user_id or not user_id.strip():
                raise InvalidOperation("User id must be a non-empty string")

    async def _ensure_target_exists(self, target_id: str) -> None:
        if self._directory is None:
            return
        profile = await bounded_directory_call(
            self._directory.get_profile(target_id),
            self._directory_timeout,
            "like",
        )
        if profile is None:
            raise NotFound(f"User {target_id} not found")
