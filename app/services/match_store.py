"""
Kindred — MatchRecord persistence.

The registry owns the state machine; stores only keep records keyed by the
canonical pair ``(user_a_id, user_b_id)``.  Both adapters hand out copies so
callers can never mutate stored state behind the registry's lock.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Protocol

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.match import MatchRow
from app.schemas.match import MatchRecord
from app.utils.errors import Conflict

logger = structlog.get_logger("kindred.match_store")

Pair = tuple[str, str]


class MatchStore(Protocol):
    async def get(self, pair: Pair) -> Optional[MatchRecord]: ...

    async def save(self, record: MatchRecord) -> None: ...

    async def delete(self, pair: Pair) -> bool: ...

    async def list_for_user(self, user_id: str) -> list[MatchRecord]: ...


class InMemoryMatchStore:
    def __init__(self) -> None:
        self._records: dict[Pair, MatchRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, pair: Pair) -> Optional[MatchRecord]:
        record = self._records.get(pair)
        return record.model_copy() if record is not None else None

    async def save(self, record: MatchRecord) -> None:
        self._records[record.pair] = record.model_copy()

    async def delete(self, pair: Pair) -> bool:
        return self._records.pop(pair, None) is not None

    async def list_for_user(self, user_id: str) -> list[MatchRecord]:
        return [r.model_copy() for r in self._records.values() if r.involves(user_id)]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _record_from_row(row: MatchRow) -> MatchRecord:
    return MatchRecord(
        user_a_id=row.user_a_id,
        user_b_id=row.user_b_id,
        liked_by_a=row.liked_by_a,
        liked_by_b=row.liked_by_b,
        is_mutual=row.is_mutual,
        matched_at=_as_utc(row.matched_at),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


class SqlAlchemyMatchStore:
    """``match_records`` table adapter.

    The unique ``(user_a_id, user_b_id)`` constraint is the cross-process
    guard: when another worker inserts the same pair first, ``save`` raises
    ``Conflict`` and the caller's operation fails without partial writes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _pair_clause(pair: Pair):
        return (MatchRow.user_a_id == pair[0]) & (MatchRow.user_b_id == pair[1])

    async def get(self, pair: Pair) -> Optional[MatchRecord]:
        async with self._session_factory() as session:
            row = (
                await session.execute(select(MatchRow).where(self._pair_clause(pair)))
            ).scalar_one_or_none()
        return _record_from_row(row) if row is not None else None

    async def save(self, record: MatchRecord) -> None:
        async with self._session_factory() as session:
            try:
                row = (
                    await session.execute(
                        select(MatchRow).where(self._pair_clause(record.pair))
                    )
                ).scalar_one_or_none()
                if row is None:
                    row = MatchRow(
                        user_a_id=record.user_a_id,
                        user_b_id=record.user_b_id,
                        created_at=record.created_at,
                    )
                    session.add(row)
                row.liked_by_a = record.liked_by_a
                row.liked_by_b = record.liked_by_b
                row.is_mutual = record.is_mutual
                row.matched_at = record.matched_at
                row.updated_at = record.updated_at
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.warning(
                    "match_record_conflict",
                    user_a=record.user_a_id,
                    user_b=record.user_b_id,
                )
                raise Conflict(
                    f"Match record for {record.user_a_id}/{record.user_b_id} "
                    "was modified concurrently"
                ) from exc

    async def delete(self, pair: Pair) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(MatchRow).where(self._pair_clause(pair)))
            await session.commit()
        return result.rowcount > 0

    async def list_for_user(self, user_id: str) -> list[MatchRecord]:
        stmt = select(MatchRow).where(
            or_(MatchRow.user_a_id == user_id, MatchRow.user_b_id == user_id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_record_from_row(row) for row in rows]
