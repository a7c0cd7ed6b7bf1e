"""
Kindred — User directory adapters.

The profile store is owned by the surrounding platform; the core only reads
it.  Two adapters share the ``UserDirectory`` protocol:

  * ``InMemoryUserDirectory`` — a dict of ``Profile`` objects, used by tests,
    local development and ``STORE_BACKEND=memory``.
  * ``SqlAlchemyUserDirectory`` — reads the ``profiles`` table through an
    ``async_sessionmaker`` and maps each row to an immutable ``Profile``.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, Optional, Protocol, TypeVar

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.profile import ProfileRow
from app.schemas.profile import Profile
from app.utils.errors import UpstreamUnavailable

logger = structlog.get_logger("kindred.directory_service")

ProfilePredicate = Callable[[Profile], bool]
T = TypeVar("T")


class UserDirectory(Protocol):
    async def get_profile(self, user_id: str) -> Optional[Profile]: ...

    async def list_profiles(
        self, predicate: Optional[ProfilePredicate] = None
    ) -> list[Profile]: ...


class InMemoryUserDirectory:
    def __init__(self, profiles: Iterable[Profile] = ()) -> None:
        self._profiles: dict[str, Profile] = {p.user_id: p for p in profiles}

    def add(self, profile: Profile) -> None:
        self._profiles[profile.user_id] = profile

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        return self._profiles.get(user_id)

    async def list_profiles(
        self, predicate: Optional[ProfilePredicate] = None
    ) -> list[Profile]:
        profiles = list(self._profiles.values())
        if predicate is None:
            return profiles
        return [p for p in profiles if predicate(p)]


def profile_from_row(row: ProfileRow) -> Profile:
    """Map a ``profiles`` row (camelCase JSON columns) to a ``Profile``."""
    return Profile.model_validate(
        {
            "user_id": row.user_id,
            "first_name": row.first_name,
            "age": row.age,
            "gender": row.gender,
            "location": row.location or {},
            "interests": row.interests or [],
            "lifestyle": row.lifestyle or {},
            "preferences": row.preferences or {},
            "created_at": row.created_at,
        }
    )


class SqlAlchemyUserDirectory:
    """Read-only view over the ``profiles`` table.

    Inactive rows are invisible.  A row that fails ``Profile`` validation
    (under-age, unparseable height ...) is logged and skipped rather than
    taking the whole feed down.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        stmt = select(ProfileRow).where(
            ProfileRow.user_id == user_id,
            ProfileRow.is_active.is_(True),
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return self._to_profile(row)

    async def list_profiles(
        self, predicate: Optional[ProfilePredicate] = None
    ) -> list[Profile]:
        stmt = select(ProfileRow).where(ProfileRow.is_active.is_(True))
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()

        profiles = []
        for row in rows:
            profile = self._to_profile(row)
            if profile is None:
                continue
            if predicate is None or predicate(profile):
                profiles.append(profile)

        logger.debug("profiles_listed", rows=len(rows), returned=len(profiles))
        return profiles

    @staticmethod
    def _to_profile(row: ProfileRow) -> Optional[Profile]:
        try:
            return profile_from_row(row)
        except ValidationError as exc:
            logger.warning(
                "profile_row_invalid",
                user_id=row.user_id,
                errors=exc.error_count(),
            )
            return None


async def bounded_directory_call(
    call: Awaitable[T], timeout: float, operation: str
) -> T:
    """Await a directory read, mapping timeouts and driver failures.

    Callers invoke this before touching any state of their own, so a
    directory outage leaves nothing half-written.
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("directory_timeout", operation=operation, timeout=timeout)
        raise UpstreamUnavailable(
            f"User directory did not answer within {timeout}s ({operation})"
        ) from exc
    except (OSError, SQLAlchemyError) as exc:
        logger.error("directory_failure", operation=operation, error=str(exc))
        raise UpstreamUnavailable(f"User directory unavailable ({operation})") from exc
