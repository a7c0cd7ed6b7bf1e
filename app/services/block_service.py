"""
Kindred — User blocking.

A block is directional in storage (``blocker -> blocked``) but symmetric in
effect: discovery hides each user from the other as long as either side
holds a block.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Protocol

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.match import BlockRow
from app.schemas.safety import BlockedUser
from app.utils.errors import InvalidOperation

logger = structlog.get_logger("kindred.block_service")


class BlockStore(Protocol):
    async def add(self, blocker_id: str, blocked_id: str) -> bool: ...

    async def remove(self, blocker_id: str, blocked_id: str) -> bool: ...

    async def list_involving(self, user_id: str) -> list[tuple[str, str]]: ...

    async def list_blocked_by(self, blocker_id: str) -> list[tuple[str, datetime]]: ...


class InMemoryBlockStore:
    def __init__(self) -> None:
        self._blocks: dict[tuple[str, str], datetime] = {}

    async def add(self, blocker_id: str, blocked_id: str) -> bool:
        key = (blocker_id, blocked_id)
        if key in self._blocks:
            return False
        self._blocks[key] = datetime.now(timezone.utc)
        return True

    async def remove(self, blocker_id: str, blocked_id: str) -> bool:
        return self._blocks.pop((blocker_id, blocked_id), None) is not None

    async def list_involving(self, user_id: str) -> list[tuple[str, str]]:
        return [key for key in self._blocks if user_id in key]

    async def list_blocked_by(self, blocker_id: str) -> list[tuple[str, datetime]]:
        # Insertion order is block order.
        return [
            (blocked, blocked_at)
            for (blocker, blocked), blocked_at in reversed(self._blocks.items())
            if blocker == blocker_id
        ]


class SqlAlchemyBlockStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, blocker_id: str, blocked_id: str) -> bool:
        async with self._session_factory() as session:
            existing = (
                await session.execute(
                    select(BlockRow.id).where(
                        BlockRow.blocker_id == blocker_id,
                        BlockRow.blocked_id == blocked_id,
                    )
                )
            ).scalar_one_or_none()
            if existing is not None:
                return False
            session.add(BlockRow(blocker_id=blocker_id, blocked_id=blocked_id))
            try:
                await session.commit()
            except IntegrityError:
                # Another worker inserted the same block first; same outcome.
                await session.rollback()
                return False
        return True

    async def remove(self, blocker_id: str, blocked_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(BlockRow).where(
                    BlockRow.blocker_id == blocker_id,
                    BlockRow.blocked_id == blocked_id,
                )
            )
            await session.commit()
        return result.rowcount > 0

    async def list_involving(self, user_id: str) -> list[tuple[str, str]]:
        stmt = select(BlockRow.blocker_id, BlockRow.blocked_id).where(
            or_(BlockRow.blocker_id == user_id, BlockRow.blocked_id == user_id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [(blocker, blocked) for blocker, blocked in rows]

    async def list_blocked_by(self, blocker_id: str) -> list[tuple[str, datetime]]:
        stmt = (
            select(BlockRow.blocked_id, BlockRow.created_at)
            .where(BlockRow.blocker_id == blocker_id)
            .order_by(BlockRow.created_at.desc(), BlockRow.blocked_id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [(blocked, _as_utc(created_at)) for blocked, created_at in rows]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class BlockRegistry:
    def __init__(self, store: BlockStore) -> None:
        self._store = store

    async def block(self, blocker_id: str, blocked_id: str) -> bool:
        """Block ``blocked_id`` for ``blocker_id``; idempotent.

        Returns ``True`` when a new block was recorded.
        """
        if not blocker_id or not blocked_id:
            raise InvalidOperation("User id must be a non-empty string")
        if blocker_id == blocked_id:
            raise InvalidOperation("A user cannot block themselves")
        created = await self._store.add(blocker_id, blocked_id)
        logger.info("user_blocked", blocker=blocker_id, blocked=blocked_id, created=created)
        return created

    async def unblock(self, blocker_id: str, blocked_id: str) -> bool:
        removed = await self._store.remove(blocker_id, blocked_id)
        logger.info("user_unblocked", blocker=blocker_id, blocked=blocked_id, removed=removed)
        return removed

    async def hidden_for(self, user_id: str) -> set[str]:
        """Ids blocked by ``user_id`` or blocking ``user_id``."""
        hidden = set()
        for blocker, blocked in await self._store.list_involving(user_id):
            hidden.add(blocked if blocker == user_id else blocker)
        return hidden

    async def list_blocked(self, blocker_id: str) -> list[BlockedUser]:
        """Users ``blocker_id`` has blocked, most recent block first."""
        return [
            BlockedUser(user_id=blocked, blocked_at=blocked_at)
            for blocked, blocked_at in await self._store.list_blocked_by(blocker_id)
        ]
