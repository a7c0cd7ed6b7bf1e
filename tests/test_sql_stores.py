"""SQL-backed stores and directory, exercised against in-memory SQLite (aiosqlite)."""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers tables on Base.metadata)
from app.database import Base, build_session_factory
from app.models.match import BlockRow
from app.models.profile import ProfileRow
from app.schemas.match import MatchRecord
from app.services.block_service import BlockRegistry, SqlAlchemyBlockStore
from app.services.directory_service import SqlAlchemyUserDirectory
from app.services.match_store import SqlAlchemyMatchStore
from app.services.matching_service import MatchRegistry
from app.utils.errors import Conflict


BASE_TIME = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


class TestSqlAlchemyMatchStore:

    @pytest.mark.asyncio
    async def test_round_trip_through_registry(self, session_factory, clock):
        registry = MatchRegistry(SqlAlchemyMatchStore(session_factory), clock=clock)

        await registry.like("alice", "bob")
        result = await registry.like("bob", "alice")

        stored = await registry.get_record("alice", "bob")
        assert stored.is_mutual is True
        assert stored.matched_at == result.record.matched_at
        assert stored.matched_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_delete_and_list(self, session_factory):
        store = SqlAlchemyMatchStore(session_factory)
        await store.save(MatchRecord(user_a_id="a", user_b_id="b", liked_by_a=True))
        await store.save(MatchRecord(user_a_id="a", user_b_id="c", liked_by_b=True))

        assert {r.other_user("a") for r in await store.list_for_user("a")} == {"b", "c"}
        assert await store.delete(("a", "b")) is True
        assert await store.delete(("a", "b")) is False
        assert [r.pair for r in await store.list_for_user("a")] == [("a", "c")]

    @pytest.mark.asyncio
    async def test_constraint_violation_raises_conflict(self, session_factory):
        """Rows the table rejects surface as Conflict, never half-written."""
        store = SqlAlchemyMatchStore(session_factory)
        with pytest.raises(Conflict):
            await store.save(MatchRecord(user_a_id="zed", user_b_id="amy"))
        assert await store.list_for_user("zed") == []


class TestSqlAlchemyBlockStore:

    @pytest.mark.asyncio
    async def test_block_is_idempotent_and_symmetric(self, session_factory):
        blocks = BlockRegistry(SqlAlchemyBlockStore(session_factory))

        assert await blocks.block("alice", "bob") is True
        assert await blocks.block("alice", "bob") is False
        assert await blocks.hidden_for("alice") == {"bob"}
        assert await blocks.hidden_for("bob") == {"alice"}

        assert await blocks.unblock("alice", "bob") is True
        assert await blocks.hidden_for("bob") == set()

    @pytest.mark.asyncio
    async def test_list_blocked_most_recent_first(self, session_factory):
        async with session_factory() as session:
            session.add_all([
                BlockRow(blocker_id="alice", blocked_id="bob", created_at=BASE_TIME),
                BlockRow(blocker_id="alice", blocked_id="carl",
                         created_at=BASE_TIME + timedelta(minutes=5)),
                BlockRow(blocker_id="dana", blocked_id="alice", created_at=BASE_TIME),
            ])
            await session.commit()

        blocked = await BlockRegistry(SqlAlchemyBlockStore(session_factory)).list_blocked("alice")

        assert [b.user_id for b in blocked] == ["carl", "bob"]
        assert blocked[1].blocked_at == BASE_TIME


class TestSqlAlchemyUserDirectory:

    @pytest.mark.asyncio
    async def test_rows_map_to_profiles(self, session_factory):
        async with session_factory() as session:
            session.add_all([
                ProfileRow(
                    user_id="ethan",
                    first_name="Ethan",
                    age=28,
                    gender="male",
                    location={"city": "New York", "country": "USA", "isAutoDetected": False},
                    interests=["Travel"],
                    lifestyle={"zodiac": "Aries", "height": "6'0\"", "haveKids": False},
                    preferences={"lookingFor": "female", "ageRange": {"min": 25, "max": 35}},
                    created_at=BASE_TIME,
                ),
                ProfileRow(
                    user_id="inactive", first_name="Gone", age=30, gender="female",
                    is_active=False, created_at=BASE_TIME,
                ),
                ProfileRow(
                    user_id="minor", first_name="Kid", age=16, gender="female",
                    created_at=BASE_TIME - timedelta(days=1),
                ),
            ])
            await session.commit()

        directory = SqlAlchemyUserDirectory(session_factory)
        ethan = await directory.get_profile("ethan")

        assert ethan.lifestyle.height_cm == 183
        assert ethan.lifestyle.zodiac == "aries"
        assert ethan.preferences.age_range.min_age == 25
        assert await directory.get_profile("inactive") is None
        assert [p.user_id for p in await directory.list_profiles()] == ["ethan"]
