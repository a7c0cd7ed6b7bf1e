"""Unit tests for MatchRegistry — like / pass / mutual-match state machine."""
import asyncio

import pytest
from unittest.mock import AsyncMock

from app.services.directory_service import InMemoryUserDirectory
from app.services.match_store import InMemoryMatchStore
from app.services.matching_service import MatchRegistry
from app.utils.errors import InvalidOperation, NotFound, UpstreamUnavailable


@pytest.fixture
def store():
    return InMemoryMatchStore()


@pytest.fixture
def registry(store, clock):
    return MatchRegistry(store, clock=clock)


class TestLike:
    """Like transitions and idempotency."""

    @pytest.mark.asyncio
    async def test_one_sided_like(self, registry):
        result = await registry.like("alice", "bob")
        assert result.newly_mutual is False
        assert result.record.pair == ("alice", "bob")
        assert result.record.liked_by_a is True
        assert result.record.liked_by_b is False
        assert result.record.is_mutual is False
        assert result.record.matched_at is None

    @pytest.mark.asyncio
    async def test_reciprocal_likes_become_mutual(self, registry, clock):
        """like(A,B) then like(B,A) is mutual and stamps matched_at once."""
        await registry.like("alice", "bob")
        clock.advance(30)
        result = await registry.like("bob", "alice")

        assert result.newly_mutual is True
        assert result.record.is_mutual is True
        assert result.record.matched_at == clock.now

    @pytest.mark.asyncio
    async def test_canonical_pair_regardless_of_direction(self, registry, store):
        await registry.like("zoe", "adam")
        await registry.like("adam", "zoe")
        assert len(store) == 1
        record = await registry.get_record("zoe", "adam")
        assert record.user_a_id == "adam"
        assert record.is_mutual is True

    @pytest.mark.asyncio
    async def test_duplicate_like_keeps_matched_at(self, registry, clock):
        await registry.like("alice", "bob")
        first = await registry.like("bob", "alice")
        clock.advance(3600)

        again = await registry.like("alice", "bob")
        again_other = await registry.like("bob", "alice")

        assert again.newly_mutual is False
        assert again_other.newly_mutual is False
        assert again.record.matched_at == first.record.matched_at

    @pytest.mark.asyncio
    async def test_self_like_rejected(self, registry, store):
        with pytest.raises(InvalidOperation):
            await registry.like("alice", "alice")
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_empty_id_rejected(self, registry):
        with pytest.raises(InvalidOperation):
            await registry.like("", "bob")

    @pytest.mark.asyncio
    async def test_concurrent_reciprocal_likes(self, registry):
        """Both sides liking at once yields exactly one newly-mutual result."""
        results = await asyncio.gather(
            registry.like("alice", "bob"),
            registry.like("bob", "alice"),
        )
        assert sum(r.newly_mutual for r in results) == 1
        record = await registry.get_record("alice", "bob")
        assert record.is_mutual is True


class TestDirectoryCheck:
    """Optional target verification against the UserDirectory."""

    @pytest.mark.asyncio
    async def test_unknown_target_not_found(self, store, make_profile):
        directory = InMemoryUserDirectory([make_profile("bob")])
        registry = MatchRegistry(store, directory=directory)

        with pytest.raises(NotFound):
            await registry.like("bob", "ghost")
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_directory_timeout_leaves_no_state(self, store):
        async def slow_lookup(user_id):
            await asyncio.sleep(1)

        directory = AsyncMock()
        directory.get_profile.side_effect = slow_lookup
        registry = MatchRegistry(store, directory=directory, directory_timeout=0.01)

        with pytest.raises(UpstreamUnavailable):
            await registry.like("alice", "bob")
        assert len(store) == 0


class TestPass:

    @pytest.mark.asyncio
    async def test_pass_after_mutual_deletes_record(self, registry, store):
        await registry.like("alice", "bob")
        await registry.like("bob", "alice")

        removed = await registry.pass_profile("alice", "bob")

        assert removed is True
        assert await registry.get_record("alice", "bob") is None
        assert await registry.list_mutual_matches("bob") == []

    @pytest.mark.asyncio
    async def test_pass_without_record_is_noop(self, registry):
        assert await registry.pass_profile("alice", "bob") is False

    @pytest.mark.asyncio
    async def test_like_after_pass_starts_over(self, registry):
        await registry.like("alice", "bob")
        await registry.like("bob", "alice")
        await registry.pass_profile("bob", "alice")

        result = await registry.like("alice", "bob")
        assert result.record.is_mutual is False
        assert result.record.liked_by("bob") is False


class TestQueries:

    @pytest.mark.asyncio
    async def test_mutual_matches_most_recent_first(self, registry, clock):
        for other in ("bob", "carl", "dave"):
            await registry.like("alice", other)
            await registry.like(other, "alice")
            clock.advance(60)
        await registry.like("alice", "erin")  # one-sided

        mutual = await registry.list_mutual_matches("alice")
        assert [m.other_user_id for m in mutual] == ["dave", "carl", "bob"]

    @pytest.mark.asyncio
    async def test_excluded_covers_every_state(self, registry):
        await registry.like("alice", "bob")          # alice liked
        await registry.like("carl", "alice")         # liked alice
        await registry.like("alice", "dave")
        await registry.like("dave", "alice")         # mutual

        assert await registry.list_excluded_for("alice") == {"bob", "carl", "dave"}
        assert await registry.list_excluded_for("bob") == {"alice"}
