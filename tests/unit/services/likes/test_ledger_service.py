"""Unit tests for LikesLedgerService."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from application.entity.likes import LikesLedger
from application.services.likes.ledger_service import LikesLedgerService
from common.exception import (
    ConcurrentUpdate,
    InvalidCategory,
    MissingRecordId,
    UpstreamUnavailable,
    VersionConflictError,
)
from common.service.profile_store import InMemoryProfileStore, ProfileSnapshot
from tests.fixtures.sync_fixtures import FakeClock


@pytest.fixture
def profile_store():
    return InMemoryProfileStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(profile_store, clock):
    return LikesLedgerService(profile_store, retry_base_delay=0, clock=clock)


class TestToggle:
    """Tests for toggling likes."""

    @pytest.mark.asyncio
    async def test_toggle_adds_then_removes(self, service):
        # Act
        first = await service.toggle("u1", "ghazlen", "rec1")
        second = await service.toggle("u1", "ghazlen", "rec1")

        # Assert
        assert (first.liked, first.count) == (True, 1)
        assert (second.liked, second.count) == (False, 0)
        assert second.likes.ghazlen == []

    @pytest.mark.asyncio
    async def test_toggle_preserves_other_profile_keys(self, service, profile_store):
        await profile_store.write("u1", {"displayName": "Mir", "likes": {"books": ["b1"]}})

        await service.toggle("u1", "ghazlen", "rec1")

        snapshot = await profile_store.read("u1")
        assert snapshot.blob["displayName"] == "Mir"
        assert snapshot.blob["likes"]["books"] == ["b1"]
        assert snapshot.blob["likes"]["ghazlen"] == ["rec1"]
        assert isinstance(snapshot.blob["likesUpdatedAt"], int)

    @pytest.mark.asyncio
    async def test_toggle_rejects_unknown_category(self, service):
        with pytest.raises(InvalidCategory):
            await service.toggle("u1", "blogs", "rec1")

    @pytest.mark.asyncio
    async def test_toggle_requires_record_id(self, service):
        with pytest.raises(MissingRecordId):
            await service.toggle("u1", "ghazlen", "   ")

    @pytest.mark.asyncio
    async def test_concurrent_toggles_are_linearized(self, service):
        """An even number of concurrent toggles of one record leaves it unliked."""
        results = await asyncio.gather(*(service.toggle("u1", "ashaar", "s1") for _ in range(4)))

        assert sorted(r.liked for r in results) == [False, False, True, True]
        ledger = await service.get("u1", fresh=True)
        assert ledger.ashaar == []

    @pytest.mark.asyncio
    async def test_concurrent_toggles_of_different_records_all_land(self, service):
        await asyncio.gather(*(service.toggle("u1", "rubai", f"r{i}") for i in range(5)))

        ledger = await service.get("u1", fresh=True)
        assert sorted(ledger.rubai) == [f"r{i}" for i in range(5)]


class TestVersionConflicts:
    """Tests for optimistic version handling."""

    @pytest.mark.asyncio
    async def test_conflict_is_retried_with_fresh_read(self, profile_store):
        # Arrange: another writer sneaks in once
        real_write = profile_store.write
        calls = {"n": 0}

        async def flaky_write(user_id, blob, expected_version=None):
            calls["n"] += 1
            if calls["n"] == 1:
                await real_write(user_id, {"likes": {"books": ["other"]}})
            return await real_write(user_id, blob, expected_version=expected_version)

        profile_store.write = flaky_write
        service = LikesLedgerService(profile_store, retry_base_delay=0)

        # Act
        result = await service.toggle("u1", "ghazlen", "rec1")

        # Assert
        assert result.liked is True
        assert result.likes.books == ["other"]
        assert result.likes.ghazlen == ["rec1"]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_concurrent_update(self):
        store = AsyncMock()
        store.read = AsyncMock(return_value=ProfileSnapshot(blob={}, version="1"))
        store.write = AsyncMock(side_effect=VersionConflictError("stale"))
        service = LikesLedgerService(store, max_write_attempts=3, retry_base_delay=0)

        with pytest.raises(ConcurrentUpdate):
            await service.toggle("u1", "ghazlen", "rec1")
        assert store.write.await_count == 3

    @pytest.mark.asyncio
    async def test_lock_timeout_raises_concurrent_update(self, profile_store):
        # Arrange: the first toggle blocks inside its write
        release = asyncio.Event()
        real_write = profile_store.write

        async def slow_write(user_id, blob, expected_version=None):
            await release.wait()
            return await real_write(user_id, blob, expected_version=expected_version)

        profile_store.write = slow_write
        service = LikesLedgerService(profile_store, lock_timeout=0.01)
        first = asyncio.ensure_future(service.toggle("u1", "ghazlen", "rec1"))
        await asyncio.sleep(0)

        # Act / Assert
        with pytest.raises(ConcurrentUpdate):
            await service.toggle("u1", "ghazlen", "rec2")

        release.set()
        assert (await first).liked is True

    @pytest.mark.asyncio
    async def test_lock_acquired_as_wait_times_out_is_released(self, service):
        # Arrange: the acquire completes but the wait reports a timeout
        lock = asyncio.Lock()
        service._locks["u1"] = lock

        async def late_wait(waiters, timeout=None):
            await asyncio.sleep(0)
            return set(), set(waiters)

        # Act
        with patch.object(asyncio, "wait", late_wait):
            with pytest.raises(ConcurrentUpdate):
                await service.toggle("u1", "ghazlen", "rec1")
        await asyncio.sleep(0)

        # Assert
        assert lock.locked() is False
        assert (await service.toggle("u1", "ghazlen", "rec1")).liked is True


class TestMerge:
    """Tests for merging ledgers."""

    @pytest.mark.asyncio
    async def test_merge_is_additive(self, service):
        await service.toggle("u1", "ghazlen", "g1")

        merged = await service.merge("u1", LikesLedger(ghazlen=["g2"], books=["b1"]))

        assert merged.ghazlen == ["g1", "g2"]
        assert merged.books == ["b1"]

    @pytest.mark.asyncio
    async def test_merge_twice_is_idempotent(self, service):
        incoming = LikesLedger(nazmen=["n1", "n2"])

        first = await service.merge("u1", incoming)
        second = await service.merge("u1", incoming)

        assert first.to_blob() == second.to_blob()


class TestGet:
    """Tests for reading ledgers."""

    @pytest.mark.asyncio
    async def test_snapshot_is_used_unless_fresh(self, service):
        await service.toggle("u1", "ghazlen", "g1")

        from_snapshot = await service.get("u1", snapshot={"ghazlen": ["old"]})
        fresh = await service.get("u1", fresh=True, snapshot={"ghazlen": ["old"]})

        assert from_snapshot.ghazlen == ["old"]
        assert fresh.ghazlen == ["g1"]

    @pytest.mark.asyncio
    async def test_fresh_reads_are_cached_for_ttl(self, profile_store, clock):
        profile_store.read = AsyncMock(return_value=ProfileSnapshot(blob={"likes": {}}, version="0"))
        service = LikesLedgerService(profile_store, fresh_cache_ttl=5.0, clock=clock)

        await service.get("u1", fresh=True)
        await service.get("u1", fresh=True)
        clock.advance(5.1)
        await service.get("u1", fresh=True)

        assert profile_store.read.await_count == 2

    @pytest.mark.asyncio
    async def test_fresh_cache_evicts_oldest_beyond_max_entries(self, profile_store, clock):
        service = LikesLedgerService(profile_store, fresh_cache_max_entries=2, clock=clock)

        for user in ("u1", "u2", "u3"):
            await service.get(user, fresh=True)

        assert list(service._fresh_cache) == ["u2", "u3"]

    @pytest.mark.asyncio
    async def test_malformed_stored_likes_read_as_empty(self, service, profile_store):
        await profile_store.write("u1", {"likes": ["not", "a", "mapping"]})

        ledger = await service.get("u1", fresh=True)

        assert ledger.is_empty()


class TestEmptyClaimRefresh:
    """Tests for fresh reads triggered by an empty token likes claim."""

    @pytest.mark.asyncio
    async def test_empty_claim_is_served_as_is_by_default(self, service):
        await service.toggle("u1", "ghazlen", "g1")

        ledger = await service.get("u1", snapshot={})

        assert ledger.is_empty()

    @pytest.mark.asyncio
    async def test_empty_claim_reads_store_once_per_interval(self, profile_store, clock):
        # Arrange
        await profile_store.write("u1", {"likes": {"ghazlen": ["g1"]}})
        profile_store.read = AsyncMock(wraps=profile_store.read)
        service = LikesLedgerService(
            profile_store, fresh_when_empty=True, empty_claim_refresh=60.0, clock=clock
        )

        # Act
        first = await service.get("u1", snapshot={})
        clock.advance(10)
        second = await service.get("u1", snapshot={})
        clock.advance(51)
        third = await service.get("u1", snapshot={})

        # Assert
        assert first.ghazlen == ["g1"]
        assert second.is_empty()
        assert third.ghazlen == ["g1"]
        assert profile_store.read.await_count == 2

    @pytest.mark.asyncio
    async def test_non_empty_claim_skips_store(self, profile_store, clock):
        profile_store.read = AsyncMock()
        service = LikesLedgerService(profile_store, fresh_when_empty=True, clock=clock)

        ledger = await service.get("u1", snapshot={"books": ["b1"]})

        assert ledger.books == ["b1"]
        profile_store.read.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_refresh_serves_claim_and_retries_next_call(self, profile_store, clock):
        profile_store.read = AsyncMock(side_effect=UpstreamUnavailable("down"))
        service = LikesLedgerService(profile_store, fresh_when_empty=True, clock=clock)

        first = await service.get("u1", snapshot={})
        second = await service.get("u1", snapshot={})

        assert first.is_empty() and second.is_empty()
        assert profile_store.read.await_count == 2
