"""Unit tests for OptimisticMutationEngine."""

from unittest.mock import AsyncMock

import pytest

from application.services.sync.cache_store import CacheStore
from application.services.sync.list_synchronizer import PaginatedListSynchronizer
from application.services.sync.mutation_engine import OptimisticMutationEngine
from application.services.sync.query_signature import RawQuery, build_signature
from common.exception import NetworkError, UpstreamUnavailable, ValidationError
from common.service.content_store import Record
from tests.fixtures.sync_fixtures import FakeClock, FakeContentStore, make_records


@pytest.fixture
def store():
    return FakeContentStore({"Ghazlen": make_records(4, likes=5)})


@pytest.fixture
def sync(store):
    return PaginatedListSynchronizer(store, CacheStore(), retry_delay=0, clock=FakeClock())


@pytest.fixture
def engine(sync):
    return OptimisticMutationEngine(sync)


@pytest.fixture
def signatures():
    return [
        build_signature(RawQuery("Ghazlen", page_size=10)),
        build_signature(RawQuery("Ghazlen", page_size=10, search="rec")),
    ]


def likes_of(sync, signature, record_id):
    return next(r.fields["likes"] for r in sync.records(signature) if r.id == record_id)


class TestPatchRecord:
    """Tests for optimistic patches."""

    @pytest.mark.asyncio
    async def test_patch_applies_to_every_partition_before_commit(self, sync, engine, signatures):
        # Arrange
        for signature in signatures:
            await sync.load_next(signature)

        # Act
        engine.patch_record(signatures, "rec1", lambda f: {**f, "likes": f["likes"] + 1})

        # Assert
        assert [likes_of(sync, s, "rec1") for s in signatures] == [6, 6]
        assert likes_of(sync, signatures[0], "rec0") == 5

    @pytest.mark.asyncio
    async def test_successful_commit_reconciles_server_fields(self, sync, engine, signatures):
        for signature in signatures:
            await sync.load_next(signature)
        pending = engine.patch_record(signatures, "rec1", lambda f: {**f, "likes": f["likes"] + 1})

        result = await pending.commit(
            AsyncMock(return_value={"id": "rec1", "fields": {"likes": 9}})
        )

        assert result == {"id": "rec1", "fields": {"likes": 9}}
        assert [likes_of(sync, s, "rec1") for s in signatures] == [9, 9]

    @pytest.mark.asyncio
    async def test_failed_commit_reverts_to_server_state(self, sync, engine, store, signatures):
        # Arrange
        for signature in signatures:
            await sync.load_next(signature)
        pending = engine.patch_record(signatures, "rec1", lambda f: {**f, "likes": 99})
        error = UpstreamUnavailable("write failed")

        # Act
        with pytest.raises(UpstreamUnavailable) as exc_info:
            await pending.commit(AsyncMock(side_effect=error))

        # Assert
        assert exc_info.value is error
        assert [likes_of(sync, s, "rec1") for s in signatures] == [5, 5]

    @pytest.mark.asyncio
    async def test_failed_commit_reraises_even_if_revalidation_fails(self, sync, engine, store, signatures):
        await sync.load_next(signatures[0])
        pending = engine.patch_record(signatures[:1], "rec1", lambda f: {**f, "likes": 99})
        store.fail_next(UpstreamUnavailable("still down"))

        with pytest.raises(NetworkError):
            await pending.commit(AsyncMock(side_effect=NetworkError("reset")))


class TestInsertAndRemove:
    """Tests for optimistic inserts and removals."""

    @pytest.mark.asyncio
    async def test_insert_prepends_and_takes_server_id(self, sync, engine, signatures):
        # Arrange
        signature = signatures[0]
        await sync.load_next(signature)

        # Act
        pending = engine.insert_record(signature, Record(id="tmp-1", fields={"title": "new"}))
        assert sync.records(signature)[0].id == "tmp-1"
        await pending.commit(AsyncMock(return_value=Record(id="srv9", fields={"likes": 0})))

        # Assert
        first = sync.records(signature)[0]
        assert first.id == "srv9"
        assert first.fields == {"title": "new", "likes": 0}

    @pytest.mark.asyncio
    async def test_insert_append(self, sync, engine, signatures):
        await sync.load_next(signatures[0])

        engine.insert_record(signatures[0], Record(id="tmp-2"), position="append")

        assert sync.records(signatures[0])[-1].id == "tmp-2"

    def test_insert_into_unloaded_partition_is_skipped(self, sync, engine, signatures):
        engine.insert_record(signatures[0], Record(id="tmp-3"))

        assert sync.records(signatures[0]) == []

    def test_insert_rejects_unknown_position(self, engine, signatures):
        with pytest.raises(ValidationError):
            engine.insert_record(signatures[0], Record(id="tmp-4"), position="middle")

    @pytest.mark.asyncio
    async def test_failed_remove_restores_record(self, sync, engine, signatures):
        await sync.load_next(signatures[0])

        pending = engine.remove_record(signatures[:1], "rec2")
        assert "rec2" not in [r.id for r in sync.records(signatures[0])]

        with pytest.raises(NetworkError):
            await pending.commit(AsyncMock(side_effect=NetworkError("reset")))

        assert "rec2" in [r.id for r in sync.records(signatures[0])]
