"""Unit tests for CacheStore bounds."""

from application.services.sync.cache_store import CacheStore
from application.services.sync.query_signature import RawQuery, build_signature
from common.service.content_store import Record


def signature(search):
    return build_signature(RawQuery("Ghazlen", search=search))


class TestIdlePartitions:
    """Tests for releasing partitions nobody subscribes to."""

    def test_least_recently_used_idle_partition_is_released(self):
        # Arrange
        store = CacheStore(max_idle_partitions=2)
        first = store.get_or_create(signature("a"))
        store.get_or_create(signature("b"))

        # Act: touching "a" makes "b" the oldest idle partition
        store.get_or_create(signature("a"))
        store.get_or_create(signature("c"))

        # Assert
        assert store.get(signature("b")) is None
        assert store.get(signature("a")) is first
        assert store.get(signature("c")) is not None
        assert len(store) == 2

    def test_released_partition_discards_in_flight_results(self):
        store = CacheStore(max_idle_partitions=1)
        old = store.get_or_create(signature("old"))
        generation = old.generation

        store.get_or_create(signature("new"))

        assert old.generation == generation + 1

    def test_subscribed_partitions_are_never_evicted(self):
        store = CacheStore(max_idle_partitions=1)
        unsubscribe = store.subscribe(signature("watched"), lambda partition: None)

        for term in ("x", "y", "z"):
            store.get_or_create(signature(term))

        assert store.get(signature("watched")) is not None
        assert store.get(signature("x")) is None
        assert store.get(signature("z")) is not None

        unsubscribe()
        assert store.get(signature("watched")) is None


class TestRecordCache:
    """Tests for the bounded single-record cache."""

    def test_oldest_record_is_evicted_beyond_capacity(self):
        store = CacheStore(max_records=2)
        store.put_record("Ghazlen", Record(id="r1"), 1.0)
        store.put_record("Ghazlen", Record(id="r2"), 2.0)

        store.get_record("Ghazlen", "r1")
        store.put_record("Ghazlen", Record(id="r3"), 3.0)

        assert store.get_record("Ghazlen", "r2") is None
        assert store.get_record("Ghazlen", "r1")[0].id == "r1"
        assert store.get_record("Ghazlen", "r3")[1] == 3.0
