"""
Local cache of list partitions and single records.

A CacheStore is an explicit object rather than module state so that it can be
injected, shared between the synchronizer and the mutation engine, and cleared
on sign-out. Reads and writes never suspend.

Both caches are bounded: partitions without subscribers and single records
are evicted least recently used first.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from application.services.sync.query_signature import QuerySignature
from common.constants import IDLE_PARTITIONS_MAX, RECORD_CACHE_MAX_ENTRIES
from common.service.content_store import Page, Record

logger = logging.getLogger(__name__)

Subscriber = Callable[["CachePartition"], None]


@dataclass
class CachePartition:
    """Ordered pages fetched for one signature, plus load bookkeeping."""

    signature: QuerySignature
    pages: List[Page] = field(default_factory=list)
    exhausted: bool = False
    last_validated: Optional[float] = None
    error: Optional[Exception] = None
    consecutive_failures: int = 0
    retry_after: Optional[float] = None
    # Bumped whenever pages are discarded; in-flight results of an older generation are dropped
    generation: int = 0

    @property
    def records(self) -> List[Record]:
        return [record for page in self.pages for record in page.records]

    @property
    def next_cursor(self) -> Optional[str]:
        return self.pages[-1].cursor if self.pages else None


class CacheStore:
    """
    Partitions keyed by QuerySignature, with change subscriptions.

    Releasing the last subscriber of a signature drops its partition. At most
    ``max_idle_partitions`` partitions without subscribers are kept, so
    signatures abandoned after a query change do not accumulate.
    """

    def __init__(
        self,
        max_idle_partitions: int = IDLE_PARTITIONS_MAX,
        max_records: int = RECORD_CACHE_MAX_ENTRIES,
    ):
        self.max_idle_partitions = max_idle_partitions
        self.max_records = max_records
        self._partitions: "OrderedDict[QuerySignature, CachePartition]" = OrderedDict()
        self._subscribers: Dict[QuerySignature, List[Subscriber]] = {}
        self._records: "OrderedDict[Tuple[str, str], Tuple[Record, float]]" = OrderedDict()

    def get(self, signature: QuerySignature) -> Optional[CachePartition]:
        return self._partitions.get(signature)

    def get_or_create(self, signature: QuerySignature) -> CachePartition:
        """Return the partition for ``signature``, marking it most recently used."""
        partition = self._partitions.get(signature)
        if partition is not None:
            self._partitions.move_to_end(signature)
            return partition

        partition = CachePartition(signature=signature)
        self._partitions[signature] = partition
        self._evict_idle_partitions(keep=signature)
        return partition

    def _evict_idle_partitions(self, keep: QuerySignature) -> None:
        idle = [s for s in self._partitions if s != keep and s not in self._subscribers]
        for signature in idle[: max(0, len(idle) - self.max_idle_partitions)]:
            self.release(signature)

    def __iter__(self) -> Iterator[CachePartition]:
        return iter(list(self._partitions.values()))

    def __len__(self) -> int:
        return len(self._partitions)

    def subscribe(self, signature: QuerySignature, callback: Subscriber) -> Callable[[], None]:
        """
        Call ``callback(partition)`` after every change of the partition.

        Returns:
            Function that removes the subscription
        """
        self.get_or_create(signature)
        self._subscribers.setdefault(signature, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(signature)
            if not callbacks or callback not in callbacks:
                return
            callbacks.remove(callback)
            if not callbacks:
                del self._subscribers[signature]
                self.release(signature)

        return unsubscribe

    def notify(self, signature: QuerySignature) -> None:
        partition = self._partitions.get(signature)
        if partition is None:
            return
        for callback in list(self._subscribers.get(signature, ())):
            try:
                callback(partition)
            except Exception as e:
                logger.exception(f"Cache subscriber for {signature} failed: {e}")

    def release(self, signature: QuerySignature) -> None:
        """Drop a partition; results still in flight for it will be discarded."""
        partition = self._partitions.pop(signature, None)
        if partition is not None:
            partition.generation += 1
            logger.debug(f"Released partition {signature}")

    def get_record(self, table: str, record_id: str) -> Optional[Tuple[Record, float]]:
        key = (table, record_id)
        entry = self._records.get(key)
        if entry is not None:
            self._records.move_to_end(key)
        return entry

    def put_record(self, table: str, record: Record, validated_at: float) -> None:
        key = (table, record.id)
        self._records[key] = (record, validated_at)
        self._records.move_to_end(key)
        while len(self._records) > self.max_records:
            self._records.popitem(last=False)

    def clear(self) -> None:
        """Forget everything, e.g. on sign-out."""
        for partition in self._partitions.values():
            partition.generation += 1
        count = len(self._partitions)
        self._partitions.clear()
        self._subscribers.clear()
        self._records.clear()
        logger.info(f"Cache cleared ({count} partitions)")
