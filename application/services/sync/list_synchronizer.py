"""
Paginated List Synchronizer

Keeps cache partitions coherent with the content store: fetches pages in
order, coalesces concurrent loads of the same partition, revalidates on
demand, and backs off automatic loads after repeated failures.

Commits are guarded: a fetch result is dropped when its partition was
released, cleared or revalidated (generation changed) or when another page
was appended meanwhile (cursor changed).
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from application.services.sync.cache_store import CachePartition, CacheStore
from application.services.sync.query_signature import QuerySignature
from common.constants import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_FAILURE_THRESHOLD,
    DEDUPE_INTERVAL_SECONDS,
    FETCH_RETRIES,
    FETCH_RETRY_DELAY_SECONDS,
)
from common.service.content_store import ContentStore, Page, Record, with_network_retry

logger = logging.getLogger(__name__)


class PaginatedListSynchronizer:
    """
    Fetch-and-cache coordinator for paginated lists.

    Example:
        >>> sync = PaginatedListSynchronizer(ContentStoreClient(url, base_id, token))
        >>> signature = build_signature(RawQuery("Ghazlen"))
        >>> await sync.load_next(signature)
        >>> while sync.has_more(signature):
        ...     await sync.load_next(signature)
        >>> records = sync.records(signature)
    """

    def __init__(
        self,
        content_store: ContentStore,
        cache_store: Optional[CacheStore] = None,
        dedupe_interval: float = DEDUPE_INTERVAL_SECONDS,
        fetch_retries: int = FETCH_RETRIES,
        retry_delay: float = FETCH_RETRY_DELAY_SECONDS,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        backoff_threshold: int = BACKOFF_FAILURE_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.content_store = content_store
        self.cache_store = cache_store if cache_store is not None else CacheStore()
        self.dedupe_interval = dedupe_interval
        self.fetch_retries = fetch_retries
        self.retry_delay = retry_delay
        self.backoff_base = backoff_base
        self.backoff_threshold = backoff_threshold
        self._clock = clock
        self._inflight: Dict[QuerySignature, asyncio.Task] = {}
        self._record_inflight: Dict[Tuple[str, str], asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_or_create(self, signature: QuerySignature) -> CachePartition:
        return self.cache_store.get_or_create(signature)

    def records(self, signature: QuerySignature) -> List[Record]:
        partition = self.cache_store.get(signature)
        return partition.records if partition is not None else []

    def has_more(self, signature: QuerySignature) -> bool:
        partition = self.cache_store.get(signature)
        return partition is None or not partition.exhausted

    def in_backoff(self, partition: CachePartition) -> bool:
        return partition.retry_after is not None and self._clock() < partition.retry_after

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_next(self, signature: QuerySignature, automatic: bool = False) -> CachePartition:
        """
        Fetch the next page of a partition and append it.

        Args:
            signature: Partition to extend
            automatic: True for loads not triggered by the user (scroll
                sentinels, focus refresh); those are refused during back-off

        Returns:
            The partition after the load

        Raises:
            SyncError: If the fetch failed; nothing is committed
        """
        partition = self.get_or_create(signature)
        if partition.exhausted:
            return partition

        running = self._inflight.get(signature)
        if running is not None and not running.done():
            return await asyncio.shield(running)

        if automatic and self.in_backoff(partition):
            logger.debug(f"Automatic load of {signature} refused during back-off")
            return partition

        task = asyncio.ensure_future(
            self._fetch(signature, partition, partition.generation, partition.next_cursor, replace=False)
        )
        self._inflight[signature] = task
        return await asyncio.shield(task)

    async def revalidate(
        self, signature: QuerySignature, force: bool = True, automatic: bool = False
    ) -> CachePartition:
        """
        Refetch page 0 and replace the partition's page history.

        Args:
            signature: Partition to refresh
            force: Refetch even if validated within the dedupe interval
            automatic: Refuse while the partition is in back-off

        Returns:
            The partition after the refresh
        """
        partition = self.get_or_create(signature)
        running = self._inflight.get(signature)

        if not force:
            if (
                partition.pages
                and partition.last_validated is not None
                and self._clock() - partition.last_validated < self.dedupe_interval
            ):
                return partition
            if running is not None and not running.done():
                return await asyncio.shield(running)

        if automatic and self.in_backoff(partition):
            logger.debug(f"Automatic revalidation of {signature} refused during back-off")
            return partition

        # Results of loads started before this point no longer apply
        partition.generation += 1
        task = asyncio.ensure_future(
            self._fetch(signature, partition, partition.generation, None, replace=True)
        )
        self._inflight[signature] = task
        return await asyncio.shield(task)

    async def _fetch(
        self,
        signature: QuerySignature,
        partition: CachePartition,
        generation: int,
        cursor: Optional[str],
        replace: bool,
    ) -> CachePartition:
        page_count = len(partition.pages)
        params = signature.to_list_params(cursor)
        try:
            page = await with_network_retry(
                lambda: self.content_store.list(signature.table, params),
                self.fetch_retries,
                self.retry_delay,
            )
        except Exception as e:
            if self._is_current(signature, partition, generation):
                self._record_failure(partition, e)
            raise
        finally:
            if self._inflight.get(signature) is asyncio.current_task():
                del self._inflight[signature]

        if not self._is_current(signature, partition, generation) or (
            not replace and (len(partition.pages) != page_count or partition.next_cursor != cursor)
        ):
            logger.debug(f"Discarding stale page for {signature}")
            return self.cache_store.get(signature) or partition

        self._commit(partition, page, replace)
        return partition

    def _is_current(self, signature: QuerySignature, partition: CachePartition, generation: int) -> bool:
        return self.cache_store.get(signature) is partition and partition.generation == generation

    def _commit(self, partition: CachePartition, page: Page, replace: bool) -> None:
        if replace:
            partition.pages = [page]
        else:
            partition.pages.append(page)
        partition.exhausted = page.cursor is None
        partition.last_validated = self._clock()
        partition.error = None
        partition.consecutive_failures = 0
        partition.retry_after = None
        logger.debug(
            f"Committed page {len(partition.pages)} of {partition.signature} "
            f"({len(page.records)} records, exhausted={partition.exhausted})"
        )
        self.cache_store.notify(partition.signature)

    def _record_failure(self, partition: CachePartition, error: Exception) -> None:
        partition.error = error
        partition.consecutive_failures += 1
        excess = partition.consecutive_failures - self.backoff_threshold
        if excess >= 0:
            delay = self.backoff_base * (2**excess)
            partition.retry_after = self._clock() + delay
            logger.warning(
                f"Load of {partition.signature} failed {partition.consecutive_failures} times in a row, "
                f"backing off automatic loads for {delay:.1f}s. Error: {error}"
            )
        else:
            logger.info(f"Load of {partition.signature} failed: {error}")
        self.cache_store.notify(partition.signature)

    # ------------------------------------------------------------------
    # Single records
    # ------------------------------------------------------------------

    async def load_record(self, table: str, record_id: str, force: bool = False) -> Record:
        """
        Fetch one record through the record cache.

        A record validated within the dedupe interval is served from cache
        unless ``force``. Concurrent loads of the same record share one fetch.
        """
        key = (table, record_id)
        cached = self.cache_store.get_record(table, record_id)
        if not force and cached is not None and self._clock() - cached[1] < self.dedupe_interval:
            return cached[0]

        running = self._record_inflight.get(key)
        if running is None or running.done():
            running = asyncio.ensure_future(self._fetch_record(table, record_id))
            self._record_inflight[key] = running
        return await asyncio.shield(running)

    async def _fetch_record(self, table: str, record_id: str) -> Record:
        try:
            record = await with_network_retry(
                lambda: self.content_store.get(table, record_id),
                self.fetch_retries,
                self.retry_delay,
            )
        finally:
            if self._record_inflight.get((table, record_id)) is asyncio.current_task():
                del self._record_inflight[(table, record_id)]
        self.cache_store.put_record(table, record, self._clock())
        return record

    def remember_record(self, table: str, record: Record) -> None:
        """Store a server-confirmed record, e.g. the result of an update."""
        self.cache_store.put_record(table, record, self._clock())

    def clear(self) -> None:
        """Drop every cached partition and record; in-flight results are discarded."""
        self.cache_store.clear()
