"""
Optimistic Mutation Engine

Applies record changes to cached partitions immediately, then commits them to
the server. A successful commit reconciles server-returned fields into the
cache; a failed one revalidates every affected partition, so the cache
converges back to server truth without keeping an undo log.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from application.services.sync.cache_store import CachePartition
from application.services.sync.list_synchronizer import PaginatedListSynchronizer
from application.services.sync.query_signature import QuerySignature
from common.exception import ValidationError
from common.service.content_store import Page, Record

logger = logging.getLogger(__name__)

FieldsUpdater = Callable[[Dict[str, Any]], Dict[str, Any]]

INSERT_POSITIONS = ("prepend", "append")


class PendingMutation:
    """A change already visible in the cache, waiting for its server commit."""

    def __init__(
        self,
        engine: "OptimisticMutationEngine",
        kind: str,
        signatures: Tuple[QuerySignature, ...],
        record_id: str,
    ):
        self.engine = engine
        self.kind = kind
        self.signatures = signatures
        self.record_id = record_id

    async def commit(self, call: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run the server call backing this mutation.

        Args:
            call: Zero-argument coroutine function performing the write

        Returns:
            Whatever ``call`` returned

        Raises:
            Exception: The call's own error, after the affected partitions
                have been revalidated
        """
        try:
            result = await call()
        except Exception as e:
            logger.warning(f"{self.kind} of {self.record_id} failed, revalidating: {e}")
            await self.engine.revalidate_all(self.signatures)
            raise

        server_record = _as_record(result)
        if server_record is not None:
            self.engine.reconcile(self, server_record)
        return result

    def __repr__(self) -> str:
        return f"PendingMutation({self.kind}, {self.record_id}, {len(self.signatures)} partitions)"


def _as_record(result: Any) -> Optional[Record]:
    if isinstance(result, Record):
        return result
    if isinstance(result, dict) and result.get("id"):
        fields = result.get("fields")
        return Record(id=str(result["id"]), fields=dict(fields) if isinstance(fields, dict) else {})
    return None


class OptimisticMutationEngine:
    """
    Cache-first record mutations.

    Example:
        >>> engine = OptimisticMutationEngine(synchronizer)
        >>> pending = engine.patch_record([signature], "rec1", lambda f: {**f, "likes": f["likes"] + 1})
        >>> await pending.commit(lambda: client.update("Ghazlen", "rec1", {"likes": 8}))
    """

    def __init__(self, synchronizer: PaginatedListSynchronizer):
        self.synchronizer = synchronizer
        self.cache_store = synchronizer.cache_store

    def _partitions(self, signatures: Iterable[QuerySignature]) -> List[CachePartition]:
        found = []
        for signature in signatures:
            partition = self.cache_store.get(signature)
            if partition is not None:
                found.append(partition)
        return found

    def _rewrite(self, partition: CachePartition, transform: Callable[[List[Record]], List[Record]]) -> None:
        partition.pages = [Page(records=transform(list(page.records)), cursor=page.cursor) for page in partition.pages]
        self.cache_store.notify(partition.signature)

    def patch_record(
        self, signatures: Iterable[QuerySignature], record_id: str, updater: FieldsUpdater
    ) -> PendingMutation:
        """Replace the fields of ``record_id`` in every listed partition with ``updater(fields)``."""
        signatures = tuple(signatures)

        def transform(records: List[Record]) -> List[Record]:
            return [
                Record(id=record.id, fields=updater(dict(record.fields))) if record.id == record_id else record
                for record in records
            ]

        for partition in self._partitions(signatures):
            self._rewrite(partition, transform)
        return PendingMutation(self, "patch", signatures, record_id)

    def insert_record(
        self, signature: QuerySignature, record: Record, position: str = "prepend"
    ) -> PendingMutation:
        """
        Add a new record to the first or last loaded page of one partition.

        Partitions without loaded pages are left alone; the record shows up
        once they load.
        """
        if position not in INSERT_POSITIONS:
            raise ValidationError(f"invalid insert position: {position!r}")

        partition = self.cache_store.get(signature)
        if partition is None or not partition.pages:
            logger.info(f"Skipping optimistic insert of {record.id}: {signature} has no loaded pages")
        else:
            index = 0 if position == "prepend" else len(partition.pages) - 1
            page = partition.pages[index]
            records = [record] + page.records if position == "prepend" else page.records + [record]
            partition.pages[index] = Page(records=records, cursor=page.cursor)
            self.cache_store.notify(signature)
        return PendingMutation(self, "insert", (signature,), record.id)

    def remove_record(self, signatures: Iterable[QuerySignature], record_id: str) -> PendingMutation:
        signatures = tuple(signatures)
        for partition in self._partitions(signatures):
            self._rewrite(partition, lambda records: [r for r in records if r.id != record_id])
        return PendingMutation(self, "remove", signatures, record_id)

    def reconcile(self, pending: PendingMutation, server_record: Record) -> None:
        """Merge a server-confirmed record over its optimistic version."""
        if pending.kind == "remove":
            return

        def transform(records: List[Record]) -> List[Record]:
            reconciled = []
            for record in records:
                if record.id == pending.record_id:
                    record = Record(id=server_record.id, fields={**record.fields, **server_record.fields})
                reconciled.append(record)
            return reconciled

        for partition in self._partitions(pending.signatures):
            self._rewrite(partition, transform)

    async def revalidate_all(self, signatures: Iterable[QuerySignature]) -> None:
        """Force-revalidate every listed partition that is still cached."""
        partitions = self._partitions(signatures)
        results = await asyncio.gather(
            *(self.synchronizer.revalidate(p.signature, force=True) for p in partitions),
            return_exceptions=True,
        )
        for partition, result in zip(partitions, results):
            if isinstance(result, Exception):
                logger.error(f"Revalidation of {partition.signature} after failed mutation failed: {result}")
