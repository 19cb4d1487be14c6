"""
Client-side like button logic.

Combines the local likes ledger, the optimistic mutation engine and the likes
API: a click flips the local state and the record's like counter at once, the
toggle is committed, the server's answer is adopted and the resulting counter
is written back to the content store.
"""

import logging
import time
from typing import Callable, Dict, Iterable, Optional, Set, Tuple

from application.entity.likes import LikesLedger, map_table_to_category
from application.services.likes.ledger_service import ToggleResult
from application.services.sync.likes_client import LikesApiClient
from application.services.sync.mutation_engine import OptimisticMutationEngine
from application.services.sync.query_signature import QuerySignature
from common.constants import LIKE_CLICK_DEBOUNCE_SECONDS
from common.exception import SyncError

logger = logging.getLogger(__name__)

LIKES_FIELD = "likes"


def _likes_of(fields) -> int:
    try:
        return max(0, int(fields.get(LIKES_FIELD) or 0))
    except (TypeError, ValueError):
        return 0


def _counter_setter(value: int):
    def update(fields):
        return {**fields, LIKES_FIELD: max(0, value)}

    return update


class LikeToggler:
    """
    Debounced, optimistic like toggling for one signed-in user.

    Example:
        >>> toggler = LikeToggler(engine, likes_client, await likes_client.fresh_likes())
        >>> await toggler.toggle("Ghazlen", "rec42", signatures=[ghazlen_list])
        True
    """

    def __init__(
        self,
        engine: OptimisticMutationEngine,
        likes_client: LikesApiClient,
        ledger: Optional[LikesLedger] = None,
        debounce: float = LIKE_CLICK_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.engine = engine
        self.likes_client = likes_client
        self.ledger = ledger or LikesLedger()
        self.debounce = debounce
        self._clock = clock
        self._last_click: Dict[Tuple[str, str], float] = {}
        self._in_flight: Set[Tuple[str, str]] = set()

    def is_liked(self, table: str, record_id: str) -> bool:
        return self.ledger.contains(map_table_to_category(table), record_id)

    async def refresh(self) -> LikesLedger:
        """Adopt the server's ledger (throttled by the client)."""
        self.ledger = await self.likes_client.fresh_likes()
        return self.ledger

    async def toggle(
        self, table: str, record_id: str, signatures: Iterable[QuerySignature] = ()
    ) -> Optional[bool]:
        """
        Toggle a like and persist the record's like counter.

        Args:
            table: Content table of the record
            record_id: Record to like or unlike
            signatures: Cached partitions showing the record's like counter

        Returns:
            The confirmed liked state, or None if the click was ignored
            (debounced, or a toggle for the record is still in flight)

        Raises:
            SyncError: If the server rejected the toggle; local state is
                restored and the partitions revalidated first

        A counter write that fails after a confirmed toggle is logged and the
        partitions are revalidated; the toggle itself stands.
        """
        category = map_table_to_category(table)
        key = (category, record_id)
        now = self._clock()

        if key in self._in_flight:
            logger.debug(f"Ignoring like click on {record_id}: toggle in flight")
            return None
        last_click = self._last_click.get(key)
        if last_click is not None and now - last_click < self.debounce:
            logger.debug(f"Ignoring like click on {record_id}: debounced")
            return None
        self._last_click[key] = now

        self._in_flight.add(key)
        try:
            return await self._toggle(table, category, record_id, tuple(signatures))
        finally:
            self._in_flight.discard(key)

    async def _toggle(
        self, table: str, category: str, record_id: str, signatures: Tuple[QuerySignature, ...]
    ) -> bool:
        base = await self._cached_counter(table, record_id, signatures)
        previous = self.ledger
        self.ledger, liked = previous.toggled(category, record_id)
        pending = self.engine.patch_record(
            signatures, record_id, _counter_setter(base + (1 if liked else -1))
        )

        try:
            result: ToggleResult = await pending.commit(
                lambda: self.likes_client.toggle(table, record_id)
            )
        except Exception:
            self.ledger = previous
            raise

        self.ledger = result.likes
        if result.liked != liked:
            logger.info(f"Server disagreed on like state of {record_id}, correcting counter")
        await self._persist_counter(
            table, record_id, signatures, base + (1 if result.liked else -1)
        )
        return result.liked

    async def _cached_counter(
        self, table: str, record_id: str, signatures: Tuple[QuerySignature, ...]
    ) -> int:
        """Like counter of the record before this click; fetched when no partition holds it."""
        synchronizer = self.engine.synchronizer
        for signature in signatures:
            for record in synchronizer.records(signature):
                if record.id == record_id:
                    return _likes_of(record.fields)
        record = await synchronizer.load_record(table, record_id)
        return _likes_of(record.fields)

    async def _persist_counter(
        self, table: str, record_id: str, signatures: Tuple[QuerySignature, ...], count: int
    ) -> None:
        count = max(0, count)
        synchronizer = self.engine.synchronizer
        pending = self.engine.patch_record(signatures, record_id, _counter_setter(count))
        try:
            record = await pending.commit(
                lambda: synchronizer.content_store.update(table, record_id, {LIKES_FIELD: count})
            )
        except SyncError as e:
            logger.warning(f"Like of {record_id} saved but its counter was not: {e}")
            return
        synchronizer.remember_record(table, record)
