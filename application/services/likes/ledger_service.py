"""
Likes Ledger Service

Server-side, authoritative store of per-user liked record ids, backed by the
identity provider's profile blobs.

Toggle and merge are read-modify-write cycles over a store without atomic set
operations. They are made safe in two layers:
- an in-process asyncio.Lock per user linearizes calls handled by this
  process;
- every write is conditional on the version read, and a conflict (another
  process wrote in between) re-reads and re-applies the change with
  exponential backoff.
A race that outlives the retry budget surfaces as ConcurrentUpdate.
"""

import asyncio
import logging
import time
import weakref
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from application.entity.likes import LikesLedger, validate_category
from common.constants import (
    EMPTY_CLAIM_REFRESH_SECONDS,
    FRESH_CACHE_MAX_ENTRIES,
    FRESH_CACHE_TTL_SECONDS,
    LIKES_CAP_PER_CATEGORY,
    MAX_LEDGER_WRITE_ATTEMPTS,
    RETRY_BASE_DELAY_SECONDS,
)
from common.exception import (
    ConcurrentUpdate,
    MissingRecordId,
    SyncError,
    ValidationError,
    VersionConflictError,
)
from common.service.profile_store import ProfileSnapshot, ProfileStore

logger = logging.getLogger(__name__)

LIKES_KEY = "likes"
LIKES_UPDATED_AT_KEY = "likesUpdatedAt"


@dataclass
class ToggleResult:
    """Outcome of a toggle as confirmed by the store."""

    liked: bool
    count: int
    likes: LikesLedger

    def to_dict(self) -> Dict[str, Any]:
        return {"liked": self.liked, "count": self.count, "likes": self.likes.to_blob()}


class LikesLedgerService:
    """
    Authoritative likes ledger.

    Example:
        >>> service = LikesLedgerService(InMemoryProfileStore())
        >>> result = await service.toggle("user_1", "ghazlen", "rec42")
        >>> result.liked, result.count
        (True, 1)
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        cap: int = LIKES_CAP_PER_CATEGORY,
        fresh_cache_ttl: float = FRESH_CACHE_TTL_SECONDS,
        fresh_cache_max_entries: int = FRESH_CACHE_MAX_ENTRIES,
        max_write_attempts: int = MAX_LEDGER_WRITE_ATTEMPTS,
        retry_base_delay: float = RETRY_BASE_DELAY_SECONDS,
        lock_timeout: float = 5.0,
        fresh_when_empty: bool = False,
        empty_claim_refresh: float = EMPTY_CLAIM_REFRESH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.profile_store = profile_store
        self.cap = cap
        self.fresh_cache_ttl = fresh_cache_ttl
        self.fresh_cache_max_entries = fresh_cache_max_entries
        self.max_write_attempts = max_write_attempts
        self.retry_base_delay = retry_base_delay
        self.lock_timeout = lock_timeout
        self.fresh_when_empty = fresh_when_empty
        self.empty_claim_refresh = empty_claim_refresh
        self._clock = clock
        self._fresh_cache: "OrderedDict[str, Tuple[LikesLedger, float]]" = OrderedDict()
        # user id -> earliest time an empty claim may trigger another fresh read
        self._empty_claim_reads: "OrderedDict[str, float]" = OrderedDict()
        # Locks disappear once no coroutine holds or waits on them
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(
        self,
        user_id: str,
        fresh: bool = False,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> LikesLedger:
        """
        Read a user's ledger.

        Args:
            user_id: Ledger owner
            fresh: Bypass the denormalized snapshot and read the profile store
            snapshot: Likes claim carried by the caller's token (may lag)

        Returns:
            Validated, de-duplicated ledger; never raises on malformed data

        With ``fresh_when_empty`` an empty claim is checked against the
        profile store once per ``empty_claim_refresh`` seconds per user.
        """
        self._check_user(user_id)
        if fresh or not isinstance(snapshot, dict):
            return await self._read_cached(user_id)

        ledger = LikesLedger.from_blob(snapshot, self.cap)
        if self.fresh_when_empty and ledger.is_empty():
            return await self._read_for_empty_claim(user_id, ledger)
        return ledger

    async def _read_for_empty_claim(self, user_id: str, claimed: LikesLedger) -> LikesLedger:
        now = self._clock()
        for key in [k for k, due in self._empty_claim_reads.items() if due <= now]:
            del self._empty_claim_reads[key]
        if user_id in self._empty_claim_reads:
            return claimed

        try:
            ledger = await self._read_cached(user_id)
        except SyncError as e:
            logger.warning(f"Fresh read for empty likes claim of {user_id} failed, serving claim: {e}")
            return claimed

        self._empty_claim_reads[user_id] = now + self.empty_claim_refresh
        while len(self._empty_claim_reads) > self.fresh_cache_max_entries:
            self._empty_claim_reads.popitem(last=False)
        return ledger

    async def _read_cached(self, user_id: str) -> LikesLedger:
        now = self._clock()
        self._prune_fresh_cache(now)
        cached = self._fresh_cache.get(user_id)
        if cached is not None and cached[1] > now:
            return cached[0]

        ledger, _snapshot = await self._read_source(user_id)
        self._fresh_cache[user_id] = (ledger, now + self.fresh_cache_ttl)
        self._prune_fresh_cache(now)
        return ledger

    async def _read_source(self, user_id: str) -> Tuple[LikesLedger, ProfileSnapshot]:
        snapshot = await self.profile_store.read(user_id)
        blob = snapshot.blob if isinstance(snapshot.blob, dict) else {}
        return LikesLedger.from_blob(blob.get(LIKES_KEY), self.cap), snapshot

    def _prune_fresh_cache(self, now: float) -> None:
        for key in [k for k, (_, expires) in self._fresh_cache.items() if expires <= now]:
            del self._fresh_cache[key]
        while len(self._fresh_cache) > self.fresh_cache_max_entries:
            self._fresh_cache.popitem(last=False)

    def invalidate(self, user_id: str) -> None:
        """Drop the user's fresh-read cache entry."""
        self._fresh_cache.pop(user_id, None)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def toggle(self, user_id: str, category: str, record_id: str) -> ToggleResult:
        """
        Flip membership of ``record_id`` in the user's ``category`` set.

        Raises:
            InvalidCategory: If category is not a known category
            MissingRecordId: If record_id is empty
            ConcurrentUpdate: If a concurrent write could not be resolved
        """
        self._check_user(user_id)
        validate_category(category)
        record_id = str(record_id or "").strip()
        if not record_id:
            raise MissingRecordId("recordId required")

        outcome: Dict[str, bool] = {}

        def apply(current: LikesLedger) -> LikesLedger:
            updated, liked = current.toggled(category, record_id, self.cap)
            outcome["liked"] = liked
            return updated

        stored = await self._read_modify_write(user_id, apply)
        return ToggleResult(
            liked=outcome["liked"], count=len(stored.ids(category)), likes=stored
        )

    async def merge(self, user_id: str, incoming: LikesLedger) -> LikesLedger:
        """
        Union ``incoming`` into the user's ledger and persist the result.

        Always re-reads the source of truth first. Existing ids are never
        removed except by cap eviction.
        """
        self._check_user(user_id)
        incoming = incoming.capped(self.cap)
        return await self._read_modify_write(user_id, lambda current: current.union(incoming, self.cap))

    async def _read_modify_write(
        self, user_id: str, apply: Callable[[LikesLedger], LikesLedger]
    ) -> LikesLedger:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock

        if not await self._acquire(lock):
            logger.warning(f"Timed out waiting for likes lock of {user_id}")
            raise ConcurrentUpdate("previous likes update still in progress")

        try:
            for attempt in range(self.max_write_attempts):
                current, snapshot = await self._read_source(user_id)
                updated = apply(current)
                blob = dict(snapshot.blob) if isinstance(snapshot.blob, dict) else {}
                blob[LIKES_KEY] = updated.to_blob()
                blob[LIKES_UPDATED_AT_KEY] = int(time.time() * 1000)
                try:
                    await self.profile_store.write(user_id, blob, expected_version=snapshot.version)
                except VersionConflictError as e:
                    self.invalidate(user_id)
                    if attempt < self.max_write_attempts - 1:
                        delay = self.retry_base_delay * (2**attempt)
                        logger.warning(
                            f"Version conflict writing likes of {user_id} "
                            f"(attempt {attempt + 1}/{self.max_write_attempts}). "
                            f"Retrying in {delay:.3f}s... Error: {str(e)[:100]}"
                        )
                        await asyncio.sleep(delay)
                        continue
                    logger.error(
                        f"Failed to write likes of {user_id} after {self.max_write_attempts} attempts: {e}"
                    )
                    raise ConcurrentUpdate("likes changed concurrently, please retry") from e

                self.invalidate(user_id)
                return updated
        finally:
            lock.release()

        raise ConcurrentUpdate("likes update failed after all retries")

    async def _acquire(self, lock: asyncio.Lock) -> bool:
        """
        Acquire ``lock`` within ``lock_timeout``.

        A waiter abandoned on timeout or cancellation releases the lock if its
        acquire still completes, so an abandoned caller never leaves it held.
        """

        def release_if_acquired(task: "asyncio.Future[bool]") -> None:
            if not task.cancelled() and task.exception() is None:
                lock.release()

        waiter = asyncio.ensure_future(lock.acquire())
        try:
            done, _ = await asyncio.wait({waiter}, timeout=self.lock_timeout)
        except asyncio.CancelledError:
            waiter.cancel()
            waiter.add_done_callback(release_if_acquired)
            raise
        if done:
            return True
        waiter.cancel()
        waiter.add_done_callback(release_if_acquired)
        return False

    @staticmethod
    def _check_user(user_id: str) -> None:
        if not user_id or not isinstance(user_id, str):
            raise ValidationError("invalid user id")
