"""
Query Signature Builder

Turns a logical list query into a canonical, hashable QuerySignature that
identifies one cache partition, and debounces rapid query changes so that
only the settled query is built and published.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, QUERY_DEBOUNCE_SECONDS
from common.exception import ValidationError
from common.service.content_store import ListParams

logger = logging.getLogger(__name__)

SORT_DIRECTIONS = ("asc", "desc")

SortItem = Union[Tuple[str, str], Mapping[str, Any], str]


@dataclass
class RawQuery:
    """A list query as the caller expresses it, before normalization."""

    table: str
    page_size: int = DEFAULT_PAGE_SIZE
    filter: Optional[str] = None
    sort: Sequence[SortItem] = ()
    search: Optional[str] = None
    locale: str = "en"
    fields: Sequence[str] = ()
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QuerySignature:
    """
    Canonical identity of a list query.

    Two signatures are equal exactly when they address the same partition.
    ``search_term`` and ``locale`` only separate partitions; they are not sent
    to the content store.
    """

    table: str
    page_size: int
    filter: Optional[str] = None
    sort_spec: Tuple[Tuple[str, str], ...] = ()
    search_term: Optional[str] = None
    locale: str = "en"
    fields: Tuple[str, ...] = ()
    extra: Tuple[Tuple[str, str], ...] = ()

    def to_list_params(self, cursor: Optional[str] = None) -> ListParams:
        return ListParams(
            page_size=self.page_size,
            filter=self.filter,
            sort=list(self.sort_spec),
            fields=list(self.fields),
            search=self.search_term,
            cursor=cursor,
            extra=dict(self.extra),
        )

    def __str__(self) -> str:
        parts = [self.table, f"size={self.page_size}", f"locale={self.locale}"]
        if self.filter:
            parts.append(f"filter={self.filter}")
        if self.search_term:
            parts.append(f"search={self.search_term}")
        return "|".join(parts)


def _normalize_sort(sort: Sequence[SortItem]) -> Tuple[Tuple[str, str], ...]:
    normalized: List[Tuple[str, str]] = []
    for item in sort or ():
        if isinstance(item, str):
            sort_field, direction = item, "asc"
        elif isinstance(item, Mapping):
            sort_field, direction = item.get("field"), item.get("direction") or "asc"
        else:
            try:
                sort_field, direction = item
            except (TypeError, ValueError) as e:
                raise ValidationError(f"invalid sort item: {item!r}") from e

        sort_field = str(sort_field or "").strip()
        direction = str(direction).strip().lower()
        if not sort_field:
            raise ValidationError("sort field must not be empty")
        if direction not in SORT_DIRECTIONS:
            raise ValidationError(f"invalid sort direction: {direction!r}")
        normalized.append((sort_field, direction))
    return tuple(normalized)


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_signature(raw: RawQuery) -> QuerySignature:
    """
    Normalize a raw query into its signature.

    Args:
        raw: Query as expressed by the caller

    Returns:
        Frozen, hashable signature

    Raises:
        ValidationError: Empty table, page size outside 1..MAX_PAGE_SIZE,
            or an unknown sort direction

    Example:
        >>> build_signature(RawQuery("Ghazlen", search="  dil ", sort=[("date", "DESC")]))
        QuerySignature(table='Ghazlen', page_size=30, filter=None, sort_spec=(('date', 'desc'),), ...)
    """
    table = str(raw.table or "").strip()
    if not table:
        raise ValidationError("table must not be empty")

    page_size = raw.page_size
    if isinstance(page_size, bool) or not isinstance(page_size, int):
        raise ValidationError(f"page size must be an integer, got {page_size!r}")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValidationError(f"page size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")

    fields = tuple(sorted({str(name).strip() for name in raw.fields or () if str(name).strip()}))
    extra = tuple(
        sorted((str(key), str(value)) for key, value in (raw.extra or {}).items() if value is not None)
    )

    return QuerySignature(
        table=table,
        page_size=page_size,
        filter=_clean_text(raw.filter),
        sort_spec=_normalize_sort(raw.sort),
        search_term=_clean_text(raw.search),
        locale=_clean_text(raw.locale) or "en",
        fields=fields,
        extra=extra,
    )


class DebouncedQuery:
    """
    Debounces raw query updates into settled signatures.

    Every ``update()`` restarts the delay. When it elapses the latest raw
    query is built; subscribers are notified only if the result differs from
    the previously settled signature. Must be used inside a running loop.

    Example:
        >>> query = DebouncedQuery(delay=0.3)
        >>> query.update(RawQuery("Ashaar", search="d"))
        >>> query.update(RawQuery("Ashaar", search="dil"))
        >>> signature = await query.wait_settled()   # built once, for "dil"
    """

    def __init__(self, delay: float = QUERY_DEBOUNCE_SECONDS):
        self.delay = delay
        self._latest: Optional[RawQuery] = None
        self._signature: Optional[QuerySignature] = None
        self._error: Optional[ValidationError] = None
        self._timer: Optional[asyncio.Task] = None
        self._subscribers: List[Callable[[QuerySignature], None]] = []

    @property
    def signature(self) -> Optional[QuerySignature]:
        """Last settled signature, if any."""
        return self._signature

    def update(self, raw: RawQuery) -> None:
        self._latest = raw
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.ensure_future(self._settle())

    async def wait_settled(self) -> Optional[QuerySignature]:
        """
        Wait until no update is pending and return the settled signature.

        Raises:
            ValidationError: If the latest raw query was invalid
        """
        while self._timer is not None and not self._timer.done():
            # asyncio.wait does not raise when the timer gets cancelled by a newer update
            await asyncio.wait({self._timer})
        if self._error is not None:
            raise self._error
        return self._signature

    def subscribe(self, callback: Callable[[QuerySignature], None]) -> Callable[[], None]:
        """Register a callback for settled signature changes; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def close(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._subscribers.clear()

    async def _settle(self) -> None:
        await asyncio.sleep(self.delay)
        try:
            signature = build_signature(self._latest)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid query: {e.message}")
            self._error = e
            return

        self._error = None
        if signature == self._signature:
            return
        self._signature = signature
        logger.debug(f"Query settled: {signature}")
        for callback in list(self._subscribers):
            try:
                callback(signature)
            except Exception as e:
                logger.exception(f"Query subscriber failed: {e}")
