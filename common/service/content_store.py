"""
Content Store Interface

Paged, filterable record API holding the content that list views display.
The sync layer depends only on the ContentStore shape; ContentStoreClient
speaks the Airtable-style REST dialect:

    GET   /{base}/{table}?pageSize=..&filterByFormula=..&offset=..
          -> {"records": [{"id", "fields"}], "offset": "..."}
    GET   /{base}/{table}/{id}
    POST  /{base}/{table}      {"records": [{"fields": {...}}]}
    PATCH /{base}/{table}      {"records": [{"id", "fields": {...}}]}
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

from common.exception import (
    NetworkError,
    UpstreamUnavailable,
    ValidationError,
    error_from_status,
)

logger = logging.getLogger(__name__)


@dataclass
class Record:
    """A content record: identity plus an opaque field payload."""

    id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Record":
        if not isinstance(data, dict) or not data.get("id"):
            raise ValidationError(f"record without id: {data!r}")
        fields = data.get("fields")
        return cls(id=str(data["id"]), fields=dict(fields) if isinstance(fields, dict) else {})


@dataclass
class Page:
    """One fetched page. A page without cursor is the last of its partition."""

    records: List[Record] = field(default_factory=list)
    cursor: Optional[str] = None


@dataclass
class ListParams:
    """Wire-level parameters of a list request."""

    page_size: int
    filter: Optional[str] = None
    sort: Sequence[Tuple[str, str]] = ()
    fields: Sequence[str] = ()
    search: Optional[str] = None
    cursor: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)


class ContentStore(ABC):
    """Abstract paged record store."""

    @abstractmethod
    async def list(self, table: str, params: ListParams) -> Page:
        """Fetch one page of records."""

    @abstractmethod
    async def get(self, table: str, record_id: str) -> Record:
        """Fetch a single record."""

    @abstractmethod
    async def create(self, table: str, fields: Dict[str, Any]) -> Record:
        """Create a record and return it as stored."""

    @abstractmethod
    async def update(self, table: str, record_id: str, fields: Dict[str, Any]) -> Record:
        """Patch a record's fields and return it as stored."""


class ContentStoreClient(ContentStore):
    """
    HTTP client for the content store.

    Transport failures surface as NetworkError; error statuses are mapped with
    error_from_status. ``search`` and locale-only ``extra`` keys take part in
    cache keys but are never sent upstream.
    """

    LOCAL_ONLY_PARAMS = frozenset({"lang", "locale", "search"})

    def __init__(
        self,
        base_url: str,
        base_id: str,
        api_token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.base_id = base_id
        self.api_token = api_token
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _table_path(self, table: str) -> str:
        return f"/{self.base_id}/{quote(table, safe='')}"

    def build_query(self, params: ListParams) -> List[Tuple[str, str]]:
        """
        Serialize list parameters into query pairs.

        Example:
            >>> client.build_query(ListParams(page_size=10, sort=[("date", "desc")]))
            [('pageSize', '10'), ('sort[0][field]', 'date'), ('sort[0][direction]', 'desc')]
        """
        query: List[Tuple[str, str]] = [("pageSize", str(params.page_size))]
        if params.filter:
            query.append(("filterByFormula", params.filter))
        for index, (sort_field, direction) in enumerate(params.sort):
            query.append((f"sort[{index}][field]", sort_field))
            query.append((f"sort[{index}][direction]", direction))
        for name in params.fields:
            query.append(("fields[]", name))
        for key, value in params.extra.items():
            if key in self.LOCAL_ONLY_PARAMS or value is None:
                continue
            query.append((key, str(value)))
        if params.cursor:
            query.append(("offset", params.cursor))
        return query

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                f"Content store {method} {path} returned {response.status_code}: "
                f"{response.text[:200]}"
            )
            raise error_from_status(response.status_code, response.text)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"{method} {path} returned invalid JSON") from e

    async def list(self, table: str, params: ListParams) -> Page:
        data = await self._request("GET", self._table_path(table), params=self.build_query(params))
        # Some proxies wrap the payload under "data"
        payload = data.get("data", data) if isinstance(data, dict) else {}
        records = [Record.from_api(item) for item in payload.get("records") or []]
        return Page(records=records, cursor=payload.get("offset") or None)

    async def get(self, table: str, record_id: str) -> Record:
        data = await self._request("GET", f"{self._table_path(table)}/{record_id}")
        return Record.from_api(data)

    async def get_or_fallback(
        self, table: str, record_id: str, fallback: Optional[Record] = None
    ) -> Optional[Record]:
        """
        Fetch a record, returning ``fallback`` while the store is unavailable.

        Example:
            >>> record = await client.get_or_fallback("Ghazlen", "rec1", cached)
        """
        try:
            return await self.get(table, record_id)
        except (UpstreamUnavailable, NetworkError) as e:
            logger.warning(f"Serving fallback for {table}/{record_id}: {e}")
            return fallback

    async def create(self, table: str, fields: Dict[str, Any]) -> Record:
        data = await self._request(
            "POST", self._table_path(table), json={"records": [{"fields": fields}]}
        )
        return self._first_record(data)

    async def update(self, table: str, record_id: str, fields: Dict[str, Any]) -> Record:
        data = await self._request(
            "PATCH",
            self._table_path(table),
            json={"records": [{"id": record_id, "fields": fields}]},
        )
        return self._first_record(data)

    @staticmethod
    def _first_record(data: Dict[str, Any]) -> Record:
        records = data.get("records") if isinstance(data, dict) else None
        if records:
            return Record.from_api(records[0])
        return Record.from_api(data)


async def with_network_retry(coro_factory, retries: int, delay: float):
    """
    Await ``coro_factory()`` retrying NetworkError up to ``retries`` times.

    Delays grow linearly (delay, 2*delay, ...). Other errors propagate at once.
    """
    attempt = 0
    while True:
        try:
            return await coro_factory()
        except NetworkError as e:
            if attempt >= retries:
                raise
            attempt += 1
            logger.info(f"Network error, retry {attempt}/{retries} in {delay * attempt:.2f}s: {e}")
            await asyncio.sleep(delay * attempt)
