"""
Likes API Client

Client half of the likes ledger HTTP surface (``/api/user/likes``).
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from application.entity.likes import LikesLedger
from application.services.likes.ledger_service import ToggleResult
from common.constants import FRESH_LIKES_THROTTLE_SECONDS
from common.exception import NetworkError, RateLimited, UpstreamUnavailable, error_from_status

logger = logging.getLogger(__name__)

LIKES_PATH = "/api/user/likes"


class LikesApiClient:
    """
    Async client for the likes endpoints.

    Error statuses are mapped onto the exception taxonomy (401 Unauthorized,
    409 ConcurrentUpdate, 429 RateLimited, 400 ValidationError, 5xx
    UpstreamUnavailable); transport failures raise NetworkError.

    Example:
        >>> client = LikesApiClient("https://example.org", token=session_token)
        >>> result = await client.toggle("Ghazlen", "rec42")
        >>> result.liked
        True
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        fresh_throttle: float = FRESH_LIKES_THROTTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.fresh_throttle = fresh_throttle
        self._transport = transport
        self._clock = clock
        self._fresh_task: Optional[asyncio.Task] = None
        self._fresh_value: Optional[LikesLedger] = None
        self._fresh_at: Optional[float] = None

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=self.timeout, transport=self._transport
        )

    async def _request(self, method: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, LIKES_PATH, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {LIKES_PATH} failed: {e}") from e

        if response.status_code >= 400:
            error = error_from_status(response.status_code, self._error_message(response))
            if isinstance(error, RateLimited):
                error.retry_after = self._retry_after(response)
            raise error
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"{method} {LIKES_PATH} returned invalid JSON") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[float]:
        try:
            return float(response.headers["Retry-After"])
        except (KeyError, ValueError):
            return None

    async def get(self, fresh: bool = False) -> LikesLedger:
        """Fetch the caller's ledger; ``fresh`` bypasses the token snapshot."""
        data = await self._request("GET", params={"fresh": "true" if fresh else "false"})
        return LikesLedger.from_blob(data.get("likes"))

    async def toggle(self, table: str, record_id: str) -> ToggleResult:
        data = await self._request(
            "POST", json={"action": "toggle", "table": table, "recordId": record_id}
        )
        self._fresh_at = None
        return ToggleResult(
            liked=bool(data.get("liked")),
            count=int(data.get("count") or 0),
            likes=LikesLedger.from_blob(data.get("likes")),
        )

    async def merge(self, ledger: LikesLedger) -> LikesLedger:
        data = await self._request("POST", json={"action": "merge", "likes": ledger.to_blob()})
        self._fresh_at = None
        return LikesLedger.from_blob(data.get("likes"))

    async def fresh_likes(self) -> LikesLedger:
        """
        Fetch the authoritative ledger, at most once per throttle interval.

        Concurrent callers share one request; a result younger than the
        throttle interval is returned without a request.
        """
        if (
            self._fresh_value is not None
            and self._fresh_at is not None
            and self._clock() - self._fresh_at < self.fresh_throttle
        ):
            return self._fresh_value

        if self._fresh_task is None or self._fresh_task.done():
            self._fresh_task = asyncio.ensure_future(self._load_fresh())
        return await asyncio.shield(self._fresh_task)

    async def _load_fresh(self) -> LikesLedger:
        ledger = await self.get(fresh=True)
        self._fresh_value = ledger
        self._fresh_at = self._clock()
        return ledger
