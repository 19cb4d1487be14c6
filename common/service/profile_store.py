"""
Profile Store Interface

Key/value profile blobs kept by the identity provider, one per user. The
likes ledger uses them as its backing storage.

The store offers no atomic set operations, only whole-blob reads and writes.
Every read returns an opaque version token; a write that passes
``expected_version`` is conditional and raises VersionConflictError when the
stored blob has changed since that read.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from common.exception import (
    NetworkError,
    UpstreamUnavailable,
    VersionConflictError,
    error_from_status,
)

logger = logging.getLogger(__name__)

# Version of a profile that does not exist yet; writes based on it only create
ABSENT_VERSION = "*absent*"


@dataclass
class ProfileSnapshot:
    """A profile blob together with the version it was read at."""

    blob: Dict[str, Any] = field(default_factory=dict)
    version: Optional[str] = None


class ProfileStore(ABC):
    """Abstract profile blob storage."""

    @abstractmethod
    async def read(self, user_id: str) -> ProfileSnapshot:
        """Read the user's profile blob. Unknown users yield an empty blob."""

    @abstractmethod
    async def write(
        self,
        user_id: str,
        blob: Dict[str, Any],
        expected_version: Optional[str] = None,
    ) -> str:
        """
        Replace the user's profile blob.

        Args:
            user_id: Owner of the blob
            blob: Complete blob to store
            expected_version: Version returned by the read this write is based
                on; None writes unconditionally

        Returns:
            New version token

        Raises:
            VersionConflictError: If expected_version no longer matches
        """


class InMemoryProfileStore(ProfileStore):
    """
    Process-local profile store.

    Suitable for single-instance deployments and tests. Versions are
    monotonically increasing integers rendered as strings.
    """

    def __init__(self):
        self._blobs: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, int] = {}
        self._guard = asyncio.Lock()

    async def read(self, user_id: str) -> ProfileSnapshot:
        async with self._guard:
            blob = copy.deepcopy(self._blobs.get(user_id, {}))
            return ProfileSnapshot(blob=blob, version=str(self._versions.get(user_id, 0)))

    async def write(
        self,
        user_id: str,
        blob: Dict[str, Any],
        expected_version: Optional[str] = None,
    ) -> str:
        async with self._guard:
            current = self._versions.get(user_id, 0)
            if expected_version is not None and expected_version != str(current):
                raise VersionConflictError(
                    f"profile {user_id} is at version {current}, expected {expected_version}"
                )
            self._blobs[user_id] = copy.deepcopy(blob)
            self._versions[user_id] = current + 1
            return str(current + 1)


class HttpProfileStore(ProfileStore):
    """
    Profile store reached over HTTP.

    ``GET {base_url}/users/{user_id}/metadata`` returns the blob with an ETag;
    ``PUT`` with ``If-Match`` performs a conditional write, answered with 412
    when the ETag is stale. A profile read as 404 is created with
    ``If-None-Match: *`` so two first writes cannot both succeed.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
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

    async def read(self, user_id: str) -> ProfileSnapshot:
        try:
            async with self._client() as client:
                response = await client.get(f"/users/{user_id}/metadata")
        except httpx.TransportError as e:
            raise NetworkError(f"profile read failed: {e}") from e

        if response.status_code == 404:
            return ProfileSnapshot(blob={}, version=ABSENT_VERSION)
        if response.status_code >= 400:
            raise error_from_status(response.status_code, response.text)

        etag = response.headers.get("ETag")
        if not etag:
            logger.error(f"Profile store returned {user_id} without an ETag")
            raise UpstreamUnavailable("profile store did not return a version")

        try:
            blob = response.json()
        except ValueError:
            logger.warning(f"Profile for {user_id} is not valid JSON, treating as empty")
            blob = {}
        return ProfileSnapshot(
            blob=blob if isinstance(blob, dict) else {},
            version=etag,
        )

    async def write(
        self,
        user_id: str,
        blob: Dict[str, Any],
        expected_version: Optional[str] = None,
    ) -> str:
        headers = {}
        if expected_version == ABSENT_VERSION:
            headers["If-None-Match"] = "*"
        elif expected_version is not None:
            headers["If-Match"] = expected_version
        try:
            async with self._client() as client:
                response = await client.put(
                    f"/users/{user_id}/metadata", json=blob, headers=headers
                )
        except httpx.TransportError as e:
            raise NetworkError(f"profile write failed: {e}") from e

        if response.status_code == 412:
            raise VersionConflictError(f"profile {user_id} changed since {expected_version}")
        if response.status_code >= 400:
            raise error_from_status(response.status_code, response.text)
        return response.headers.get("ETag", "")
