"""
Legacy Migration Merger

Moves likes that older clients kept in local key/value storage into the
server ledger, exactly once per device. Legacy values are JSON arrays of
record objects stored under the content table names.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from application.entity.likes import LikesLedger, map_table_to_category
from application.services.sync.likes_client import LikesApiClient
from common.constants import LEGACY_LIKES_KEYS, MIGRATION_FLAG_KEY

logger = logging.getLogger(__name__)


class MigrationState(str, Enum):
    PENDING = "pending"
    DONE = "done"


class KeyValueStore(ABC):
    """Device-local string storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Key/value store persisted as one JSON object on disk.

    The file is rewritten on every change; an unreadable file is treated as
    empty.
    """

    def __init__(self, path: str):
        self.path = path
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read key/value file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._save()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._save()


@dataclass
class MigrationResult:
    state: MigrationState
    migrated: bool = False
    record_count: int = 0
    error: Optional[Exception] = None


def _legacy_ids(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        items = json.loads(raw)
    except ValueError:
        logger.warning("Skipping unparseable legacy likes entry")
        return []
    if not isinstance(items, list):
        return []

    ids = []
    for item in items:
        if not isinstance(item, dict):
            continue
        fields = item.get("fields") if isinstance(item.get("fields"), dict) else {}
        record_id = item.get("id") or fields.get("id")
        if record_id:
            ids.append(str(record_id))
    return ids


class LegacyLikesMigrator:
    """
    One-time merge of device-local likes into the server ledger.

    Example:
        >>> migrator = LegacyLikesMigrator(JsonFileKeyValueStore("likes.json"), likes_client)
        >>> result = await migrator.run(user_id)
        >>> result.state
        <MigrationState.DONE: 'done'>
    """

    def __init__(self, store: KeyValueStore, likes_client: LikesApiClient):
        self.store = store
        self.likes_client = likes_client

    @property
    def state(self) -> MigrationState:
        return MigrationState.DONE if self.store.get(MIGRATION_FLAG_KEY) else MigrationState.PENDING

    def collect(self) -> LikesLedger:
        """Build a ledger from the legacy keys present in the store."""
        ledger = LikesLedger()
        for key in LEGACY_LIKES_KEYS:
            ids = _legacy_ids(self.store.get(key))
            if ids:
                category = map_table_to_category(key)
                ledger = ledger.with_ids(category, ledger.ids(category) + ids)
        return ledger

    async def run(self, user_id: Optional[str]) -> MigrationResult:
        """
        Migrate legacy likes for the signed-in ``user_id``.

        Never raises on merge failure: the state stays pending and the error
        is returned on the result so the next sign-in retries.
        """
        if not user_id:
            return MigrationResult(state=self.state)
        if self.state is MigrationState.DONE:
            return MigrationResult(state=MigrationState.DONE)

        ledger = self.collect()
        if ledger.is_empty():
            self._mark_done()
            return MigrationResult(state=MigrationState.DONE)

        record_count = sum(len(ledger.ids(category)) for category in LikesLedger.CATEGORIES)
        try:
            await self.likes_client.merge(ledger)
        except Exception as e:
            logger.warning(f"Likes migration for {user_id} failed, will retry later: {e}")
            return MigrationResult(state=MigrationState.PENDING, record_count=record_count, error=e)

        for key in LEGACY_LIKES_KEYS:
            self.store.delete(key)
        self._mark_done()
        logger.info(f"✅ Migrated {record_count} legacy likes for {user_id}")
        return MigrationResult(state=MigrationState.DONE, migrated=True, record_count=record_count)

    def _mark_done(self) -> None:
        self.store.set(MIGRATION_FLAG_KEY, MigrationState.DONE.value)
