"""
Client-side synchronization: query signatures, list cache, optimistic
mutations, likes client and legacy migration.
"""

from application.services.sync.cache_store import CachePartition, CacheStore
from application.services.sync.like_toggle import LikeToggler
from application.services.sync.likes_client import LikesApiClient
from application.services.sync.list_synchronizer import PaginatedListSynchronizer
from application.services.sync.migration import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    LegacyLikesMigrator,
    MigrationResult,
    MigrationState,
)
from application.services.sync.mutation_engine import OptimisticMutationEngine, PendingMutation
from application.services.sync.query_signature import (
    DebouncedQuery,
    QuerySignature,
    RawQuery,
    build_signature,
)

__all__ = [
    "CachePartition",
    "CacheStore",
    "DebouncedQuery",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LegacyLikesMigrator",
    "LikeToggler",
    "LikesApiClient",
    "MigrationResult",
    "MigrationState",
    "OptimisticMutationEngine",
    "PaginatedListSynchronizer",
    "PendingMutation",
    "QuerySignature",
    "RawQuery",
    "build_signature",
]
