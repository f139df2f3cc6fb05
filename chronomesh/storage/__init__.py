"""
Storage Module: Backing-Store Abstraction for the Record Mesh
=============================================================

Provides:
- Protocol definitions for pluggable backends
- In-memory implementation for development/testing
- Redis implementation for deployments
- Factory function for backend selection

Example:
    >>> store = create_store()                       # in-memory
    >>> store = create_store(StorageConfig.from_env())
    >>> if isinstance(store, RedisIndexStore):
    ...     await store.connect()
"""

from __future__ import annotations

from typing import Optional, Union

from chronomesh.storage.protocols import (
    ConsistencyLevel,
    ReadOptions,
    VersionKind,
    EntryStatus,
    StoredVersion,
    EntryDetails,
    Anchor,
    anchor_key,
    IndexStoreProtocol,
)
from chronomesh.storage.backends import InMemoryIndexStore
from chronomesh.storage.config import (
    BackendType,
    RedisConfig,
    StorageConfig,
)
from chronomesh.storage.redis_store import RedisIndexStore


# =============================================================================
# FACTORY
# =============================================================================
def create_store(
    config: Optional[StorageConfig] = None,
) -> Union[InMemoryIndexStore, RedisIndexStore]:
    """
    Construct the configured backing store.

    The Redis store is returned unconnected; call `connect()` before use.
    """
    config = config or StorageConfig()
    if config.backend == BackendType.REDIS and config.redis_config is not None:
        return RedisIndexStore(config.redis_config)
    return InMemoryIndexStore()


__all__ = [
    "ConsistencyLevel",
    "ReadOptions",
    "VersionKind",
    "EntryStatus",
    "StoredVersion",
    "EntryDetails",
    "Anchor",
    "anchor_key",
    "IndexStoreProtocol",
    "InMemoryIndexStore",
    "RedisIndexStore",
    "BackendType",
    "RedisConfig",
    "StorageConfig",
    "create_store",
]
