"""
Write Path: Create, Update and Delete Actions
=============================================

Generic over the record type: any JSON-serializable dataclass payload.

Every write appends an immutable StoredVersion:
- CREATE stores the payload content-addressed; its own identity becomes
  the lineage's StableIdentity.
- UPDATE chains to the lineage's original CREATE. Updating an update is
  re-pointed at that CREATE, so the stable identity never changes.
- DELETE tombstones one version.

Creates and updates can optionally index their payload under the bucket of
the hour they were written in (`index_base`), which is what the time query
engine reads back.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Optional, TypeVar
from uuid import uuid4

from chronomesh.core.errors import StorageError
from chronomesh.core.types import (
    Result,
    Ok,
    Err,
    ContentIdentity,
    Identity,
    RecordIdentity,
    Timestamp,
)
from chronomesh.retrieval.records import PayloadCodec, WireRecord
from chronomesh.storage.protocols import (
    Anchor,
    IndexStoreProtocol,
    StoredVersion,
    VersionKind,
)
from chronomesh.timeindex.paths import PathIndexer, TimeBucketKey

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], Timestamp]


class _ChainAction:
    """Shared collaborators for the write actions."""

    __slots__ = ("_store", "_codec", "_clock", "_indexer")

    def __init__(
        self,
        store: IndexStoreProtocol,
        codec: Optional[PayloadCodec] = None,
        clock: Optional[Clock] = None,
        indexer: Optional[PathIndexer] = None,
    ) -> None:
        self._store = store
        self._codec = codec or PayloadCodec()
        self._clock = clock or Timestamp.now
        self._indexer = indexer or PathIndexer()

    @staticmethod
    def _version_identity(
        kind: VersionKind,
        timestamp: Timestamp,
        content: Optional[ContentIdentity] = None,
        original: Optional[RecordIdentity] = None,
    ) -> RecordIdentity:
        # The nonce keeps two identical writes in the same microsecond distinct.
        header = {
            "kind": kind.value,
            "timestamp": timestamp.micros,
            "content": content.encode() if content else None,
            "original": original.encode() if original else None,
            "nonce": uuid4().hex,
        }
        return Identity.compute(json.dumps(header, sort_keys=True).encode("utf-8"))

    async def _index_at(
        self,
        base: str,
        timestamp: Timestamp,
        content: ContentIdentity,
    ) -> Result[None, StorageError]:
        """Link content under the hour bucket containing timestamp."""
        dt = timestamp.to_datetime()
        key = self._indexer.hour_key(base, dt.year, dt.month, dt.day, dt.hour)
        return await self._indexer.index(self._store, key, content)

    async def _lineage_root(
        self, record_identity: RecordIdentity,
    ) -> Result[StoredVersion, StorageError]:
        """The CREATE a version belongs to."""
        found = await self._store.get_version(record_identity)
        if found.is_err():
            return found
        version = found.value
        if version is None or version.kind == VersionKind.DELETE:
            return Err(StorageError.not_found(str(record_identity)))
        if version.kind == VersionKind.CREATE:
            return Ok(version)

        root = await self._store.get_version(version.chains_to)
        if root.is_err():
            return root
        if root.value is None:
            return Err(StorageError.not_found(str(version.chains_to)))
        return Ok(root.value)


class CreateAction(_ChainAction):
    """Store a new record."""

    __slots__ = ()

    async def create(
        self,
        entry: T,
        *,
        link_off: Optional[Anchor] = None,
        index_base: Optional[str] = None,
    ) -> Result[WireRecord[T], StorageError]:
        payload = self._codec.encode(entry)
        content = Identity.compute(payload)
        now = self._clock()

        version = StoredVersion(
            record_identity=self._version_identity(VersionKind.CREATE, now, content),
            kind=VersionKind.CREATE,
            timestamp=now,
            content_identity=content,
        )
        stored = await self._store.put_version(version, payload)
        if stored.is_err():
            return stored

        if link_off is not None:
            if isinstance(link_off, TimeBucketKey):
                ensured = await self._store.ensure_bucket(link_off)
                if ensured.is_err():
                    return ensured
            linked = await self._store.link(link_off, content)
            if linked.is_err():
                return linked

        if index_base is not None:
            indexed = await self._index_at(index_base, now, content)
            if indexed.is_err():
                return indexed

        logger.info("Created record %s", version.record_identity)
        return Ok(WireRecord(
            record_identity=version.record_identity,
            content_identity=content,
            payload=entry,
            created_at=now,
            updated_at=now,
        ))


class UpdateAction(_ChainAction):
    """Append a new version to an existing record."""

    __slots__ = ()

    async def update(
        self,
        entry: T,
        record_identity: RecordIdentity,
        *,
        index_base: Optional[str] = None,
    ) -> Result[WireRecord[T], StorageError]:
        root = await self._lineage_root(record_identity)
        if root.is_err():
            return root
        original = root.value

        payload = self._codec.encode(entry)
        content = Identity.compute(payload)
        now = self._clock()

        version = StoredVersion(
            record_identity=self._version_identity(
                VersionKind.UPDATE, now, content, original.record_identity,
            ),
            kind=VersionKind.UPDATE,
            timestamp=now,
            content_identity=content,
            original_record_identity=original.record_identity,
            original_content_identity=original.content_identity,
        )
        stored = await self._store.put_version(version, payload)
        if stored.is_err():
            return stored

        if index_base is not None:
            indexed = await self._index_at(index_base, now, content)
            if indexed.is_err():
                return indexed

        logger.info("Updated record %s", original.record_identity)
        return Ok(WireRecord(
            record_identity=original.record_identity,
            content_identity=content,
            payload=entry,
            created_at=original.timestamp,
            updated_at=now,
        ))


class DeleteAction(_ChainAction):
    """Tombstone one version."""

    __slots__ = ()

    async def delete(
        self, record_identity: RecordIdentity,
    ) -> Result[RecordIdentity, StorageError]:
        found = await self._store.get_version(record_identity)
        if found.is_err():
            return found
        target = found.value
        if target is None or target.kind == VersionKind.DELETE:
            return Err(StorageError.not_found(str(record_identity)))

        now = self._clock()
        version = StoredVersion(
            record_identity=self._version_identity(
                VersionKind.DELETE, now, original=record_identity,
            ),
            kind=VersionKind.DELETE,
            timestamp=now,
            original_record_identity=record_identity,
            original_content_identity=target.content_identity,
        )
        stored = await self._store.put_version(version)
        if stored.is_err():
            return stored

        logger.info("Deleted version %s", record_identity)
        return Ok(record_identity)
