"""
In-Memory Index Store: Development and Testing Implementation

Dict-backed implementation of IndexStoreProtocol with the same Result
semantics as the Redis backend, plus a failure-injection hook so that
callers' handling of unavailable buckets can be exercised.

Design Principles:
    - Full protocol compliance for seamless production swap
    - Safe under concurrent coroutines via a single asyncio lock
    - Insertion order preserved for links and entry details

Performance Characteristics:
    - ensure_bucket: O(depth)
    - list_children: O(c log c) for c children (returned sorted)
    - list_indexed_identities / get_details: O(n) copy of the list
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from chronomesh.core.errors import StorageError
from chronomesh.core.types import (
    Result,
    Ok,
    Err,
    ContentIdentity,
    Identity,
    RecordIdentity,
)
from chronomesh.storage.protocols import (
    Anchor,
    EntryDetails,
    ReadOptions,
    StoredVersion,
    VersionKind,
    anchor_key,
    detail_roles,
)
from chronomesh.timeindex.paths import TimeBucketKey

logger = logging.getLogger(__name__)

FailureTarget = Union[TimeBucketKey, Identity, str]


class InMemoryIndexStore:
    """
    In-memory backing store.

    Failure injection:
        store.fail_on(hour_key)           # any call touching that bucket
        store.fail_on(content_identity)   # any call touching that payload
        store.fail_on("get_details")      # every call of that operation

    Injected failures surface exactly like a real outage:
    Err(StorageError.unavailable(operation)).
    """

    __slots__ = (
        "_children",
        "_links",
        "_versions",
        "_payloads",
        "_details",
        "_failures",
        "_lock",
    )

    def __init__(self) -> None:
        self._children: dict[TimeBucketKey, set[TimeBucketKey]] = {}
        self._links: dict[str, list[ContentIdentity]] = {}
        self._versions: dict[RecordIdentity, StoredVersion] = {}
        self._payloads: dict[ContentIdentity, bytes] = {}
        self._details: dict[ContentIdentity, dict[str, list[StoredVersion]]] = {}
        self._failures: set[str] = set()
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # FAILURE INJECTION
    # -------------------------------------------------------------------------

    def fail_on(self, target: FailureTarget) -> None:
        self._failures.add(_failure_key(target))

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check(self, operation: str, *subjects: FailureTarget) -> Optional[StorageError]:
        if not self._failures:
            return None
        if operation in self._failures:
            return StorageError.unavailable(operation, injected=True)
        for subject in subjects:
            key = _failure_key(subject)
            if key in self._failures:
                return StorageError.unavailable(operation, subject=key, injected=True)
        return None

    # -------------------------------------------------------------------------
    # READ SIDE
    # -------------------------------------------------------------------------

    async def ensure_bucket(self, key: TimeBucketKey) -> Result[None, StorageError]:
        if (error := self._check("ensure_bucket", key)) is not None:
            return Err(error)
        async with self._lock:
            chain = key.ancestors() + [key]
            for parent, child in zip(chain, chain[1:]):
                self._children.setdefault(parent, set()).add(child)
            self._children.setdefault(key, set())
        return Ok(None)

    async def list_children(
        self, key: TimeBucketKey,
    ) -> Result[list[TimeBucketKey], StorageError]:
        if (error := self._check("list_children", key)) is not None:
            return Err(error)
        async with self._lock:
            children = self._children.get(key, set())
            return Ok(sorted(children, key=lambda k: k.path))

    async def list_indexed_identities(
        self, anchor: Anchor,
    ) -> Result[list[ContentIdentity], StorageError]:
        if (error := self._check("list_indexed_identities", anchor)) is not None:
            return Err(error)
        async with self._lock:
            return Ok(list(self._links.get(anchor_key(anchor), [])))

    async def get_details(
        self,
        identity: ContentIdentity,
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[EntryDetails], StorageError]:
        if (error := self._check("get_details", identity)) is not None:
            return Err(error)
        async with self._lock:
            lists = self._details.get(identity)
            if lists is None:
                return Ok(None)
            return Ok(EntryDetails(
                content_identity=identity,
                creates=tuple(lists.get("creates", ())),
                updates=tuple(lists.get("updates", ())),
                deletes=tuple(lists.get("deletes", ())),
            ))

    async def get_version(
        self,
        record_identity: RecordIdentity,
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[StoredVersion], StorageError]:
        if (error := self._check("get_version", record_identity)) is not None:
            return Err(error)
        async with self._lock:
            return Ok(self._versions.get(record_identity))

    async def get_payload(
        self,
        identity: ContentIdentity,
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[bytes], StorageError]:
        if (error := self._check("get_payload", identity)) is not None:
            return Err(error)
        async with self._lock:
            return Ok(self._payloads.get(identity))

    # -------------------------------------------------------------------------
    # WRITE SIDE
    # -------------------------------------------------------------------------

    async def put_version(
        self,
        version: StoredVersion,
        payload: Optional[bytes] = None,
    ) -> Result[None, StorageError]:
        if (error := self._check("put_version", version.record_identity)) is not None:
            return Err(error)

        if payload is not None and version.content_identity != Identity.compute(payload):
            return Err(StorageError.corruption(
                "payload does not hash to its content identity",
                affected_key=str(version.content_identity),
            ))

        async with self._lock:
            target = None
            if version.kind == VersionKind.DELETE:
                target = self._versions.get(version.chains_to)
                if target is None:
                    return Err(StorageError.not_found(str(version.chains_to)))

            if payload is not None and version.content_identity is not None:
                self._payloads[version.content_identity] = payload
            self._versions[version.record_identity] = version

            for content, role in detail_roles(version, target):
                lists = self._details.setdefault(content, {})
                lists.setdefault(role, []).append(version)

        logger.debug("Stored %s version %s", version.kind.value, version.record_identity)
        return Ok(None)

    async def link(self, anchor: Anchor, identity: ContentIdentity) -> Result[None, StorageError]:
        if (error := self._check("link", anchor)) is not None:
            return Err(error)
        async with self._lock:
            targets = self._links.setdefault(anchor_key(anchor), [])
            if identity not in targets:
                targets.append(identity)
        return Ok(None)

    # -------------------------------------------------------------------------
    # INTROSPECTION
    # -------------------------------------------------------------------------

    @property
    def version_count(self) -> int:
        return len(self._versions)

    @property
    def payload_count(self) -> int:
        return len(self._payloads)


def _failure_key(target: FailureTarget) -> str:
    if isinstance(target, TimeBucketKey):
        return f"path:{target.path}"
    if isinstance(target, Identity):
        return f"identity:{target.encode()}"
    return target
