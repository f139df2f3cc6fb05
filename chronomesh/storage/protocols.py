"""
Index Store Protocol: Backing-Store Abstraction for the Query Engine

Defines the structural interface (PEP 544) every backing store implements,
and the immutable version metadata it hands back.

Storage model (append-only, content-addressed):
    payload blobs        ContentIdentity -> bytes
    versions             RecordIdentity  -> StoredVersion (CREATE/UPDATE/DELETE)
    entry details        ContentIdentity -> versions that produced, updated
                                            or deleted that content
    buckets              TimeBucketKey   -> child bucket keys
    links                anchor          -> ContentIdentity list (insertion order)

Design Principles:
    - Zero-exception control flow via Result[T, StorageError]
    - Async-first; implementations perform no cross-call coordination
    - Read options are passed through, never interpreted by callers
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Protocol, Union, runtime_checkable

from chronomesh.core.errors import StorageError
from chronomesh.core.types import (
    Result,
    Timestamp,
    ContentIdentity,
    Identity,
    RecordIdentity,
    StableIdentity,
)
from chronomesh.timeindex.paths import TimeBucketKey


# =============================================================================
# READ OPTIONS
# =============================================================================
class ConsistencyLevel(Enum):
    """
    How fresh a read must be.

    LATEST asks the store for the most recent view it can reach; CONTENT
    accepts any cached copy of content-addressed data.
    """
    LATEST = auto()
    CONTENT = auto()


@dataclass(frozen=True, slots=True)
class ReadOptions:
    """Per-call read options, passed through to the store untouched."""
    consistency: ConsistencyLevel = ConsistencyLevel.LATEST

    @classmethod
    def latest(cls) -> ReadOptions:
        return cls(ConsistencyLevel.LATEST)

    @classmethod
    def content(cls) -> ReadOptions:
        return cls(ConsistencyLevel.CONTENT)


# =============================================================================
# VERSION METADATA
# =============================================================================
class VersionKind(Enum):
    """Kind of write that produced a version."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EntryStatus(Enum):
    """Whether any producing version of a payload is still live."""
    LIVE = "live"
    DEAD = "dead"


@dataclass(frozen=True, slots=True)
class StoredVersion:
    """
    One immutable write.

    Attributes:
        record_identity: Identity of this version.
        kind: CREATE, UPDATE or DELETE.
        timestamp: When the write was accepted.
        content_identity: Payload written (None for DELETE).
        original_record_identity: For UPDATE, the CREATE it chains to; for
            DELETE, the version being tombstoned.
        original_content_identity: Payload of the original version.
    """
    record_identity: RecordIdentity
    kind: VersionKind
    timestamp: Timestamp
    content_identity: Optional[ContentIdentity] = None
    original_record_identity: Optional[RecordIdentity] = None
    original_content_identity: Optional[ContentIdentity] = None

    def __post_init__(self) -> None:
        if self.kind != VersionKind.DELETE and self.content_identity is None:
            raise ValueError(f"{self.kind.name} version requires content_identity")
        if self.kind != VersionKind.CREATE and self.original_record_identity is None:
            raise ValueError(f"{self.kind.name} version requires original_record_identity")
        if self.kind == VersionKind.UPDATE and self.original_content_identity is None:
            raise ValueError("UPDATE version requires original_content_identity")

    @property
    def chains_to(self) -> RecordIdentity:
        """The version this one updates or tombstones; a CREATE chains to itself."""
        if self.original_record_identity is None:
            return self.record_identity
        return self.original_record_identity

    @property
    def stable_identity(self) -> StableIdentity:
        """The lineage's first version: itself for a CREATE."""
        if self.kind == VersionKind.CREATE:
            return self.record_identity
        return self.chains_to

    def to_dict(self) -> dict[str, Optional[str | int]]:
        return {
            "record_identity": self.record_identity.encode(),
            "kind": self.kind.value,
            "timestamp": self.timestamp.micros,
            "content_identity": _encode_optional(self.content_identity),
            "original_record_identity": _encode_optional(self.original_record_identity),
            "original_content_identity": _encode_optional(self.original_content_identity),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Optional[str | int]]) -> StoredVersion:
        """Inverse of to_dict(). Raises ValueError/KeyError on bad input."""
        return cls(
            record_identity=_decode_required(data["record_identity"]),
            kind=VersionKind(data["kind"]),
            timestamp=Timestamp(int(data["timestamp"])),
            content_identity=_decode_optional(data.get("content_identity")),
            original_record_identity=_decode_optional(data.get("original_record_identity")),
            original_content_identity=_decode_optional(data.get("original_content_identity")),
        )


@dataclass(frozen=True, slots=True)
class EntryDetails:
    """
    Version-status metadata for one payload.

    Attributes:
        content_identity: The payload described.
        creates: Versions whose payload is this content (CREATE, or UPDATE
            writing this content), in insertion order.
        updates: UPDATE versions chained to a create of this content, in
            insertion order.
        deletes: DELETE versions targeting any of the above.
    """
    content_identity: ContentIdentity
    creates: tuple[StoredVersion, ...] = ()
    updates: tuple[StoredVersion, ...] = ()
    deletes: tuple[StoredVersion, ...] = ()

    @property
    def deleted_identities(self) -> frozenset[RecordIdentity]:
        return frozenset(
            d.original_record_identity for d in self.deletes
            if d.original_record_identity is not None
        )

    @property
    def status(self) -> EntryStatus:
        """DEAD once every producing version has been tombstoned."""
        if self.creates and not self.live_creates:
            return EntryStatus.DEAD
        return EntryStatus.LIVE

    @property
    def live_creates(self) -> tuple[StoredVersion, ...]:
        deleted = self.deleted_identities
        return tuple(c for c in self.creates if c.record_identity not in deleted)

    @property
    def live_updates(self) -> tuple[StoredVersion, ...]:
        """Updates that are not tombstoned and whose lineage is not either."""
        deleted = self.deleted_identities
        return tuple(
            u for u in self.updates
            if u.record_identity not in deleted and u.stable_identity not in deleted
        )


def detail_roles(
    version: StoredVersion,
    target: Optional[StoredVersion] = None,
) -> list[tuple[ContentIdentity, str]]:
    """
    Which EntryDetails lists a new version must be appended to.

    Returns (content identity, list name) pairs where list name is one of
    "creates", "updates", "deletes". `target` is the tombstoned version
    when `version` is a DELETE.
    """
    if version.kind != VersionKind.DELETE:
        roles = []
        if version.content_identity is not None:
            roles.append((version.content_identity, "creates"))
        if version.kind == VersionKind.UPDATE and version.original_content_identity is not None:
            roles.append((version.original_content_identity, "updates"))
        return roles

    if target is None or target.content_identity is None:
        return []
    roles = [(target.content_identity, "deletes")]
    if target.kind == VersionKind.UPDATE and target.original_content_identity is not None:
        roles.append((target.original_content_identity, "deletes"))
    return roles


# =============================================================================
# ANCHORS
# =============================================================================
# Links hang off either a bucket key or another payload.
Anchor = Union[TimeBucketKey, Identity]


def anchor_key(anchor: Anchor) -> str:
    """Stable text form of an anchor, used as a storage key."""
    if isinstance(anchor, TimeBucketKey):
        return f"path:{anchor.path}"
    return f"entry:{anchor.encode()}"


# =============================================================================
# INDEX STORE PROTOCOL
# =============================================================================
@runtime_checkable
class IndexStoreProtocol(Protocol):
    """
    Backing-store interface consumed by the query engine and write path.

    Any failed call returns Err(StorageError.unavailable(...)).
    """

    # ---- read side ----------------------------------------------------------
    async def ensure_bucket(self, key: TimeBucketKey) -> Result[None, StorageError]:
        """Materialize a bucket and register it as a child of each ancestor."""
        ...

    async def list_children(
        self, key: TimeBucketKey,
    ) -> Result[list[TimeBucketKey], StorageError]:
        """Direct child buckets that exist, in key order."""
        ...

    async def list_indexed_identities(
        self, anchor: Anchor,
    ) -> Result[list[ContentIdentity], StorageError]:
        """Identities linked under an anchor, in link order."""
        ...

    async def get_details(
        self,
        identity: ContentIdentity,
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[EntryDetails], StorageError]:
        ...

    async def get_version(
        self,
        record_identity: RecordIdentity,
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[StoredVersion], StorageError]:
        ...

    async def get_payload(
        self,
        identity: ContentIdentity,
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[bytes], StorageError]:
        ...

    # ---- write side ---------------------------------------------------------
    async def put_version(
        self,
        version: StoredVersion,
        payload: Optional[bytes] = None,
    ) -> Result[None, StorageError]:
        """Persist a version (and its payload blob) and update entry details."""
        ...

    async def link(self, anchor: Anchor, identity: ContentIdentity) -> Result[None, StorageError]:
        """Idempotently link an identity under an anchor."""
        ...


# =============================================================================
# HELPERS
# =============================================================================
def _encode_optional(identity: Optional[Identity]) -> Optional[str]:
    return identity.encode() if identity is not None else None


def _decode_required(text: object) -> Identity:
    if not isinstance(text, str):
        raise ValueError(f"Expected identity text, got {type(text).__name__}")
    decoded = Identity.decode(text)
    if decoded.is_err():
        raise ValueError(decoded.error)
    return decoded.value


def _decode_optional(text: object) -> Optional[Identity]:
    if text is None:
        return None
    return _decode_required(text)


__all__ = [
    "ConsistencyLevel",
    "ReadOptions",
    "VersionKind",
    "EntryStatus",
    "StoredVersion",
    "EntryDetails",
    "detail_roles",
    "Anchor",
    "anchor_key",
    "IndexStoreProtocol",
]
