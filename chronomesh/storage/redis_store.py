"""
Redis Index Store
=================

Redis/Valkey implementation of IndexStoreProtocol.

Key Layout (all keys prefixed with RedisConfig.key_prefix):
-----------------------------------------------------------
| Key                               | Type       | Contents                    |
|-----------------------------------|------------|-----------------------------|
| {p}:children:{path}               | Set        | child bucket paths          |
| {p}:links:{anchor}                | Sorted set | identity text, scored by seq|
| {p}:seq                           | String     | link sequence counter       |
| {p}:version:{record}              | Hash       | StoredVersion.to_dict()     |
| {p}:details:{content}:{role}      | List       | record identity text        |
| {p}:payload:{content}             | String     | flag byte + (lz4) payload   |

Links are scored by a monotonically increasing sequence so that reads
return them in link order; ZADD NX keeps linking idempotent.

Payload blobs larger than the configured threshold are compressed with
LZ4 frames. The first byte records whether a blob is compressed.

Error Mapping:
--------------
Every redis-py exception (connection, timeout, response) becomes
Err(StorageError.unavailable(operation, cause)). Undecodable stored data
becomes Err(StorageError.corruption(...)).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import lz4.frame
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from chronomesh.core.errors import StorageError
from chronomesh.core.types import (
    Result,
    Ok,
    Err,
    ContentIdentity,
    Identity,
    RecordIdentity,
)
from chronomesh.storage.config import RedisConfig
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

_BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)

# =============================================================================
# BLOB ENCODING
# =============================================================================
BLOB_RAW: int = 0x00
BLOB_LZ4: int = 0x01


def encode_blob(payload: bytes, compress: bool, threshold: int) -> bytes:
    """Prefix a payload with its compression flag, compressing if large."""
    if compress and len(payload) >= threshold:
        return bytes([BLOB_LZ4]) + lz4.frame.compress(payload)
    return bytes([BLOB_RAW]) + payload


def decode_blob(blob: bytes) -> Result[bytes, StorageError]:
    """Inverse of encode_blob()."""
    if not blob:
        return Err(StorageError.corruption("empty payload blob"))
    flag, body = blob[0], blob[1:]
    if flag == BLOB_RAW:
        return Ok(body)
    if flag == BLOB_LZ4:
        try:
            return Ok(lz4.frame.decompress(body))
        except RuntimeError as e:
            return Err(StorageError.corruption(f"lz4 frame: {e}"))
    return Err(StorageError.corruption(f"unknown blob flag {flag:#x}"))


# =============================================================================
# REDIS INDEX STORE
# =============================================================================
class RedisIndexStore:
    """
    Redis-backed IndexStoreProtocol.

    A pre-built client may be passed in (for example a shared pool, or an
    in-process server in tests); otherwise `connect()` builds one from the
    config.

    Example:
        >>> store = RedisIndexStore(RedisConfig(host="redis.example.com"))
        >>> await store.connect()
        >>> result = await store.list_children(indexer.day_key("create", 2021, 10, 20))
        >>> await store.close()
    """

    __slots__ = ("_config", "_client", "_connected")

    def __init__(self, config: RedisConfig, client: Optional[aioredis.Redis] = None) -> None:
        self._config = config
        self._client: Optional[aioredis.Redis] = client
        self._connected = False

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------

    async def connect(self) -> Result[None, StorageError]:
        """Create the client and verify the server answers PING."""
        try:
            if self._client is None:
                self._client = aioredis.Redis(**self._config.get_connection_kwargs())
            await self._client.ping()
        except _BACKEND_ERRORS as e:
            return Err(StorageError.unavailable("connect", cause=e, host=self._config.host))
        self._connected = True
        logger.info("Connected to Redis at %s:%d", self._config.host, self._config.port)
        return Ok(None)

    async def close(self) -> None:
        """Close the client. Safe to call multiple times."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _key(self, *parts: str) -> str:
        return ":".join((self._config.key_prefix,) + parts)

    def _require_client(self, operation: str) -> Result[aioredis.Redis, StorageError]:
        if not self._connected or self._client is None:
            return Err(StorageError.unavailable(operation, reason="not connected"))
        return Ok(self._client)

    # -------------------------------------------------------------------------
    # READ SIDE
    # -------------------------------------------------------------------------

    async def ensure_bucket(self, key: TimeBucketKey) -> Result[None, StorageError]:
        client = self._require_client("ensure_bucket")
        if client.is_err():
            return client
        chain = key.ancestors() + [key]
        try:
            async with client.value.pipeline(transaction=False) as pipe:
                for parent, child in zip(chain, chain[1:]):
                    pipe.sadd(self._key("children", parent.path), child.path)
                await pipe.execute()
        except _BACKEND_ERRORS as e:
            return Err(StorageError.unavailable("ensure_bucket", cause=e, key=key.path))
        return Ok(None)

    async def list_children(
        self, key: TimeBucketKey,
    ) -> Result[list[TimeBucketKey], StorageError]:
        client = self._require_client("list_children")
        if client.is_err():
            return client
        try:
            members = await client.value.smembers(self._key("children", key.path))
        except _BACKEND_ERRORS as e:
            return Err(StorageError.unavailable("list_children", cause=e, key=key.path))
        paths = sorted(_text(m) for m in members)
        try:
            return Ok([TimeBucketKey.parse(p) for p in paths])
        except ValueError as e:
            return Err(StorageError.corruption(str(e), affected_key=key.path))

    async def list_indexed_identities(
        self, anchor: Anchor,
    ) -> Result[list[ContentIdentity], StorageError]:
        client = self._require_client("list_indexed_identities")
        if client.is_err():
            return client
        link_key = self._key("links", anchor_key(anchor))
        try:
            members = await client.value.zrange(link_key, 0, -1)
        except _BACKEND_ERRORS as e:
            return Err(StorageError.unavailable("list_indexed_identities", cause=e, key=link_key))
        identities: list[ContentIdentity] = []
        for member in members:
            decoded = Identity.decode(_text(member))
            if decoded.is_err():
                return Err(StorageError.corruption(decoded.error, affected_key=link_key))
            identities.append(decoded.value)
        return Ok(identities)

    async def get_details(
        self,
        identity: ContentIdentity,
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[EntryDetails], StorageError]:
        client = self._require_client("get_details")
        if client.is_err():
            return client
        roles = ("creates", "updates", "deletes")
        try:
            async with client.value.pipeline(transaction=False) as pipe:
                for role in roles:
                    pipe.lrange(self._key("details", identity.encode(), role), 0, -1)
                listed = await pipe.execute()
        except _BACKEND_ERRORS as e:
            return Err(StorageError.unavailable("get_details", cause=e, identity=str(identity)))

        if not any(listed):
            return Ok(None)

        resolved: dict[str, tuple[StoredVersion, ...]] = {}
        for role, members in zip(roles, listed):
            versions: list[StoredVersion] = []
            for member in members:
                decoded = Identity.decode(_text(member))
                if decoded.is_err():
                    return Err(StorageError.corruption(decoded.error, affected_key=str(identity)))
                version = await self.get_version(decoded.value, options)
                if version.is_err():
                    return version
                if version.value is None:
                    return Err(StorageError.corruption(
                        f"details reference missing version {decoded.value}",
                        affected_key=str(identity),
                    ))
                versions.append(version.value)
            resolved[role] = tuple(versions)

        return Ok(EntryDetails(content_identity=identity, **resolved))

    async def get_version(
        self,
        record_identity: RecordIdentity,
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[StoredVersion], StorageError]:
        client = self._require_client("get_version")
        if client.is_err():
            return client
        version_key = self._key("version", record_identity.encode())
        try:
            raw = await client.value.hgetall(version_key)
        except _BACKEND_ERRORS as e:
            return Err(StorageError.unavailable("get_version", cause=e, key=version_key))
        if not raw:
            return Ok(None)
        fields = {_text(k): _text(v) for k, v in raw.items()}
        try:
            return Ok(StoredVersion.from_dict(fields))
        except (KeyError, ValueError) as e:
            return Err(StorageError.corruption(str(e), affected_key=version_key))

    async def get_payload(
        self,
        identity: ContentIdentity,
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[bytes], StorageError]:
        client = self._require_client("get_payload")
        if client.is_err():
            return client
        payload_key = self._key("payload", identity.encode())
        try:
            blob = await client.value.get(payload_key)
        except _BACKEND_ERRORS as e:
            return Err(StorageError.unavailable("get_payload", cause=e, key=payload_key))
        if blob is None:
            return Ok(None)
        decoded = decode_blob(blob)
        if decoded.is_err():
            return decoded
        if Identity.compute(decoded.value) != identity:
            return Err(StorageError.corruption(
                "payload does not hash to its content identity",
                affected_key=payload_key,
            ))
        return Ok(decoded.value)

    # -------------------------------------------------------------------------
    # WRITE SIDE
    # -------------------------------------------------------------------------

    async def put_version(
        self,
        version: StoredVersion,
        payload: Optional[bytes] = None,
    ) -> Result[None, StorageError]:
        client = self._require_client("put_version")
        if client.is_err():
            return client

        if payload is not None and version.content_identity != Identity.compute(payload):
            return Err(StorageError.corruption(
                "payload does not hash to its content identity",
                affected_key=str(version.content_identity),
            ))

        target = None
        if version.kind == VersionKind.DELETE:
            found = await self.get_version(version.chains_to)
            if found.is_err():
                return found
            if found.value is None:
                return Err(StorageError.not_found(str(version.chains_to)))
            target = found.value

        fields = {k: str(v) for k, v in version.to_dict().items() if v is not None}
        record_text = version.record_identity.encode()
        try:
            async with client.value.pipeline(transaction=True) as pipe:
                if payload is not None and version.content_identity is not None:
                    pipe.set(
                        self._key("payload", version.content_identity.encode()),
                        encode_blob(
                            payload,
                            self._config.compression,
                            self._config.compression_threshold_bytes,
                        ),
                    )
                pipe.hset(self._key("version", record_text), mapping=fields)
                for content, role in detail_roles(version, target):
                    pipe.rpush(self._key("details", content.encode(), role), record_text)
                await pipe.execute()
        except _BACKEND_ERRORS as e:
            return Err(StorageError.unavailable("put_version", cause=e, record=record_text))

        logger.debug("Stored %s version %s", version.kind.value, version.record_identity)
        return Ok(None)

    async def link(self, anchor: Anchor, identity: ContentIdentity) -> Result[None, StorageError]:
        client = self._require_client("link")
        if client.is_err():
            return client
        link_key = self._key("links", anchor_key(anchor))
        try:
            seq = await client.value.incr(self._key("seq"))
            await client.value.zadd(link_key, {identity.encode(): seq}, nx=True)
        except _BACKEND_ERRORS as e:
            return Err(StorageError.unavailable("link", cause=e, key=link_key))
        return Ok(None)


def _text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value
