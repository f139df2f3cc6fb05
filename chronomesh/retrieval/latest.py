"""
Latest-Revision Resolution
==========================

Given the ContentIdentity a bucket or anchor points at, find the payload of
the most recently accepted version of that record's lineage.

Resolution Rules:
-----------------
1. Entry details are absent, or every producing version is tombstoned:
   the record is absent. Otherwise tombstoned producers, and updates of
   tombstoned records, are ignored.
2. The identity names the payload of an UPDATE: resolution restarts from
   the lineage's original payload, so an indexed edit still resolves to
   the newest edit.
3. No live updates: the first producing version wins and
   created_at == updated_at.
4. Otherwise updates are stably sorted by timestamp and the last one wins;
   equal timestamps resolve to the later-discovered update.
5. The winner's payload is decoded into the expected type; a mismatch
   makes the record absent rather than an error.

The returned record identity is always the lineage's StableIdentity, and
created_at always comes from the original CREATE.
"""

from __future__ import annotations

import logging
from typing import Optional, TypeVar

from chronomesh.core.errors import StorageError
from chronomesh.core.types import Result, Ok, Err, ContentIdentity, Timestamp
from chronomesh.retrieval.records import PayloadCodec, WireRecord
from chronomesh.storage.protocols import (
    EntryDetails,
    EntryStatus,
    IndexStoreProtocol,
    ReadOptions,
    StoredVersion,
    VersionKind,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LatestResolver:
    """Resolve an identity to the latest version of its record."""

    __slots__ = ("_store", "_codec")

    def __init__(
        self,
        store: IndexStoreProtocol,
        codec: Optional[PayloadCodec] = None,
    ) -> None:
        self._store = store
        self._codec = codec or PayloadCodec()

    async def resolve(
        self,
        identity: ContentIdentity,
        entry_type: type[T],
        options: ReadOptions = ReadOptions(),
    ) -> Result[Optional[WireRecord[T]], StorageError]:
        details = await self._live_details(identity, options)
        if details.is_err() or details.value is None:
            return details

        # Tombstoned producers of the same payload are skipped.
        base = details.value.live_creates[0]
        if base.kind == VersionKind.UPDATE:
            # Updates always chain to the original CREATE; one hop reaches it.
            original = base.original_content_identity
            if original is None:
                return Err(StorageError.corruption(
                    "update carries no original content identity",
                    affected_key=str(base.record_identity),
                ))
            details = await self._live_details(original, options)
            if details.is_err() or details.value is None:
                return details

        lineage = details.value
        winner = self.select_winner(lineage)

        created_at = await self._created_at(winner, lineage, options)
        if created_at.is_err():
            return created_at

        content = winner.content_identity
        if content is None:
            return Err(StorageError.corruption(
                f"{winner.kind.name} version carries no content identity",
                affected_key=str(winner.record_identity),
            ))

        payload = await self._store.get_payload(content, options)
        if payload.is_err():
            return payload
        if payload.value is None:
            logger.warning("Payload missing for version %s", winner.record_identity)
            return Ok(None)

        decoded = self._codec.decode(payload.value, entry_type)
        if decoded is None:
            logger.debug(
                "Payload of %s does not decode as %s",
                content, getattr(entry_type, "__name__", entry_type),
            )
            return Ok(None)

        return Ok(WireRecord(
            record_identity=winner.stable_identity,
            content_identity=content,
            payload=decoded,
            created_at=created_at.value,
            updated_at=winner.timestamp,
        ))

    @staticmethod
    def select_winner(details: EntryDetails) -> StoredVersion:
        """
        Last live update by timestamp (stable), else the first live create.

        Expects an entry that is not DEAD.
        """
        updates = details.live_updates
        if not updates:
            return details.live_creates[0]
        return sorted(updates, key=lambda v: v.timestamp)[-1]

    async def _live_details(
        self,
        identity: ContentIdentity,
        options: ReadOptions,
    ) -> Result[Optional[EntryDetails], StorageError]:
        details = await self._store.get_details(identity, options)
        if details.is_err():
            return details
        if details.value is None or not details.value.creates:
            return Ok(None)
        if details.value.status == EntryStatus.DEAD:
            logger.debug("Entry %s is deleted", identity)
            return Ok(None)
        return details

    async def _created_at(
        self,
        winner: StoredVersion,
        lineage: EntryDetails,
        options: ReadOptions,
    ) -> Result[Timestamp, StorageError]:
        if winner.kind == VersionKind.CREATE:
            return Ok(winner.timestamp)

        stable = winner.stable_identity
        for create in lineage.creates:
            if create.record_identity == stable:
                return Ok(create.timestamp)

        original = await self._store.get_version(stable, options)
        if original.is_err():
            return original
        if original.value is None:
            return Err(StorageError.not_found(str(stable)))
        return Ok(original.value.timestamp)
