"""
Generic retrieval: every record linked under an anchor, or a chosen set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, TypeVar, Union

from chronomesh.core.errors import QueryError, StorageError
from chronomesh.core.types import Result, Ok, Err, ContentIdentity
from chronomesh.retrieval.latest import LatestResolver
from chronomesh.retrieval.records import WireRecord
from chronomesh.storage.protocols import Anchor, IndexStoreProtocol, ReadOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class FetchAll:
    """Every record linked under the anchor."""


@dataclass(frozen=True, slots=True)
class FetchSpecific:
    """Exactly the given identities, in the given order."""
    identities: tuple[ContentIdentity, ...]


FetchOptions = Union[FetchAll, FetchSpecific]


async def resolve_all(
    resolver: LatestResolver,
    identities: list[ContentIdentity],
    entry_type: type[T],
    options: ReadOptions,
) -> list[WireRecord[T]]:
    """Resolve each identity in order, dropping failures and absences."""
    records: list[WireRecord[T]] = []
    for identity in identities:
        resolved = await resolver.resolve(identity, entry_type, options)
        if resolved.is_err():
            logger.warning(
                "Dropping %s: resolution failed", identity,
                extra={"error": resolved.error.to_dict()},
            )
            continue
        if resolved.value is not None:
            records.append(resolved.value)
    return records


class FetchLinks:
    """Latest version of every identity linked under an anchor."""

    __slots__ = ("_store", "_resolver")

    def __init__(self, store: IndexStoreProtocol, resolver: LatestResolver) -> None:
        self._store = store
        self._resolver = resolver

    async def fetch_links(
        self,
        anchor: Anchor,
        entry_type: type[T],
        options: ReadOptions = ReadOptions(),
    ) -> Result[list[WireRecord[T]], StorageError]:
        identities = await self._store.list_indexed_identities(anchor)
        if identities.is_err():
            return identities
        return Ok(await resolve_all(self._resolver, identities.value, entry_type, options))


class FetchEntries:
    """Either all records under an anchor or a specific subset."""

    __slots__ = ("_resolver", "_links")

    def __init__(self, store: IndexStoreProtocol, resolver: LatestResolver) -> None:
        self._resolver = resolver
        self._links = FetchLinks(store, resolver)

    async def fetch_entries(
        self,
        entry_type: type[T],
        fetch_options: FetchOptions,
        anchor: Optional[Anchor] = None,
        options: ReadOptions = ReadOptions(),
    ) -> Result[list[WireRecord[T]], StorageError | QueryError]:
        if isinstance(fetch_options, FetchSpecific):
            return Ok(await resolve_all(
                self._resolver, list(fetch_options.identities), entry_type, options,
            ))
        if anchor is None:
            return Err(QueryError.invalid_request("fetching all entries requires an anchor"))
        return await self._links.fetch_links(anchor, entry_type, options)
