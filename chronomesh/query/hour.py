"""
Hour bucket fetch: every record indexed under one (y, m, d, h) bucket.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, TypeVar

from chronomesh.core.errors import ChronoMeshError, QueryError
from chronomesh.core.types import Result, Ok, Err
from chronomesh.observability.metrics import QueryMetrics
from chronomesh.retrieval.fetch_entries import resolve_all
from chronomesh.retrieval.latest import LatestResolver
from chronomesh.retrieval.records import WireRecord
from chronomesh.storage.protocols import IndexStoreProtocol, ReadOptions
from chronomesh.timeindex.paths import PathIndexer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HourFetching(Protocol):
    """Anything that can fetch a single hour bucket."""

    async def fetch(
        self,
        base: str,
        year: int,
        month: int,
        day: int,
        hour: int,
        entry_type: type[T],
        options: ReadOptions = ReadOptions(),
    ) -> Result[list[WireRecord[T]], ChronoMeshError]:
        ...


class HourFetcher:
    """
    Lists the identities linked under an hour bucket and resolves each to
    its latest version. Identities that fail to resolve or resolve to
    nothing are dropped; a failed listing fails the whole bucket.
    """

    __slots__ = ("_store", "_resolver", "_indexer", "_metrics")

    def __init__(
        self,
        store: IndexStoreProtocol,
        resolver: LatestResolver,
        indexer: Optional[PathIndexer] = None,
        metrics: Optional[QueryMetrics] = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._indexer = indexer or PathIndexer()
        self._metrics = metrics or QueryMetrics()

    async def fetch(
        self,
        base: str,
        year: int,
        month: int,
        day: int,
        hour: int,
        entry_type: type[T],
        options: ReadOptions = ReadOptions(),
    ) -> Result[list[WireRecord[T]], ChronoMeshError]:
        try:
            key = self._indexer.hour_key(base, year, month, day, hour)
        except ValueError as e:
            return Err(QueryError.invalid_request(f"cannot build hour bucket key: {e}"))

        self._metrics.bucket_fetches.inc(granularity="hour")
        logger.debug("Fetching hour bucket %s", key)

        identities = await self._store.list_indexed_identities(key)
        if identities.is_err():
            return identities

        records = await resolve_all(self._resolver, identities.value, entry_type, options)
        self._metrics.records_resolved.inc(len(records))
        return Ok(records)
