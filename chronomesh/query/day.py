"""
Day bucket fetch: every hour sub-bucket that exists under one day.

Only hours that have seen at least one write exist as children, so a
quiet day costs a single listing call. A child whose trailing component
is not an hour fails the whole day; a failing hour is dropped.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, TypeVar

from chronomesh.core.errors import ChronoMeshError, QueryError
from chronomesh.core.types import Result, Ok, Err
from chronomesh.observability.metrics import QueryMetrics
from chronomesh.query.hour import HourFetching
from chronomesh.retrieval.records import WireRecord
from chronomesh.storage.protocols import IndexStoreProtocol, ReadOptions
from chronomesh.timeindex.paths import PathIndexer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DayFetching(Protocol):
    """Anything that can fetch a whole day bucket."""

    async def fetch(
        self,
        base: str,
        year: int,
        month: int,
        day: int,
        entry_type: type[T],
        options: ReadOptions = ReadOptions(),
    ) -> Result[list[WireRecord[T]], ChronoMeshError]:
        ...


class DayFetcher:
    """Delegates to an hour fetcher for each discovered hour sub-bucket."""

    __slots__ = ("_store", "_hour", "_indexer", "_metrics")

    def __init__(
        self,
        store: IndexStoreProtocol,
        hour_fetcher: HourFetching,
        indexer: Optional[PathIndexer] = None,
        metrics: Optional[QueryMetrics] = None,
    ) -> None:
        self._store = store
        self._hour = hour_fetcher
        self._indexer = indexer or PathIndexer()
        self._metrics = metrics or QueryMetrics()

    async def fetch(
        self,
        base: str,
        year: int,
        month: int,
        day: int,
        entry_type: type[T],
        options: ReadOptions = ReadOptions(),
    ) -> Result[list[WireRecord[T]], ChronoMeshError]:
        try:
            key = self._indexer.day_key(base, year, month, day)
        except ValueError as e:
            return Err(QueryError.invalid_request(f"cannot build day bucket key: {e}"))

        self._metrics.bucket_fetches.inc(granularity="day")

        children = await self._store.list_children(key)
        if children.is_err():
            return children

        # Parse every child before fetching any hour: a malformed child
        # fails the call without partial work.
        hours: list[int] = []
        for child in children.value:
            parsed = self._indexer.hour_of(child)
            if parsed.is_err():
                logger.warning(
                    "Malformed hour bucket under %s", key,
                    extra={"error": parsed.error.to_dict()},
                )
                return parsed
            hours.append(parsed.value)

        logger.debug("Day bucket %s has %d hour buckets", key, len(hours))

        records: list[WireRecord[T]] = []
        for hour in hours:
            fetched = await self._hour.fetch(base, year, month, day, hour, entry_type, options)
            if fetched.is_err():
                self._metrics.bucket_failures.inc(granularity="hour")
                logger.warning(
                    "Dropping hour %02d of %s", hour, key,
                    extra={"error": fetched.error.to_dict()},
                )
                continue
            records.extend(fetched.value)
        return Ok(records)
