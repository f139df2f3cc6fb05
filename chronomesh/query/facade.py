"""
Time Query Facade: single entry point for point and range queries.
"""

from __future__ import annotations

from typing import Optional, TypeVar

from chronomesh.core.config import QueryConfig
from chronomesh.core.errors import ChronoMeshError
from chronomesh.core.types import Result
from chronomesh.observability.logging import StructuredLogger, query_scope
from chronomesh.observability.metrics import MetricsCollector, QueryMetrics
from chronomesh.query.day import DayFetcher
from chronomesh.query.hour import HourFetcher
from chronomesh.query.range import Fetchers, RangeDecomposer
from chronomesh.retrieval.latest import LatestResolver
from chronomesh.retrieval.records import PayloadCodec, WireRecord
from chronomesh.storage.protocols import IndexStoreProtocol, ReadOptions
from chronomesh.timeindex.paths import PathIndexer
from chronomesh.timeindex.time import FetchEntriesTime

logger = StructuredLogger(__name__)

T = TypeVar("T")


class TimeQueryFacade:
    """
    Dispatches point queries to the day or hour fetcher and range queries
    to the decomposer.

    Usage:
        facade = TimeQueryFacade.from_store(store)
        result = await facade.fetch_by_range(
            FetchEntriesTime(2021, 10, 20, 22),
            FetchEntriesTime(2021, 10, 21, 1),
            Note,
        )
    """

    __slots__ = ("_fetchers", "_decomposer", "_config", "_metrics")

    def __init__(
        self,
        fetchers: Fetchers,
        config: Optional[QueryConfig] = None,
        decomposer: Optional[RangeDecomposer] = None,
        metrics: Optional[QueryMetrics] = None,
    ) -> None:
        self._config = config or QueryConfig()
        self._metrics = metrics or QueryMetrics()
        self._fetchers = fetchers
        self._decomposer = decomposer or RangeDecomposer(
            fetchers,
            allow_equal_range=self._config.allow_equal_range,
            metrics=self._metrics,
        )

    @classmethod
    def from_store(
        cls,
        store: IndexStoreProtocol,
        config: Optional[QueryConfig] = None,
        collector: Optional[MetricsCollector] = None,
        codec: Optional[PayloadCodec] = None,
    ) -> TimeQueryFacade:
        """Wire the standard fetchers over one backing store."""
        metrics = QueryMetrics(collector)
        indexer = PathIndexer()
        resolver = LatestResolver(store, codec)
        hour = HourFetcher(store, resolver, indexer, metrics)
        day = DayFetcher(store, hour, indexer, metrics)
        return cls(Fetchers(hour=hour, day=day), config=config, metrics=metrics)

    @property
    def config(self) -> QueryConfig:
        return self._config

    def _read_options(self, options: Optional[ReadOptions]) -> ReadOptions:
        return options or ReadOptions(self._config.read_consistency)

    async def fetch_by_time(
        self,
        instant: FetchEntriesTime,
        entry_type: type[T],
        base: Optional[str] = None,
        options: Optional[ReadOptions] = None,
    ) -> Result[list[WireRecord[T]], ChronoMeshError]:
        """Whole day when the instant has no hour, else that single hour."""
        if base is None:
            base = self._config.default_base
        read = self._read_options(options)

        with query_scope(base=base, query=str(instant)):
            with self._metrics.query_seconds.time(kind="point"):
                if instant.hour is None:
                    result = await self._fetchers.day.fetch(
                        base, instant.year, instant.month, instant.day, entry_type, read,
                    )
                else:
                    result = await self._fetchers.hour.fetch(
                        base, instant.year, instant.month, instant.day, instant.hour,
                        entry_type, read,
                    )
            self._log_outcome("Point query", result)
        return result

    async def fetch_by_range(
        self,
        start: FetchEntriesTime,
        end: FetchEntriesTime,
        entry_type: type[T],
        base: Optional[str] = None,
        options: Optional[ReadOptions] = None,
    ) -> Result[list[WireRecord[T]], ChronoMeshError]:
        """Validate ordering, then delegate to the decomposer."""
        if base is None:
            base = self._config.default_base
        read = self._read_options(options)

        with query_scope(base=base, query=f"{start}..{end}"):
            with self._metrics.query_seconds.time(kind="range"):
                result = await self._decomposer.fetch(start, end, base, entry_type, read)
            self._log_outcome("Range query", result)
        return result

    @staticmethod
    def _log_outcome(label: str, result: Result) -> None:
        if result.is_err():
            logger.warning(f"{label} failed", error=result.error.to_dict())
        else:
            logger.info(f"{label} complete", records=len(result.value))
