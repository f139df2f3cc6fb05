"""
Range Decomposition
===================

Turns a [start, end] interval into the smallest sequence of day and hour
bucket lookups that covers it, then runs those lookups one after another.

Boundary Cases:
---------------
| start | end  | plan                                                      |
|-------|------|-----------------------------------------------------------|
| day   | day  | days start..end                                           |
| day   | hour | days start..end-1, hours 00..end.hour of end's day        |
| hour  | day  | hours start.hour..23 of start's day, days start+1..end    |
| hour  | hour | same day: hours start.hour..end.hour                      |
|       |      | else: hours start.hour..23, days strictly between,        |
|       |      | hours 00..end.hour of end's day                           |

A day that a boundary only partially covers is never fetched whole.

Failures:
---------
An invalid range fails before any lookup. Every other failure is confined
to its bucket: the bucket is dropped, logged and counted, and the rest of
the plan still runs. Results keep plan order; nothing is deduplicated or
re-sorted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterator, Optional, TypeVar

from chronomesh.core import constants as C
from chronomesh.core.errors import ChronoMeshError, QueryError
from chronomesh.core.types import Result, Ok, Err
from chronomesh.observability.metrics import QueryMetrics
from chronomesh.query.day import DayFetching
from chronomesh.query.hour import HourFetching
from chronomesh.retrieval.records import WireRecord
from chronomesh.storage.protocols import ReadOptions
from chronomesh.timeindex.paths import PathIndexer
from chronomesh.timeindex.time import FetchEntriesTime, is_valid_range

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RangeShape(Enum):
    """Which boundaries carry an hour."""
    DAY_TO_DAY = "day_to_day"
    DAY_TO_HOUR = "day_to_hour"
    HOUR_TO_DAY = "hour_to_day"
    HOUR_TO_HOUR = "hour_to_hour"

    @classmethod
    def of(cls, start: FetchEntriesTime, end: FetchEntriesTime) -> RangeShape:
        if start.has_hour:
            return cls.HOUR_TO_HOUR if end.has_hour else cls.HOUR_TO_DAY
        return cls.DAY_TO_HOUR if end.has_hour else cls.DAY_TO_DAY


@dataclass(frozen=True)
class Fetchers:
    """The bucket fetchers a decomposer delegates to."""
    hour: HourFetching
    day: DayFetching


# =============================================================================
# PLANNING (PURE)
# =============================================================================
def _days(first: date, last: date) -> Iterator[FetchEntriesTime]:
    current = first
    while current <= last:
        yield FetchEntriesTime(current.year, current.month, current.day)
        current += timedelta(days=1)


def _hours(on: date, first: int, last: int) -> Iterator[FetchEntriesTime]:
    for hour in range(first, last + 1):
        yield FetchEntriesTime(on.year, on.month, on.day, hour)


def plan_buckets(start: FetchEntriesTime, end: FetchEntriesTime) -> list[FetchEntriesTime]:
    """
    Bucket lookups covering [start, end], in traversal order.

    Entries without an hour are day lookups; entries with one are hour
    lookups. Assumes start precedes end.
    """
    first_day, last_day = start.date, end.date
    first_hour, last_hour = start.hour, end.hour
    one_day = timedelta(days=1)

    if first_hour is None:
        if last_hour is None:
            return list(_days(first_day, last_day))
        return [
            *_days(first_day, last_day - one_day),
            *_hours(last_day, C.FIRST_HOUR, last_hour),
        ]

    if last_hour is None:
        return [
            *_hours(first_day, first_hour, C.LAST_HOUR),
            *_days(first_day + one_day, last_day),
        ]

    if first_day == last_day:
        return list(_hours(first_day, first_hour, last_hour))
    return [
        *_hours(first_day, first_hour, C.LAST_HOUR),
        *_days(first_day + one_day, last_day - one_day),
        *_hours(last_day, C.FIRST_HOUR, last_hour),
    ]


# =============================================================================
# RANGE DECOMPOSER
# =============================================================================
class RangeDecomposer:
    """Executes a bucket plan against injected fetchers."""

    __slots__ = ("_fetchers", "_allow_equal", "_metrics")

    def __init__(
        self,
        fetchers: Fetchers,
        allow_equal_range: bool = False,
        metrics: Optional[QueryMetrics] = None,
    ) -> None:
        self._fetchers = fetchers
        self._allow_equal = allow_equal_range
        self._metrics = metrics or QueryMetrics()

    def validate(
        self, start: FetchEntriesTime, end: FetchEntriesTime,
    ) -> Result[None, QueryError]:
        if not is_valid_range(start, end, self._allow_equal):
            return Err(QueryError.invalid_range(start, end))
        return Ok(None)

    async def fetch(
        self,
        start: FetchEntriesTime,
        end: FetchEntriesTime,
        base: str,
        entry_type: type[T],
        options: ReadOptions = ReadOptions(),
    ) -> Result[list[WireRecord[T]], QueryError]:
        valid = self.validate(start, end)
        if valid.is_err():
            return valid
        # Checked once here: every bucket would otherwise fail and be dropped.
        checked = PathIndexer().check_base(base)
        if checked.is_err():
            return checked

        plan = plan_buckets(start, end)
        logger.debug(
            "Range %s..%s (%s) planned as %d buckets",
            start, end, RangeShape.of(start, end).value, len(plan),
        )

        records: list[WireRecord[T]] = []
        for bucket in plan:
            fetched = await self._fetch_bucket(bucket, base, entry_type, options)
            if fetched.is_err():
                granularity = "hour" if bucket.has_hour else "day"
                self._metrics.bucket_failures.inc(granularity=granularity)
                logger.warning(
                    "Dropping %s bucket %s", granularity, bucket,
                    extra={"error": fetched.error.to_dict()},
                )
                continue
            records.extend(fetched.value)
        return Ok(records)

    async def _fetch_bucket(
        self,
        bucket: FetchEntriesTime,
        base: str,
        entry_type: type[T],
        options: ReadOptions,
    ) -> Result[list[WireRecord[T]], ChronoMeshError]:
        if bucket.hour is None:
            return await self._fetchers.day.fetch(
                base, bucket.year, bucket.month, bucket.day, entry_type, options,
            )
        return await self._fetchers.hour.fetch(
            base, bucket.year, bucket.month, bucket.day, bucket.hour, entry_type, options,
        )
