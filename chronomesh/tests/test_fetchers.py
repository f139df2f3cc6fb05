"""
Unit Tests: Hour and Day Bucket Fetchers

Tests:
    - Hour buckets return resolved records in link order
    - Unresolvable identities are dropped, listing failures are not
    - Day buckets only visit hours that exist
    - Malformed hour children fail the day without partial work
    - Fetch and failure counters
"""

import asyncio

from chronomesh.chain.actions import CreateAction, DeleteAction, UpdateAction
from chronomesh.core.errors import ErrorCode
from chronomesh.observability.metrics import MetricsCollector, QueryMetrics
from chronomesh.query.day import DayFetcher
from chronomesh.query.hour import HourFetcher
from chronomesh.retrieval.latest import LatestResolver
from chronomesh.storage.backends import InMemoryIndexStore
from chronomesh.tests.fakes import (
    ManualClock,
    Note,
    RecordingHourFetcher,
    payload_texts,
    utc,
)
from chronomesh.timeindex.paths import PathIndexer, TimeBucketKey


class FetcherHarness:
    """In-memory store with hour and day fetchers wired over it."""

    def __init__(self):
        self.store = InMemoryIndexStore()
        self.clock = ManualClock(utc(2021, 10, 20, 0))
        self.indexer = PathIndexer()
        self.metrics = QueryMetrics(MetricsCollector())
        resolver = LatestResolver(self.store)
        self.hour = HourFetcher(self.store, resolver, self.indexer, self.metrics)
        self.day = DayFetcher(self.store, self.hour, self.indexer, self.metrics)

    async def write(self, moment, text, number=0):
        self.clock.set(moment)
        action = CreateAction(self.store, clock=self.clock, indexer=self.indexer)
        return (await action.create(Note(text, number), index_base="create")).unwrap()

    def fetch_hour(self, year, month, day, hour, base="create"):
        return asyncio.run(self.hour.fetch(base, year, month, day, hour, Note))

    def fetch_day(self, year, month, day, base="create"):
        return asyncio.run(self.day.fetch(base, year, month, day, Note))


class TestHourFetcher:
    """Tests for single hour buckets."""

    def test_records_in_link_order(self):
        h = FetcherHarness()

        async def seed():
            await h.write(utc(2021, 10, 20, 22, 40), "second")
            await h.write(utc(2021, 10, 20, 22, 5), "first")
            await h.write(utc(2021, 10, 20, 23, 1), "next hour")

        asyncio.run(seed())
        result = h.fetch_hour(2021, 10, 20, 22)

        assert payload_texts(result.unwrap()) == ["second", "first"]
        assert h.metrics.bucket_fetches.get(granularity="hour") == 1
        assert h.metrics.records_resolved.get() == 2

    def test_empty_hour(self):
        h = FetcherHarness()
        assert h.fetch_hour(2021, 10, 20, 3).unwrap() == []

    def test_records_resolve_to_latest_version(self):
        h = FetcherHarness()

        async def seed():
            created = await h.write(utc(2021, 10, 20, 22, 5), "draft")
            h.clock.set(utc(2021, 10, 21, 9))
            await UpdateAction(h.store, clock=h.clock).update(
                Note("final", 1), created.record_identity,
            )
            return created

        created = asyncio.run(seed())
        record = h.fetch_hour(2021, 10, 20, 22).unwrap()[0]

        assert record.payload == Note("final", 1)
        assert record.record_identity == created.record_identity
        assert record.created_at == created.created_at

    def test_deleted_records_are_dropped(self):
        h = FetcherHarness()

        async def seed():
            doomed = await h.write(utc(2021, 10, 20, 22, 5), "doomed")
            await h.write(utc(2021, 10, 20, 22, 6), "kept")
            await DeleteAction(h.store, clock=h.clock).delete(doomed.record_identity)

        asyncio.run(seed())
        assert payload_texts(h.fetch_hour(2021, 10, 20, 22).unwrap()) == ["kept"]

    def test_unresolvable_identity_is_dropped(self):
        h = FetcherHarness()

        async def seed():
            broken = await h.write(utc(2021, 10, 20, 22, 5), "broken")
            await h.write(utc(2021, 10, 20, 22, 6), "fine")
            return broken

        broken = asyncio.run(seed())
        h.store.fail_on(broken.content_identity)

        result = h.fetch_hour(2021, 10, 20, 22)
        assert result.is_ok()
        assert payload_texts(result.value) == ["fine"]

    def test_listing_failure_fails_the_hour(self):
        h = FetcherHarness()
        h.store.fail_on(h.indexer.hour_key("create", 2021, 10, 20, 22))

        result = h.fetch_hour(2021, 10, 20, 22)

        assert result.is_err()
        assert result.error.is_unavailable

    def test_unusable_base_is_rejected(self):
        h = FetcherHarness()
        result = h.fetch_hour(2021, 10, 20, 22, base="")
        assert result.error.code == ErrorCode.QUERY_INVALID_REQUEST

    def test_bases_are_isolated(self):
        h = FetcherHarness()
        asyncio.run(h.write(utc(2021, 10, 20, 22, 5), "note"))
        assert h.fetch_hour(2021, 10, 20, 22, base="invoices").unwrap() == []


class TestDayFetcher:
    """Tests for whole-day buckets."""

    def test_hours_visited_in_order(self):
        h = FetcherHarness()

        async def seed():
            await h.write(utc(2021, 10, 20, 22, 5), "late")
            await h.write(utc(2021, 10, 20, 9, 15), "morning")
            await h.write(utc(2021, 10, 20, 9, 45), "morning again")
            await h.write(utc(2021, 10, 21, 0, 10), "tomorrow")

        asyncio.run(seed())
        result = h.fetch_day(2021, 10, 20)

        assert payload_texts(result.unwrap()) == ["morning", "morning again", "late"]
        assert h.metrics.bucket_fetches.get(granularity="day") == 1
        assert h.metrics.bucket_fetches.get(granularity="hour") == 2

    def test_only_existing_hours_are_fetched(self):
        h = FetcherHarness()
        asyncio.run(h.write(utc(2021, 10, 20, 14), "afternoon"))
        recording = RecordingHourFetcher()
        day = DayFetcher(h.store, recording, h.indexer, h.metrics)

        asyncio.run(day.fetch("create", 2021, 10, 20, Note))

        assert recording.hours == [(2021, 10, 20, 14)]

    def test_quiet_day_is_empty(self):
        h = FetcherHarness()
        result = h.fetch_day(2021, 10, 20)
        assert result.unwrap() == []
        assert h.metrics.bucket_fetches.get(granularity="hour") == 0

    def test_failing_hour_is_dropped(self):
        h = FetcherHarness()

        async def seed():
            await h.write(utc(2021, 10, 20, 9), "kept")
            await h.write(utc(2021, 10, 20, 22), "lost")

        asyncio.run(seed())
        h.store.fail_on(h.indexer.hour_key("create", 2021, 10, 20, 22))

        result = h.fetch_day(2021, 10, 20)

        assert payload_texts(result.unwrap()) == ["kept"]
        assert h.metrics.bucket_failures.get(granularity="hour") == 1

    def test_listing_failure_fails_the_day(self):
        h = FetcherHarness()
        h.store.fail_on("list_children")
        result = h.fetch_day(2021, 10, 20)
        assert result.is_err()
        assert result.error.is_unavailable

    def test_malformed_child_fails_without_partial_work(self):
        h = FetcherHarness()
        asyncio.run(h.write(utc(2021, 10, 20, 9), "valid"))
        asyncio.run(h.store.ensure_bucket(TimeBucketKey.parse("create.2021-10-20.xx")))
        recording = RecordingHourFetcher()
        day = DayFetcher(h.store, recording, h.indexer, h.metrics)

        result = asyncio.run(day.fetch("create", 2021, 10, 20, Note))

        assert result.is_err()
        assert result.error.code == ErrorCode.QUERY_MALFORMED_BUCKET_COMPONENT
        assert result.error.context["component"] == "xx"
        assert recording.calls == []

    def test_out_of_range_hour_child_is_malformed(self):
        h = FetcherHarness()
        asyncio.run(h.store.ensure_bucket(TimeBucketKey.parse("create.2021-10-20.24")))
        result = h.fetch_day(2021, 10, 20)
        assert result.error.code == ErrorCode.QUERY_MALFORMED_BUCKET_COMPONENT
