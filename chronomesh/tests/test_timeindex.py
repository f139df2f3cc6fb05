"""
Unit Tests: Time Index

Tests:
    - FetchEntriesTime construction, parsing and ordering
    - Bucket key construction and uniqueness
    - Hour component parsing
    - Ensure-and-link indexing
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from chronomesh.core.errors import ErrorCode
from chronomesh.core.types import Identity
from chronomesh.storage.backends import InMemoryIndexStore
from chronomesh.timeindex.paths import PathIndexer, TimeBucketKey
from chronomesh.timeindex.time import FetchEntriesTime, is_valid_range


class TestFetchEntriesTime:
    """Tests for the caller-facing time value."""

    def test_day_only(self):
        t = FetchEntriesTime(2021, 10, 20)
        assert not t.has_hour
        assert str(t) == "2021-10-20"
        assert t.to_datetime() == datetime(2021, 10, 20, tzinfo=timezone.utc)

    def test_with_hour(self):
        t = FetchEntriesTime(2021, 10, 20, 22)
        assert t.has_hour
        assert str(t) == "2021-10-20T22"

    @pytest.mark.parametrize("fields", [
        (2021, 2, 29, None),
        (2021, 13, 1, None),
        (2021, 10, 20, 24),
        (2021, 10, 20, -1),
    ])
    def test_invalid_fields(self, fields):
        with pytest.raises(ValueError):
            FetchEntriesTime(*fields)
        result = FetchEntriesTime.create(*fields)
        assert result.is_err()
        assert result.error.code == ErrorCode.QUERY_INVALID_TIME

    def test_parse(self):
        assert FetchEntriesTime.parse("2021-10-20").unwrap() == FetchEntriesTime(2021, 10, 20)
        assert FetchEntriesTime.parse("2021-10-20T05").unwrap() == FetchEntriesTime(2021, 10, 20, 5)
        assert FetchEntriesTime.parse("2021-10-20T5").is_err()
        assert FetchEntriesTime.parse("20/10/2021").is_err()
        assert FetchEntriesTime.parse("2021-02-30").is_err()

    def test_from_datetime_converts_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        moment = datetime(2021, 10, 21, 1, 30, tzinfo=plus_two)
        assert FetchEntriesTime.from_datetime(moment) == FetchEntriesTime(2021, 10, 20, 23)
        assert FetchEntriesTime.from_datetime(moment, with_hour=False) == FetchEntriesTime(2021, 10, 20)

    def test_dict_round_trip(self):
        t = FetchEntriesTime(2021, 10, 20, 7)
        assert FetchEntriesTime.from_dict(t.to_dict()).unwrap() == t
        assert FetchEntriesTime.from_dict({"year": 2021}).is_err()

    def test_absent_hour_orders_as_midnight(self):
        day = FetchEntriesTime(2021, 10, 20)
        assert not day.is_before(FetchEntriesTime(2021, 10, 20, 0))
        assert day.is_before(FetchEntriesTime(2021, 10, 20, 1))

    def test_is_valid_range(self):
        a = FetchEntriesTime(2021, 10, 20)
        b = FetchEntriesTime(2021, 10, 21)
        assert is_valid_range(a, b)
        assert not is_valid_range(b, a)
        assert not is_valid_range(a, a)
        assert is_valid_range(a, a, allow_equal=True)


class TestTimeBucketKey:
    """Tests for bucket key paths."""

    def test_parse_and_path(self):
        key = TimeBucketKey.parse("create.2021-10-20.05")
        assert key.components == ("create", "2021-10-20", "05")
        assert key.path == "create.2021-10-20.05"
        assert key.last_component == "05"

    def test_ancestors(self):
        key = TimeBucketKey.parse("create.2021-10-20.05")
        assert [k.path for k in key.ancestors()] == ["create", "create.2021-10-20"]
        assert key.parent == TimeBucketKey.parse("create.2021-10-20")
        assert TimeBucketKey.parse("create").parent is None

    @pytest.mark.parametrize("components", [(), ("create", ""), ("a.b",)])
    def test_rejects_bad_components(self, components):
        with pytest.raises(ValueError):
            TimeBucketKey(components)


class TestPathIndexer:
    """Tests for key construction and hour parsing."""

    def setup_method(self):
        self.indexer = PathIndexer()

    def test_day_and_hour_keys(self):
        day = self.indexer.day_key("create", 2021, 10, 20)
        hour = self.indexer.hour_key("create", 2021, 10, 20, 5)
        assert day.path == "create.2021-10-20"
        assert hour.path == "create.2021-10-20.05"
        assert hour.parent == day

    def test_bucket_key_follows_granularity(self):
        assert self.indexer.bucket_key("create", FetchEntriesTime(2021, 10, 20)).path == "create.2021-10-20"
        assert self.indexer.bucket_key("create", FetchEntriesTime(2021, 10, 20, 23)).path == "create.2021-10-20.23"

    def test_keys_are_unique_across_a_year(self):
        start = datetime(2021, 1, 1, tzinfo=timezone.utc)
        paths = set()
        for offset in range(365 * 24):
            dt = start + timedelta(hours=offset)
            paths.add(self.indexer.hour_key("create", dt.year, dt.month, dt.day, dt.hour).path)
        assert len(paths) == 365 * 24

    def test_base_may_be_nested(self):
        key = self.indexer.day_key("tenant.invoices", 2021, 10, 20)
        assert key.components == ("tenant", "invoices", "2021-10-20")

    @pytest.mark.parametrize("base", ["", "tenant..invoices", "create."])
    def test_check_base_rejects_empty_components(self, base):
        result = self.indexer.check_base(base)
        assert result.is_err()
        assert result.error.code == ErrorCode.QUERY_INVALID_REQUEST

    def test_check_base_accepts_nested(self):
        assert self.indexer.check_base("tenant.invoices").unwrap().path == "tenant.invoices"

    @pytest.mark.parametrize("component,hour", [("00", 0), ("7", 7), ("23", 23)])
    def test_hour_of(self, component, hour):
        key = TimeBucketKey(("create", "2021-10-20", component))
        assert self.indexer.hour_of(key).unwrap() == hour

    @pytest.mark.parametrize("component", ["xx", "24", "-1", "1a", "١٢"])
    def test_hour_of_rejects_malformed(self, component):
        key = TimeBucketKey(("create", "2021-10-20", component))
        result = self.indexer.hour_of(key)
        assert result.is_err()
        assert result.error.code == ErrorCode.QUERY_MALFORMED_BUCKET_COMPONENT
        assert result.error.context["component"] == component

    def test_index_ensures_then_links(self):
        store = InMemoryIndexStore()
        key = self.indexer.hour_key("create", 2021, 10, 20, 5)
        identity = Identity.compute(b"note")

        async def run():
            assert (await self.indexer.index(store, key, identity)).is_ok()
            assert (await self.indexer.index(store, key, identity)).is_ok()
            day_children = await store.list_children(key.parent)
            linked = await store.list_indexed_identities(key)
            return day_children.unwrap(), linked.unwrap()

        children, linked = asyncio.run(run())
        assert children == [key]
        assert linked == [identity]

    def test_index_stops_when_bucket_cannot_be_ensured(self):
        store = InMemoryIndexStore()
        key = self.indexer.hour_key("create", 2021, 10, 20, 5)
        store.fail_on("ensure_bucket")

        result = asyncio.run(self.indexer.index(store, key, Identity.compute(b"note")))

        assert result.is_err()
        store.clear_failures()
        assert asyncio.run(store.list_indexed_identities(key)).unwrap() == []
