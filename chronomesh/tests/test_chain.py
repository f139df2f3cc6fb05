"""
Unit Tests: Write Path

Tests:
    - Create stores content-addressed payloads and indexes them by hour
    - Linking off bucket and entry anchors
    - Update lineage re-pointing
    - Delete tombstones
    - Store failures surface as errors
"""

import asyncio

from chronomesh.chain.actions import CreateAction, DeleteAction, UpdateAction
from chronomesh.core.errors import ErrorCode
from chronomesh.core.types import Identity
from chronomesh.retrieval.fetch_entries import FetchAll, FetchEntries, FetchSpecific
from chronomesh.retrieval.latest import LatestResolver
from chronomesh.storage.backends import InMemoryIndexStore
from chronomesh.storage.protocols import VersionKind
from chronomesh.tests.fakes import ManualClock, Note, payload_texts, utc
from chronomesh.timeindex.paths import PathIndexer, TimeBucketKey


class ChainHarness:
    def __init__(self):
        self.store = InMemoryIndexStore()
        self.clock = ManualClock(utc(2021, 10, 20, 22, 5))
        self.indexer = PathIndexer()
        self.create = CreateAction(self.store, clock=self.clock)
        self.update = UpdateAction(self.store, clock=self.clock)
        self.delete = DeleteAction(self.store, clock=self.clock)

    def run(self, coro):
        return asyncio.run(coro)


class TestCreateAction:
    """Tests for CreateAction."""

    def test_create_stores_version_and_payload(self):
        h = ChainHarness()
        record = h.run(h.create.create(Note("hello", 1))).unwrap()

        version = h.run(h.store.get_version(record.record_identity)).unwrap()
        assert version.kind == VersionKind.CREATE
        assert version.content_identity == record.content_identity
        assert record.created_at == record.updated_at == h.clock.now
        payload = h.run(h.store.get_payload(record.content_identity)).unwrap()
        assert Identity.compute(payload) == record.content_identity

    def test_equal_payloads_share_content(self):
        h = ChainHarness()
        first = h.run(h.create.create(Note("same", 1))).unwrap()
        second = h.run(h.create.create(Note("same", 1))).unwrap()
        assert first.content_identity == second.content_identity
        assert first.record_identity != second.record_identity
        assert h.store.payload_count == 1

    def test_index_base_links_under_write_hour(self):
        h = ChainHarness()
        record = h.run(h.create.create(Note("hello", 1), index_base="create")).unwrap()

        hour_key = h.indexer.hour_key("create", 2021, 10, 20, 22)
        day_key = h.indexer.day_key("create", 2021, 10, 20)
        assert h.run(h.store.list_indexed_identities(hour_key)).unwrap() == [record.content_identity]
        assert h.run(h.store.list_children(day_key)).unwrap() == [hour_key]

    def test_link_off_bucket(self):
        h = ChainHarness()
        anchor = TimeBucketKey.parse("inbox.pinned")
        record = h.run(h.create.create(Note("pinned", 1), link_off=anchor)).unwrap()

        assert h.run(h.store.list_indexed_identities(anchor)).unwrap() == [record.content_identity]
        assert h.run(h.store.list_children(TimeBucketKey.parse("inbox"))).unwrap() == [anchor]

    def test_link_off_entry(self):
        h = ChainHarness()
        parent = h.run(h.create.create(Note("thread", 0))).unwrap()
        reply = h.run(h.create.create(Note("reply", 1), link_off=parent.content_identity)).unwrap()

        linked = h.run(h.store.list_indexed_identities(parent.content_identity)).unwrap()
        assert linked == [reply.content_identity]

    def test_store_failure_surfaces(self):
        h = ChainHarness()
        h.store.fail_on("put_version")
        result = h.run(h.create.create(Note("lost", 1), index_base="create"))
        assert result.is_err()
        assert result.error.is_unavailable
        assert h.store.version_count == 0


class TestUpdateAction:
    """Tests for UpdateAction."""

    def test_update_chains_to_create(self):
        h = ChainHarness()
        created = h.run(h.create.create(Note("v1", 1))).unwrap()
        h.clock.advance(hours=2)
        updated = h.run(h.update.update(Note("v2", 2), created.record_identity)).unwrap()

        assert updated.record_identity == created.record_identity
        assert updated.created_at == created.created_at
        assert updated.updated_at == h.clock.now
        details = h.run(h.store.get_details(created.content_identity)).unwrap()
        assert [u.content_identity for u in details.updates] == [updated.content_identity]

    def test_update_of_update_points_at_create(self):
        h = ChainHarness()
        created = h.run(h.create.create(Note("v1", 1))).unwrap()
        second = h.run(h.update.update(Note("v2", 2), created.record_identity)).unwrap()
        update_id = h.run(h.store.get_details(second.content_identity)).unwrap().creates[0].record_identity

        h.run(h.update.update(Note("v3", 3), update_id)).unwrap()

        details = h.run(h.store.get_details(created.content_identity)).unwrap()
        assert len(details.updates) == 2
        assert {u.original_record_identity for u in details.updates} == {created.record_identity}

    def test_update_indexes_under_its_own_hour(self):
        h = ChainHarness()
        created = h.run(h.create.create(Note("v1", 1), index_base="create")).unwrap()
        h.clock.set(utc(2021, 10, 21, 3))
        updated = h.run(h.update.update(
            Note("v2", 2), created.record_identity, index_base="create",
        )).unwrap()

        key = h.indexer.hour_key("create", 2021, 10, 21, 3)
        assert h.run(h.store.list_indexed_identities(key)).unwrap() == [updated.content_identity]

    def test_update_unknown_record(self):
        h = ChainHarness()
        result = h.run(h.update.update(Note("v2", 2), Identity.compute(b"ghost")))
        assert result.error.code == ErrorCode.STORAGE_NOT_FOUND


class TestDeleteAction:
    """Tests for DeleteAction."""

    def test_delete_returns_target(self):
        h = ChainHarness()
        created = h.run(h.create.create(Note("v1", 1))).unwrap()
        deleted = h.run(h.delete.delete(created.record_identity))
        assert deleted.unwrap() == created.record_identity
        details = h.run(h.store.get_details(created.content_identity)).unwrap()
        assert [d.original_record_identity for d in details.deletes] == [created.record_identity]

    def test_delete_unknown(self):
        h = ChainHarness()
        result = h.run(h.delete.delete(Identity.compute(b"ghost")))
        assert result.error.code == ErrorCode.STORAGE_NOT_FOUND

    def test_updating_deleted_version_identity_fails(self):
        h = ChainHarness()
        created = h.run(h.create.create(Note("v1", 1))).unwrap()
        h.run(h.delete.delete(created.record_identity)).unwrap()
        tombstone = h.run(h.store.get_details(created.content_identity)).unwrap().deletes[0]

        assert h.run(h.delete.delete(tombstone.record_identity)).is_err()
        assert h.run(h.update.update(Note("v2", 2), tombstone.record_identity)).is_err()


class TestFetchEntries:
    """Tests for anchor and explicit-identity retrieval."""

    def test_fetch_all_under_anchor(self):
        h = ChainHarness()
        parent = h.run(h.create.create(Note("thread", 0))).unwrap()
        for n in (1, 2):
            h.run(h.create.create(Note(f"reply {n}", n), link_off=parent.content_identity))
        fetcher = FetchEntries(h.store, LatestResolver(h.store))

        result = h.run(fetcher.fetch_entries(Note, FetchAll(), anchor=parent.content_identity))

        assert payload_texts(result.unwrap()) == ["reply 1", "reply 2"]

    def test_fetch_specific_keeps_given_order(self):
        h = ChainHarness()
        a = h.run(h.create.create(Note("a", 1))).unwrap()
        b = h.run(h.create.create(Note("b", 2))).unwrap()
        fetcher = FetchEntries(h.store, LatestResolver(h.store))

        wanted = FetchSpecific((b.content_identity, Identity.compute(b"ghost"), a.content_identity))
        result = h.run(fetcher.fetch_entries(Note, wanted))

        assert payload_texts(result.unwrap()) == ["b", "a"]

    def test_fetch_all_requires_anchor(self):
        h = ChainHarness()
        fetcher = FetchEntries(h.store, LatestResolver(h.store))
        result = h.run(fetcher.fetch_entries(Note, FetchAll()))
        assert result.error.code == ErrorCode.QUERY_INVALID_REQUEST
