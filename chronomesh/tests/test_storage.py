"""
Unit Tests: Storage Layer

Tests:
    - StoredVersion validation and serialization
    - Entry details bookkeeping for creates, updates and deletes
    - The shared store contract against the in-memory store, plus failure injection
    - Payload blob encoding
"""

import asyncio

import pytest

from chronomesh.core.errors import ErrorCode
from chronomesh.core.types import Timestamp
from chronomesh.storage import InMemoryIndexStore
from chronomesh.storage.protocols import (
    EntryDetails,
    EntryStatus,
    StoredVersion,
    VersionKind,
    anchor_key,
    detail_roles,
)
from chronomesh.storage.redis_store import BLOB_LZ4, BLOB_RAW, decode_blob, encode_blob
from chronomesh.tests.store_contract import (
    IndexStoreContract,
    create_version,
    delete_version,
    ident,
    update_version,
)
from chronomesh.timeindex.paths import TimeBucketKey


class TestStoredVersion:
    """Tests for version metadata."""

    def test_create_requires_content(self):
        with pytest.raises(ValueError):
            StoredVersion(ident("r"), VersionKind.CREATE, Timestamp(1))

    def test_update_requires_original(self):
        with pytest.raises(ValueError):
            StoredVersion(ident("r"), VersionKind.UPDATE, Timestamp(1), content_identity=ident("c"))

    def test_update_requires_original_content(self):
        original = create_version("a")
        with pytest.raises(ValueError):
            StoredVersion(
                ident("r"), VersionKind.UPDATE, Timestamp(2),
                content_identity=ident("c"),
                original_record_identity=original.record_identity,
            )

    def test_update_without_original_content_is_rejected_on_load(self):
        edit = update_version("b", create_version("a"), 2)
        data = edit.to_dict()
        data["original_content_identity"] = None
        with pytest.raises(ValueError):
            StoredVersion.from_dict(data)

    def test_chains_to(self):
        original = create_version("a")
        tombstone = delete_version("d", original, 3)
        assert original.chains_to == original.record_identity
        assert tombstone.chains_to == original.record_identity

    def test_stable_identity(self):
        original = create_version("a")
        edit = update_version("b", original, 2)
        assert original.stable_identity == original.record_identity
        assert edit.stable_identity == original.record_identity

    def test_dict_form(self):
        original = create_version("a")
        tombstone = delete_version("d", original, 5)
        data = tombstone.to_dict()
        assert data["kind"] == "delete"
        assert data["content_identity"] is None
        assert StoredVersion.from_dict(data) == tombstone

    def test_from_dict_rejects_bad_identity(self):
        data = create_version("a").to_dict()
        data["record_identity"] = "not-an-identity"
        with pytest.raises(ValueError):
            StoredVersion.from_dict(data)


class TestDetailRoles:
    """Tests for which entry detail lists a version lands in."""

    def test_create(self):
        v = create_version("a")
        assert detail_roles(v) == [(v.content_identity, "creates")]

    def test_update(self):
        original = create_version("a")
        edit = update_version("b", original, 2)
        assert detail_roles(edit) == [
            (edit.content_identity, "creates"),
            (original.content_identity, "updates"),
        ]

    def test_delete_of_update_marks_both_payloads(self):
        original = create_version("a")
        edit = update_version("b", original, 2)
        tombstone = delete_version("d", edit, 3)
        assert detail_roles(tombstone, edit) == [
            (edit.content_identity, "deletes"),
            (original.content_identity, "deletes"),
        ]

    def test_delete_without_target(self):
        original = create_version("a")
        assert detail_roles(delete_version("d", original, 3)) == []


class TestEntryDetails:
    """Tests for liveness over a payload shared by several records."""

    def setup_method(self):
        self.first = create_version("x", at=1)
        self.second = StoredVersion(
            record_identity=ident("rec-x-again"),
            kind=VersionKind.CREATE,
            timestamp=Timestamp(2),
            content_identity=self.first.content_identity,
        )
        self.edit = update_version("edit", self.first, 3)

    def details(self, *deletes):
        return EntryDetails(
            content_identity=self.first.content_identity,
            creates=(self.first, self.second),
            updates=(self.edit,),
            deletes=deletes,
        )

    def test_all_live(self):
        details = self.details()
        assert details.live_creates == (self.first, self.second)
        assert details.live_updates == (self.edit,)

    def test_tombstoned_record_drops_its_updates(self):
        details = self.details(delete_version("d", self.first, 4))
        assert details.status == EntryStatus.LIVE
        assert details.live_creates == (self.second,)
        assert details.live_updates == ()

    def test_dead_once_every_producer_is_tombstoned(self):
        details = self.details(
            delete_version("d1", self.first, 4),
            delete_version("d2", self.second, 5),
        )
        assert details.status == EntryStatus.DEAD
        assert details.live_creates == ()


class TestAnchorKey:
    """Tests for anchor text forms."""

    def test_bucket_and_entry_anchors_differ(self):
        key = TimeBucketKey.parse("create.2021-10-20")
        identity = ident("x")
        assert anchor_key(key) == "path:create.2021-10-20"
        assert anchor_key(identity) == f"entry:{identity.encode()}"


class TestInMemoryIndexStore(IndexStoreContract):
    """Contract suite plus failure injection for the dict-backed store."""

    async def open_store(self):
        return InMemoryIndexStore()

    def setup_method(self):
        self.store = InMemoryIndexStore()

    def run(self, coro):
        return asyncio.run(coro)

    def test_counts(self):
        original = create_version("a", at=1)
        self.run(self.store.put_version(original, b"a"))
        self.run(self.store.put_version(update_version("b", original, 2), b"b"))
        assert self.store.version_count == 2
        assert self.store.payload_count == 2

    def test_rejected_payload_stores_nothing(self):
        self.run(self.store.put_version(create_version("a"), b"not a"))
        assert self.store.version_count == 0

    def test_fail_on_bucket(self):
        key = TimeBucketKey.parse("create.2021-10-20.05")
        other = TimeBucketKey.parse("create.2021-10-20.06")
        self.store.fail_on(key)

        failed = self.run(self.store.list_indexed_identities(key))
        assert failed.is_err()
        assert failed.error.is_unavailable
        assert failed.error.context["injected"] is True
        assert self.run(self.store.list_indexed_identities(other)).is_ok()

    def test_fail_on_operation(self):
        self.store.fail_on("get_payload")
        assert self.run(self.store.get_payload(ident("a"))).is_err()
        self.store.clear_failures()
        assert self.run(self.store.get_payload(ident("a"))).is_ok()


class TestBlobEncoding:
    """Tests for the Redis payload blob format."""

    def test_small_payload_stays_raw(self):
        blob = encode_blob(b"tiny", compress=True, threshold=1024)
        assert blob[0] == BLOB_RAW
        assert decode_blob(blob).unwrap() == b"tiny"

    def test_large_payload_is_compressed(self):
        payload = b"x" * 4096
        blob = encode_blob(payload, compress=True, threshold=1024)
        assert blob[0] == BLOB_LZ4
        assert len(blob) < len(payload)
        assert decode_blob(blob).unwrap() == payload

    def test_compression_disabled(self):
        blob = encode_blob(b"x" * 4096, compress=False, threshold=0)
        assert blob[0] == BLOB_RAW

    @pytest.mark.parametrize("blob", [b"", b"\x07abc", bytes([BLOB_LZ4]) + b"garbage"])
    def test_bad_blobs_are_corruption(self, blob):
        result = decode_blob(blob)
        assert result.is_err()
        assert result.error.code == ErrorCode.STORAGE_CORRUPTION

