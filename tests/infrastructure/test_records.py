"""Tests for enrolled record snapshots and synchronization."""
import json

import numpy as np
import pytest
import requests

from fakes import make_record
from idverify.core.exceptions import InvalidRecordError, RecordSyncError
from idverify.infrastructure import records as records_module
from idverify.infrastructure.records import (
    HttpRecordSynchronizer,
    RecordSnapshot,
    SnapshotRecordStore,
    load_records_file,
    record_from_payload,
)

PAYLOAD = {
    "students": {
        "2141234": {
            "id": "2141234",
            "displayId": "21-4-1234",
            "name": "Ada Lovelace",
            "department": "Mathematics",
            "year": "2021",
            "email": "ada@example.edu",
            "faceImages": ["/uploads/ada-1.jpg", "/uploads/ada-2.jpg"],
            "createdAt": "2024-09-01T10:00:00Z",
        },
        "22-4-5678": {
            "name": "Alan Turing",
            "faceImage": "/uploads/alan.jpg",
        },
    }
}


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class TestRecordFromPayload:
    def test_full_record(self):
        record = record_from_payload("2141234", PAYLOAD["students"]["2141234"])
        assert record.identifier == "2141234"
        assert record.display_id == "21-4-1234"
        assert record.face_images == ["/uploads/ada-1.jpg", "/uploads/ada-2.jpg"]
        assert record.created_at.year == 2024
        assert record.id_number == "1234"

    def test_single_face_image_and_key_identifier(self):
        record = record_from_payload("22-4-5678", PAYLOAD["students"]["22-4-5678"])
        assert record.identifier == "2245678"
        assert record.display_id == "22-4-5678"
        assert record.face_images == ["/uploads/alan.jpg"]
        assert record.reference_descriptors == []

    def test_descriptors_are_converted(self):
        record = record_from_payload("2141234", {"faceDescriptors": [[0.0] * 128]})
        assert isinstance(record.reference_descriptors[0], np.ndarray)
        assert record.reference_descriptors[0].shape == (128,)

    def test_not_an_object(self):
        with pytest.raises(InvalidRecordError):
            record_from_payload("2141234", ["not", "a", "record"])

    def test_invalid_field(self):
        with pytest.raises(InvalidRecordError):
            record_from_payload("2141234", {"createdAt": "yesterday-ish"})


class TestRecordSnapshot:
    def test_from_wrapped_payload(self):
        snapshot = RecordSnapshot.from_payload(PAYLOAD)
        assert len(snapshot) == 2
        assert snapshot.identifiers() == ["2141234", "2245678"]
        assert "21-4-1234" in snapshot
        assert snapshot.get("22-4-5678").name == "Alan Turing"

    def test_from_bare_mapping(self):
        snapshot = RecordSnapshot.from_payload(PAYLOAD["students"])
        assert len(snapshot) == 2

    def test_rejects_non_mapping_payload(self):
        with pytest.raises(InvalidRecordError):
            RecordSnapshot.from_payload(["2141234"])

    def test_skips_duplicate_id_number(self):
        snapshot = RecordSnapshot([make_record("2141234"), make_record("2241234")])
        assert snapshot.identifiers() == ["2141234"]

    def test_skips_malformed_identifier(self):
        snapshot = RecordSnapshot([make_record("214123"), make_record("5014741")])
        assert snapshot.identifiers() == ["5014741"]

    def test_skips_invalid_entries(self):
        snapshot = RecordSnapshot.from_payload({"2141234": {}, "2245678": "garbage"})
        assert snapshot.identifiers() == ["2141234"]


class TestSnapshotRecordStore:
    def test_replace_swaps_whole_snapshot(self):
        store = SnapshotRecordStore(RecordSnapshot([make_record("2141234")]))
        store.replace(RecordSnapshot([make_record("2245678")]))
        assert store.list_identifiers() == ["2245678"]
        assert store.get("2141234") is None

    def test_empty_by_default(self):
        assert SnapshotRecordStore().list_identifiers() == []


class TestLoadRecordsFile:
    def test_loads_file(self, tmp_path):
        path = tmp_path / "students.json"
        path.write_text(json.dumps(PAYLOAD), encoding="utf-8")
        assert len(load_records_file(str(path))) == 2

    def test_missing_file(self, tmp_path):
        assert len(load_records_file(str(tmp_path / "nope.json"))) == 0

    def test_empty_file(self, tmp_path):
        path = tmp_path / "students.json"
        path.write_text("", encoding="utf-8")
        assert len(load_records_file(str(path))) == 0

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "students.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidRecordError):
            load_records_file(str(path))


class TestHttpRecordSynchronizer:
    @pytest.fixture
    def store(self):
        return SnapshotRecordStore(RecordSnapshot([make_record("5014741")]))

    async def test_sync_replaces_snapshot(self, store, monkeypatch):
        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return FakeResponse(PAYLOAD)

        monkeypatch.setattr(records_module.requests, "get", fake_get)
        sync = HttpRecordSynchronizer(store, "http://registry:3000/", timeout=1.5)
        assert await sync.sync() == 2
        assert calls == [("http://registry:3000/api/students", 1.5)]
        assert store.list_identifiers() == ["2141234", "2245678"]

    @pytest.mark.parametrize(
        "response",
        [
            FakeResponse({}, status_code=500),
            FakeResponse(ValueError("bad json")),
            FakeResponse(["not", "a", "mapping"]),
        ],
    )
    async def test_failures_keep_previous_snapshot(self, store, monkeypatch, response):
        monkeypatch.setattr(records_module.requests, "get", lambda url, timeout: response)
        sync = HttpRecordSynchronizer(store, "http://registry:3000")
        with pytest.raises(RecordSyncError):
            await sync.sync()
        assert store.list_identifiers() == ["5014741"]

    async def test_unreachable_service(self, store, monkeypatch):
        def fake_get(url, timeout):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr(records_module.requests, "get", fake_get)
        with pytest.raises(RecordSyncError, match="connection refused"):
            await HttpRecordSynchronizer(store, "http://registry:3000").sync()

    async def test_disabled_without_url(self, store):
        sync = HttpRecordSynchronizer(store, "")
        assert not sync.enabled
        with pytest.raises(RecordSyncError):
            await sync.sync()
