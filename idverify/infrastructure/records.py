"""Enrolled record snapshots and their synchronization.

The registration service owns the records. The verification core only ever
sees an immutable RecordSnapshot, swapped in whole by ``SnapshotRecordStore.replace``
whenever a sync completes, so a tick never observes a half-updated table.
"""
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests
from pydantic import ValidationError

from idverify.core.config import settings
from idverify.core.exceptions import InvalidRecordError, RecordSyncError
from idverify.core.logging import get_logger
from idverify.domain.entities.identity import (
    EnrolledRecord,
    canonicalize_identifier,
    format_display_id,
    has_year_marker,
    is_canonical_identifier,
)
from idverify.domain.interfaces.storage import RecordStore

logger = get_logger(__name__)


def _face_images(raw: Mapping[str, Any]) -> List[str]:
    images = raw.get("faceImages") or raw.get("face_images")
    if isinstance(images, list) and images:
        return [str(i) for i in images if i]
    single = raw.get("faceImage") or raw.get("face_image")
    return [str(single)] if single else []


def record_from_payload(key: str, raw: Mapping[str, Any]) -> EnrolledRecord:
    """Build an EnrolledRecord from one entry of the registration service payload.

    Args:
        key: Identifier the entry is stored under
        raw: Entry as published by the registration service

    Returns:
        EnrolledRecord with a canonical identifier and normalized image list

    Raises:
        InvalidRecordError: If the entry cannot be converted
    """
    if not isinstance(raw, Mapping):
        raise InvalidRecordError(f"Record {key!r} is not an object")

    identifier = canonicalize_identifier(raw.get("id") or key)
    try:
        return EnrolledRecord(
            identifier=identifier,
            display_id=raw.get("displayId") or format_display_id(identifier),
            name=str(raw.get("name", "")),
            department=str(raw.get("department", "")),
            year=str(raw.get("year", "")),
            email=str(raw.get("email", "")),
            face_images=_face_images(raw),
            reference_descriptors=raw.get("faceDescriptors") or raw.get("reference_descriptors") or [],
            created_at=raw.get("createdAt") or raw.get("created_at"),
        )
    except ValidationError as e:
        raise InvalidRecordError(f"Invalid record {key!r}: {e}", details={"identifier": identifier})


class RecordSnapshot:
    """Immutable set of enrolled records keyed by canonical identifier.

    Records whose identifier is not 7 digits, or whose trailing 4-digit sequence
    collides with an earlier record, are skipped and logged.
    """

    def __init__(self, records: Iterable[EnrolledRecord] = ()) -> None:
        self._records: Dict[str, EnrolledRecord] = {}
        id_numbers: Dict[str, str] = {}
        for record in records:
            if not is_canonical_identifier(record.identifier):
                logger.warning("Skipping record with malformed identifier", identifier=record.identifier)
                continue
            if not has_year_marker(record.identifier):
                logger.debug("Record identifier has no year marker", identifier=record.identifier)
            owner = id_numbers.get(record.id_number)
            if owner is not None:
                logger.warning(
                    "Skipping record with duplicate id number",
                    identifier=record.identifier,
                    conflicts_with=owner,
                )
                continue
            id_numbers[record.id_number] = record.identifier
            self._records[record.identifier] = record
        self.loaded_at = datetime.now(timezone.utc)

    @classmethod
    def from_payload(cls, payload: Any) -> "RecordSnapshot":
        """Build a snapshot from ``{"students": {...}}`` or a bare identifier mapping.

        Raises:
            InvalidRecordError: If the payload is not a mapping of records
        """
        if isinstance(payload, Mapping) and "students" in payload:
            payload = payload["students"]
        if not isinstance(payload, Mapping):
            raise InvalidRecordError("Record payload must be a mapping of identifier to record")

        records = []
        for key, raw in payload.items():
            try:
                records.append(record_from_payload(str(key), raw))
            except InvalidRecordError as e:
                logger.warning("Skipping invalid record", key=key, error=str(e))
        return cls(records)

    def get(self, identifier: str) -> Optional[EnrolledRecord]:
        return self._records.get(canonicalize_identifier(identifier))

    def identifiers(self) -> List[str]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identifier: object) -> bool:
        return canonicalize_identifier(identifier) in self._records


class SnapshotRecordStore(RecordStore):
    """RecordStore backed by a replaceable snapshot.

    The core only reads; an external synchronization step calls ``replace``.
    """

    def __init__(self, snapshot: Optional[RecordSnapshot] = None) -> None:
        self._snapshot = snapshot or RecordSnapshot()

    @property
    def snapshot(self) -> RecordSnapshot:
        return self._snapshot

    def replace(self, snapshot: RecordSnapshot) -> None:
        previous = len(self._snapshot)
        self._snapshot = snapshot
        logger.info("Record snapshot replaced", previous_count=previous, count=len(snapshot))

    def get(self, identifier: str) -> Optional[EnrolledRecord]:
        return self._snapshot.get(identifier)

    def list_identifiers(self) -> List[str]:
        return self._snapshot.identifiers()


def load_records_file(path: str) -> RecordSnapshot:
    """Load a snapshot from the registration service's JSON database file.

    A missing file yields an empty snapshot.

    Raises:
        InvalidRecordError: If the file is not valid JSON
    """
    file_path = Path(path)
    if not file_path.exists():
        logger.warning("Records file not found, starting with no records", path=str(file_path))
        return RecordSnapshot()

    try:
        payload = json.loads(file_path.read_text(encoding="utf-8") or "{}")
    except json.JSONDecodeError as e:
        raise InvalidRecordError(f"Records file is not valid JSON: {e}", details={"path": str(file_path)})

    snapshot = RecordSnapshot.from_payload(payload)
    logger.info("Loaded records file", path=str(file_path), count=len(snapshot))
    return snapshot


class HttpRecordSynchronizer:
    """Pulls the enrolled records from the registration service.

    Example:
        ```python
        store = SnapshotRecordStore()
        sync = HttpRecordSynchronizer(store, "http://localhost:3000")
        await sync.sync()
        ```
    """

    def __init__(
        self,
        store: SnapshotRecordStore,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._store = store
        self.base_url = (settings.RECORDS_SYNC_URL if base_url is None else base_url).rstrip("/")
        self.timeout = settings.RECORDS_SYNC_TIMEOUT if timeout is None else timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _fetch(self) -> Any:
        response = requests.get(f"{self.base_url}/api/students", timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    async def sync(self) -> int:
        """Fetch all records and replace the store's snapshot.

        Returns:
            Number of records in the new snapshot

        Raises:
            RecordSyncError: If the service is unreachable or returns bad data
        """
        if not self.enabled:
            raise RecordSyncError("Record sync URL is not configured")

        try:
            payload = await asyncio.to_thread(self._fetch)
        except (requests.RequestException, ValueError) as e:
            logger.error("Record sync failed", url=self.base_url, error=str(e))
            raise RecordSyncError(f"Failed to sync records: {e}", details={"url": self.base_url})

        try:
            snapshot = RecordSnapshot.from_payload(payload)
        except InvalidRecordError as e:
            raise RecordSyncError(f"Registration service returned invalid records: {e}")

        self._store.replace(snapshot)
        return len(snapshot)
