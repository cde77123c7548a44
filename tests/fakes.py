"""In-memory stand-ins for cameras and recognition models used across the tests."""
import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from idverify.core.exceptions import CameraUnavailableError
from idverify.domain.entities.face import BoundingBox, FaceDetection, LandmarkSet, RegionDetection
from idverify.domain.entities.identity import EnrolledRecord
from idverify.domain.interfaces.capture import FrameSource
from idverify.domain.interfaces.notification import NotificationSink
from idverify.domain.interfaces.recognition import FaceAnalyzer, RegionDetector, TextRecognizer
from idverify.domain.value_objects.verification import SessionEvent
from idverify.infrastructure.records import RecordSnapshot, SnapshotRecordStore

DESCRIPTOR_LENGTH = 128
NOSE, LEFT_EYE, RIGHT_EYE = 30, 36, 45


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFrameSource(FrameSource):
    def __init__(self, fail_open: bool = False, fail_read: bool = False) -> None:
        self.fail_open = fail_open
        self.fail_read = fail_read
        self.is_open = False
        self.open_calls = 0
        self.close_calls = 0

    async def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise CameraUnavailableError("Camera access denied or camera not found")
        self.is_open = True

    async def read(self) -> Optional[np.ndarray]:
        if self.fail_read:
            raise CameraUnavailableError("Camera stopped delivering frames")
        if not self.is_open:
            return None
        return np.full((48, 64, 3), 200, dtype=np.uint8)

    async def close(self) -> None:
        self.close_calls += 1
        self.is_open = False


class FakeRegionDetector(RegionDetector):
    def __init__(self, detections: Optional[List[RegionDetection]] = None) -> None:
        self.detections = detections or []

    async def detect(self, frame, max_results=1, min_score=0.25) -> List[RegionDetection]:
        return [d for d in self.detections if d.score >= min_score][:max_results]


class FakeTextRecognizer(TextRecognizer):
    """Returns the queued texts in order, then repeats the last one."""

    def __init__(self, texts: Sequence[str] = ("",)) -> None:
        self.texts = list(texts)
        self.images: List[np.ndarray] = []

    async def recognize(self, image: np.ndarray) -> str:
        self.images.append(image)
        if len(self.texts) > 1:
            return self.texts.pop(0)
        return self.texts[0]


class FakeFaceAnalyzer(FaceAnalyzer):
    """Returns queued detection lists in order, then repeats the last one."""

    def __init__(
        self,
        frames: Optional[Iterable[List[FaceDetection]]] = None,
        references: Optional[Dict[str, Optional[np.ndarray]]] = None,
    ) -> None:
        self.frames = list(frames or [[]])
        self.references = references or {}
        self.described: List[str] = []
        self.error: Optional[Exception] = None
        self.calls = 0

    async def analyze(self, frame: np.ndarray) -> List[FaceDetection]:
        self.calls += 1
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if len(self.frames) > 1:
            return self.frames.pop(0)
        return self.frames[0]

    async def describe_reference(self, image_ref: str) -> Optional[np.ndarray]:
        self.described.append(image_ref)
        if image_ref not in self.references:
            raise FileNotFoundError(image_ref)
        return self.references[image_ref]


class CollectingSink(NotificationSink):
    def __init__(self) -> None:
        self.events: List[SessionEvent] = []

    async def publish(self, event: SessionEvent) -> None:
        self.events.append(event)


def landmarks_for_yaw(yaw: float, points: int = 68) -> LandmarkSet:
    """Landmarks whose estimated yaw (default gain 250) equals ``yaw``.

    Eyes sit 100px apart on one line; moving the nose along that line by
    ``yaw / 5`` pixels from the midpoint gives the requested yaw.
    """
    coords = [(0.0, 0.0)] * points
    coords[LEFT_EYE] = (0.0, 0.0)
    coords[RIGHT_EYE] = (100.0, 0.0)
    coords[NOSE] = (50.0 + yaw / 5.0, 0.0)
    return LandmarkSet(points=coords)


def descriptor_at(distance: float) -> np.ndarray:
    """A descriptor exactly ``distance`` away from the zero reference."""
    vector = np.zeros(DESCRIPTOR_LENGTH)
    vector[0] = distance
    return vector


def face(
    distance: float = 0.3,
    yaw: float = 0.0,
    confidence: float = 0.95,
) -> FaceDetection:
    return FaceDetection(
        confidence=confidence,
        bounding_box=BoundingBox(left=0.2, top=0.2, width=0.5, height=0.6),
        landmarks=landmarks_for_yaw(yaw),
        descriptor=descriptor_at(distance),
    )


def make_record(identifier: str = "5014741", **fields) -> EnrolledRecord:
    fields.setdefault("name", "Ada Lovelace")
    fields.setdefault("reference_descriptors", [np.zeros(DESCRIPTOR_LENGTH)])
    return EnrolledRecord(identifier=identifier, **fields)


def make_store(*records: EnrolledRecord) -> SnapshotRecordStore:
    return SnapshotRecordStore(RecordSnapshot(records))
