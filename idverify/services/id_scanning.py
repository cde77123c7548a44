"""Identifier stage: read the printed identifier off a card held to the camera."""
from typing import Optional

import numpy as np

from idverify.core.config import settings
from idverify.core.logging import get_logger
from idverify.core.utils.image import binarize_for_ocr, crop_region
from idverify.domain.interfaces.capture import FrameSource
from idverify.domain.interfaces.recognition import RegionDetector, TextRecognizer
from idverify.domain.interfaces.storage import RecordStore
from idverify.services.text_matching import find_identifier

logger = get_logger(__name__)


class IdentifierScanStage:
    """Per-tick work of the identifier stage.

    ``recognize`` is the asynchronous part run by the scheduler (frame capture,
    region detection, OCR). ``match`` is the synchronous reconciliation applied
    to its result against the current record snapshot.

    Example:
        ```python
        stage = IdentifierScanStage(camera, detector, ocr, record_store)
        await stage.open()
        text = await stage.recognize()
        identifier = stage.match(text)
        ```
    """

    def __init__(
        self,
        frame_source: FrameSource,
        region_detector: RegionDetector,
        text_recognizer: TextRecognizer,
        record_store: RecordStore,
        region_label: Optional[str] = None,
        min_region_score: Optional[float] = None,
        binary_threshold: Optional[int] = None,
    ) -> None:
        """Initialize the identifier stage.

        Args:
            frame_source: Camera facing the card
            region_detector: Detector used to crop the card out of the frame
            text_recognizer: OCR engine
            record_store: Source of the known identifiers
            region_label: Only crop detections with this label (None accepts any)
            min_region_score: Minimum detector score for a crop
            binary_threshold: Gray level used when binarizing for OCR
        """
        self._frame_source = frame_source
        self._region_detector = region_detector
        self._text_recognizer = text_recognizer
        self._record_store = record_store
        self.region_label = settings.ID_REGION_LABEL if region_label is None else region_label
        self.min_region_score = (
            settings.ID_REGION_MIN_SCORE if min_region_score is None else min_region_score
        )
        self.binary_threshold = (
            settings.OCR_BINARY_THRESHOLD if binary_threshold is None else binary_threshold
        )
        self.scan_count = 0

    async def open(self) -> None:
        self.scan_count = 0
        await self._frame_source.open()

    async def close(self) -> None:
        await self._frame_source.close()

    async def _select_region(self, frame: np.ndarray) -> np.ndarray:
        detections = await self._region_detector.detect(
            frame, max_results=1, min_score=self.min_region_score
        )
        if detections:
            detection = detections[0]
            if self.region_label is None or detection.label == self.region_label:
                logger.debug(
                    "Using detected card region",
                    label=detection.label,
                    score=detection.score,
                )
                return crop_region(frame, detection.bounding_box)
        logger.debug("No card region detected, using full frame")
        return frame

    async def recognize(self) -> Optional[str]:
        """Capture a frame and return the raw OCR text, or None if no frame was ready."""
        frame = await self._frame_source.read()
        if frame is None:
            return None

        self.scan_count += 1
        region = await self._select_region(frame)
        prepared = binarize_for_ocr(region, self.binary_threshold)
        text = await self._text_recognizer.recognize(prepared)
        logger.debug("Recognized text", scan=self.scan_count, text=text)
        return text

    def match(self, text: Optional[str]) -> Optional[str]:
        """Reconcile recognized text against the identifiers enrolled right now."""
        if not text:
            return None
        return find_identifier(text, self._record_store.list_identifiers())
