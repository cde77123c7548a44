"""Face stage: liveness challenge followed by batched descriptor matching."""
import math
from typing import List, Optional

import numpy as np

from idverify.core.config import settings
from idverify.core.exceptions import ReferenceUnavailableError
from idverify.core.logging import get_logger
from idverify.domain.entities.face import FaceDetection
from idverify.domain.entities.identity import EnrolledRecord
from idverify.domain.interfaces.capture import FrameSource
from idverify.domain.interfaces.recognition import FaceAnalyzer
from idverify.domain.value_objects.verification import (
    FaceTickOutcome,
    FaceTickStatus,
    NotMatched,
)
from idverify.services.batch_decision import BatchDecisionEngine
from idverify.services.liveness import LivenessGate
from idverify.services.similarity import display_similarity, min_distance

logger = get_logger(__name__)


class FaceVerificationStage:
    """Per-tick work of the face stage.

    This stage:
    1. Requires exactly one face in the frame
    2. Holds matching back until the liveness gate has seen both head turns
    3. Feeds per-frame distances into the batch decision engine
    4. Counts failed batches and gives up after ``max_failed_attempts``

    ``analyze`` is the asynchronous inference run by the scheduler;
    ``evaluate`` applies its result and must only be called for current ticks.

    Example:
        ```python
        stage = FaceVerificationStage(camera, analyzer)
        await stage.open()
        await stage.prepare(record)
        detections = await stage.analyze()
        outcome = stage.evaluate(detections)
        ```
    """

    def __init__(
        self,
        frame_source: FrameSource,
        face_analyzer: FaceAnalyzer,
        gate: Optional[LivenessGate] = None,
        engine: Optional[BatchDecisionEngine] = None,
        max_failed_attempts: Optional[int] = None,
        min_confidence: Optional[float] = None,
        descriptor_length: Optional[int] = None,
    ) -> None:
        """Initialize the face stage.

        Args:
            frame_source: Camera facing the subject
            face_analyzer: Face detection, landmark and descriptor model
            gate: Liveness gate (a default one is built from settings)
            engine: Batch decision engine (a default one is built from settings)
            max_failed_attempts: Failed batches before the stage is exhausted
            min_confidence: Faces below this detection score are ignored
            descriptor_length: Expected descriptor length
        """
        self._frame_source = frame_source
        self._face_analyzer = face_analyzer
        self.gate = gate or LivenessGate()
        self.engine = engine or BatchDecisionEngine()
        self.max_failed_attempts = (
            settings.MAX_FAILED_ATTEMPTS if max_failed_attempts is None else max_failed_attempts
        )
        self.min_confidence = (
            settings.FACE_MIN_CONFIDENCE if min_confidence is None else min_confidence
        )
        self.descriptor_length = (
            settings.DESCRIPTOR_LENGTH if descriptor_length is None else descriptor_length
        )
        self.references: List[np.ndarray] = []
        self.failed_attempts = 0
        self._final_outcome: Optional[FaceTickOutcome] = None

    @property
    def finished(self) -> bool:
        return self._final_outcome is not None

    async def open(self) -> None:
        await self._frame_source.open()

    async def close(self) -> None:
        await self._frame_source.close()

    def reset(self) -> None:
        """Clear liveness progress, the open batch and the failure counter."""
        self.gate.reset()
        self.engine.reset()
        self.failed_attempts = 0
        self._final_outcome = None

    async def prepare(self, record: EnrolledRecord) -> int:
        """Load the reference descriptors of the enrolled record and reset the stage.

        Precomputed descriptors are used when present; otherwise each reference
        image is described by the face analyzer. Images without a detectable
        face are skipped.

        Args:
            record: The record resolved by the identifier stage

        Returns:
            Number of usable reference descriptors

        Raises:
            ReferenceUnavailableError: If no usable reference descriptor exists
        """
        references = [
            d for d in record.reference_descriptors
            if d.ndim == 1 and d.shape[0] == self.descriptor_length
        ]

        if not references:
            for image_ref in record.face_images:
                try:
                    descriptor = await self._face_analyzer.describe_reference(image_ref)
                except Exception as e:
                    logger.warning(
                        "Failed to describe reference image",
                        image=image_ref,
                        error=str(e),
                    )
                    continue
                if descriptor is None:
                    logger.warning("No face found in reference image", image=image_ref)
                    continue
                references.append(np.asarray(descriptor, dtype=np.float64))

        if not references:
            raise ReferenceUnavailableError(
                "No face found in any reference image",
                details={"identifier": record.identifier, "images": list(record.face_images)},
            )

        self.references = references
        self.reset()
        logger.info(
            "Loaded reference descriptors",
            identifier=record.identifier,
            count=len(references),
        )
        return len(references)

    async def analyze(self) -> Optional[List[FaceDetection]]:
        """Capture a frame and detect faces, or return None if no frame was ready."""
        frame = await self._frame_source.read()
        if frame is None:
            return None
        detections = await self._face_analyzer.analyze(frame)
        return [d for d in detections if d.confidence >= self.min_confidence]

    def evaluate(self, detections: List[FaceDetection]) -> FaceTickOutcome:
        """Apply one frame's detections to the liveness gate and batch engine.

        Args:
            detections: Faces found in the frame

        Returns:
            FaceTickOutcome describing what this frame did
        """
        if self._final_outcome is not None:
            return self._final_outcome

        if not detections:
            self.engine.abandon()
            return self._outcome(FaceTickStatus.NO_FACE, "Please look at the camera")

        if len(detections) > 1:
            self.engine.abandon()
            return self._outcome(
                FaceTickStatus.MULTIPLE_FACES, "Multiple faces detected, one person only"
            )

        detection = detections[0]
        was_passed = self.gate.passed
        liveness = self.gate.observe(detection.landmarks)

        if not was_passed:
            self.engine.abandon()
            if liveness.passed:
                return self._outcome(FaceTickStatus.LIVENESS_PASSED, "Liveness OK. Hold still...")
            turns = " and ".join(t.upper() for t in liveness.pending_turns)
            return self._outcome(FaceTickStatus.LIVENESS_PENDING, f"Liveness: turn {turns}")

        if not self.engine.active:
            if not self.engine.can_start():
                return self._outcome(FaceTickStatus.THROTTLED, "Hold still...")
            self.engine.start()

        distance = min_distance(detection.descriptor, self.references, self.descriptor_length)
        similarity = display_similarity(distance)
        self.engine.add_sample(distance)

        if not self.engine.should_close():
            if math.isinf(distance):
                return self._outcome(
                    FaceTickStatus.NO_DESCRIPTOR, "Face not readable, hold still", similarity=similarity
                )
            return self._outcome(
                FaceTickStatus.COLLECTING, "Verifying... hold still", similarity=similarity
            )

        decision = self.engine.close()
        verdict = self.engine.verdict(decision, detection.confidence)

        if decision.passed:
            outcome = self._outcome(
                FaceTickStatus.MATCHED,
                "Verified",
                similarity=similarity,
                verdict=verdict,
                decision=decision,
            )
            self._final_outcome = outcome
            return outcome

        self.failed_attempts += 1
        attempts_left = max(0, self.max_failed_attempts - self.failed_attempts)
        logger.info(
            "Matching attempt failed",
            failed_attempts=self.failed_attempts,
            attempts_left=attempts_left,
            reason=verdict.reason,
        )

        if self.failed_attempts >= self.max_failed_attempts:
            outcome = self._outcome(
                FaceTickStatus.EXHAUSTED,
                "Verification failed",
                similarity=similarity,
                verdict=NotMatched(reason="Face verification failed: exceeded max attempts"),
                decision=decision,
            )
            self._final_outcome = outcome
            return outcome

        return self._outcome(
            FaceTickStatus.ATTEMPT_FAILED,
            f"Not a match yet, try again ({attempts_left} left)",
            similarity=similarity,
            verdict=verdict,
            decision=decision,
        )

    def _outcome(self, status: FaceTickStatus, message: str, **fields) -> FaceTickOutcome:
        return FaceTickOutcome(
            status=status,
            message=message,
            liveness=self.gate.status(),
            failed_attempts=self.failed_attempts,
            attempts_left=max(0, self.max_failed_attempts - self.failed_attempts),
            **fields,
        )
