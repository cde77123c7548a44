"""Head-turn liveness gate.

A printed photo held in front of the camera cannot turn its head. Before any
descriptor comparison the subject must be seen turned past the yaw threshold
in both directions. Yaw is estimated from three landmarks:

    yaw = clamp(((|nose - leftEye| - |nose - rightEye|) / |leftEye - rightEye|) * gain, -100, 100)

Which physical direction a positive yaw means depends on whether the camera
image is mirrored, so the sign is a setting rather than a constant.
"""
from typing import Optional

from idverify.core.config import settings
from idverify.core.logging import get_logger
from idverify.domain.entities.face import LandmarkSet
from idverify.domain.value_objects.verification import LivenessStatus

logger = get_logger(__name__)

YAW_LIMIT = 100.0


def estimate_yaw(
    landmarks: Optional[LandmarkSet],
    gain: Optional[float] = None,
    min_eye_distance: Optional[float] = None,
    nose_index: Optional[int] = None,
    left_eye_index: Optional[int] = None,
    right_eye_index: Optional[int] = None,
) -> float:
    """Estimate head yaw on a -100..100 scale.

    Args:
        landmarks: Landmark set of a single face
        gain: Multiplier applied to the normalized distance difference
        min_eye_distance: Eye distances below this (pixels) are degenerate
        nose_index: Landmark index of the nose tip
        left_eye_index: Landmark index of the left eye outer corner
        right_eye_index: Landmark index of the right eye outer corner

    Returns:
        The clamped yaw score, or 0 when the landmarks are missing or degenerate
    """
    if landmarks is None:
        return 0.0

    gain = settings.YAW_GAIN if gain is None else gain
    min_eye_distance = settings.MIN_EYE_DISTANCE if min_eye_distance is None else min_eye_distance

    nose = landmarks.point(settings.NOSE_TIP_INDEX if nose_index is None else nose_index)
    left_eye = landmarks.point(settings.LEFT_EYE_OUTER_INDEX if left_eye_index is None else left_eye_index)
    right_eye = landmarks.point(settings.RIGHT_EYE_OUTER_INDEX if right_eye_index is None else right_eye_index)
    if nose is None or left_eye is None or right_eye is None:
        return 0.0

    eye_distance = left_eye.distance_to(right_eye)
    if eye_distance < min_eye_distance:
        return 0.0

    ratio = (nose.distance_to(left_eye) - nose.distance_to(right_eye)) / eye_distance
    return max(-YAW_LIMIT, min(YAW_LIMIT, ratio * gain))


class LivenessGate:
    """Tracks which head turns have been observed during the current face stage.

    Once both turns are seen the gate stays open until ``reset``.
    """

    def __init__(
        self,
        threshold: Optional[float] = None,
        mirrored: Optional[bool] = None,
        gain: Optional[float] = None,
    ) -> None:
        self.threshold = settings.YAW_THRESHOLD if threshold is None else threshold
        self.mirrored = settings.YAW_MIRRORED if mirrored is None else mirrored
        self.gain = gain
        self.passed_left = False
        self.passed_right = False
        self.passed = False
        self.last_yaw = 0.0

    def reset(self) -> None:
        self.passed_left = False
        self.passed_right = False
        self.passed = False
        self.last_yaw = 0.0

    def observe(self, landmarks: Optional[LandmarkSet]) -> LivenessStatus:
        """Estimate yaw from a landmark set and record any completed turn."""
        return self.observe_yaw(estimate_yaw(landmarks, gain=self.gain))

    def observe_yaw(self, yaw: float) -> LivenessStatus:
        """Record a yaw sample.

        Args:
            yaw: Yaw score as produced by ``estimate_yaw``

        Returns:
            The gate status after this sample
        """
        self.last_yaw = yaw
        if self.passed:
            return self.status()

        oriented = -yaw if self.mirrored else yaw
        if oriented >= self.threshold and not self.passed_left:
            self.passed_left = True
            logger.debug("Liveness left turn observed", yaw=yaw)
        if oriented <= -self.threshold and not self.passed_right:
            self.passed_right = True
            logger.debug("Liveness right turn observed", yaw=yaw)

        if self.passed_left and self.passed_right:
            self.passed = True
            logger.info("Liveness challenge passed")

        return self.status()

    def status(self) -> LivenessStatus:
        return LivenessStatus(
            yaw=self.last_yaw,
            passed_left=self.passed_left,
            passed_right=self.passed_right,
            passed=self.passed,
        )
