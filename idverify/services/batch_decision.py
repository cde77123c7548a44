"""Multi-frame acceptance decision.

A single frame's distance moves with pose, lighting and blur, so acceptance
is decided over a short batch. A batch passes only when its median distance
is within the threshold and enough individual frames are, which rejects both
a single lucky frame and a consistently borderline face.
"""
import math
import time
from typing import Callable, List, Optional, Sequence

from idverify.core.config import settings
from idverify.core.logging import get_logger
from idverify.domain.value_objects.verification import BatchDecision, Matched, NotMatched

logger = get_logger(__name__)


def decide_batch(
    samples: Sequence[float],
    threshold: Optional[float] = None,
    required_good: Optional[int] = None,
) -> BatchDecision:
    """Decide a batch of distance samples.

    Args:
        samples: Accepted distance samples in arrival order
        threshold: Maximum distance of a good frame and of the median
        required_good: Minimum number of good frames

    Returns:
        BatchDecision with the median (element ``n // 2`` of the sorted samples),
        the good-frame count and whether the batch passed
    """
    threshold = settings.DISTANCE_THRESHOLD if threshold is None else threshold
    required_good = settings.REQUIRED_GOOD_FRAMES if required_good is None else required_good

    ordered = sorted(samples)
    if not ordered:
        return BatchDecision(passed=False, median=None, good_count=0, total=0)

    median = ordered[len(ordered) // 2]
    good = sum(1 for d in ordered if d <= threshold)
    return BatchDecision(
        passed=median <= threshold and good >= required_good,
        median=median,
        good_count=good,
        total=len(ordered),
    )


class BatchDecisionEngine:
    """Collects distance samples for one matching attempt at a time.

    Example:
        ```python
        engine = BatchDecisionEngine()
        if not engine.active and engine.can_start():
            engine.start()
        engine.add_sample(distance)
        if engine.should_close():
            decision = engine.close()
        ```
    """

    def __init__(
        self,
        threshold: Optional[float] = None,
        required_good: Optional[int] = None,
        max_samples: Optional[int] = None,
        timeout: Optional[float] = None,
        min_interval: Optional[float] = None,
        max_valid_distance: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = settings.DISTANCE_THRESHOLD if threshold is None else threshold
        self.required_good = settings.REQUIRED_GOOD_FRAMES if required_good is None else required_good
        self.max_samples = settings.MAX_SAMPLES if max_samples is None else max_samples
        self.timeout = settings.BATCH_TIMEOUT if timeout is None else timeout
        self.min_interval = settings.MIN_BATCH_INTERVAL if min_interval is None else min_interval
        self.max_valid_distance = (
            settings.MAX_VALID_DISTANCE if max_valid_distance is None else max_valid_distance
        )
        self._clock = clock
        self._started_at: Optional[float] = None
        self._last_started_at: Optional[float] = None
        self._samples: List[float] = []

    @property
    def active(self) -> bool:
        return self._started_at is not None

    @property
    def samples(self) -> List[float]:
        return list(self._samples)

    def can_start(self) -> bool:
        """Whether enough time has passed since the previous batch started."""
        if self._last_started_at is None:
            return True
        return self._clock() - self._last_started_at >= self.min_interval

    def start(self) -> None:
        now = self._clock()
        self._started_at = now
        self._last_started_at = now
        self._samples = []

    def abandon(self) -> None:
        """Drop the open batch without deciding it."""
        self._started_at = None
        self._samples = []

    def reset(self) -> None:
        """Forget the open batch and the throttle history."""
        self.abandon()
        self._last_started_at = None

    def add_sample(self, distance: float) -> bool:
        """Record a distance if it lies in the open interval (0, max_valid_distance).

        Returns:
            True if the sample was kept
        """
        if not self.active:
            return False
        if not math.isfinite(distance) or not 0 < distance < self.max_valid_distance:
            logger.debug("Discarded out of range distance", distance=distance)
            return False
        self._samples.append(distance)
        return True

    def should_close(self) -> bool:
        if not self.active:
            return False
        if len(self._samples) >= self.max_samples:
            return True
        return self._clock() - self._started_at >= self.timeout

    def close(self) -> BatchDecision:
        """Decide the open batch and clear it."""
        decision = decide_batch(self._samples, self.threshold, self.required_good)
        logger.info(
            "Batch decided",
            passed=decision.passed,
            median=decision.median,
            good_count=decision.good_count,
            total=decision.total,
        )
        self.abandon()
        return decision

    def verdict(self, decision: BatchDecision, confidence: float):
        """Turn a batch decision into a Matched or NotMatched verdict."""
        if decision.passed:
            return Matched(similarity=1.0 - decision.median, confidence=confidence)
        if decision.total == 0:
            return NotMatched(reason="No usable samples collected before timeout")
        if decision.median > self.threshold:
            return NotMatched(
                reason=f"Median distance {decision.median:.3f} above threshold {self.threshold:.2f}"
            )
        return NotMatched(
            reason=f"Only {decision.good_count} good frames, {self.required_good} required"
        )
