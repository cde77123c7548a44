"""Region detector used when no object detection model is configured."""
from typing import List

import numpy as np

from idverify.domain.entities.face import RegionDetection
from idverify.domain.interfaces.recognition import RegionDetector


class FullFrameRegionDetector(RegionDetector):
    """Never detects a region, so the identifier stage reads the full frame."""

    async def detect(
        self,
        frame: np.ndarray,
        max_results: int = 1,
        min_score: float = 0.25,
    ) -> List[RegionDetection]:
        return []
