"""Region detection and text recognition interfaces."""
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ...entities.face import RegionDetection


class RegionDetector(ABC):
    """Interface for the object detector that locates the identifier card."""

    @abstractmethod
    async def detect(
        self,
        frame: np.ndarray,
        max_results: int = 1,
        min_score: float = 0.25,
    ) -> List[RegionDetection]:
        """
        Detect candidate regions in a frame.

        Args:
            frame: BGR image array
            max_results: Maximum number of detections to return
            min_score: Minimum confidence score

        Returns:
            Detections ordered by descending score
        """
        pass


class TextRecognizer(ABC):
    """Interface for the OCR engine."""

    @abstractmethod
    async def recognize(self, image: np.ndarray) -> str:
        """
        Recognize text in an image region.

        Args:
            image: Image region, grayscale or BGR

        Returns:
            Raw recognized text with no structure guaranteed
        """
        pass
