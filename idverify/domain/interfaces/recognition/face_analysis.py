"""Face analysis interface."""
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from ...entities.face import FaceDetection


class FaceAnalyzer(ABC):
    """Interface for the face detection, landmark and descriptor model."""

    @abstractmethod
    async def analyze(self, frame: np.ndarray) -> List[FaceDetection]:
        """
        Detect every face in a frame.

        Args:
            frame: BGR image array

        Returns:
            One FaceDetection per face, each with confidence, bounding box,
            landmark set and descriptor. Empty when no face is found.
        """
        pass

    @abstractmethod
    async def describe_reference(self, image_ref: str) -> Optional[np.ndarray]:
        """
        Compute the descriptor of the single face in an enrolled reference image.

        Args:
            image_ref: Location of the reference image (path or URL)

        Returns:
            The descriptor, or None if the image holds no detectable face
        """
        pass
