"""Frame source interface."""
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np


class FrameSource(ABC):
    """Interface for a camera (or any producer) of video frames."""

    @abstractmethod
    async def open(self) -> None:
        """
        Acquire the underlying device.

        Raises:
            CameraUnavailableError: If the device cannot be opened
        """
        pass

    @abstractmethod
    async def read(self) -> Optional[np.ndarray]:
        """
        Return the current frame as a BGR array.

        Returns:
            The frame, or None when no frame is ready yet
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying device."""
        pass
