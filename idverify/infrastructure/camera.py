"""OpenCV camera frame source."""
import asyncio
from typing import Optional

import cv2
import numpy as np

from idverify.core.exceptions import CameraUnavailableError
from idverify.core.logging import get_logger
from idverify.domain.interfaces.capture import FrameSource

logger = get_logger(__name__)


class OpenCVFrameSource(FrameSource):
    """Reads frames from a local camera through cv2.VideoCapture.

    Device calls block, so they run in a worker thread.
    """

    def __init__(self, camera_index: int = 0, width: int = 1280, height: int = 720) -> None:
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self._capture: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def _open_capture(self) -> cv2.VideoCapture:
        capture = cv2.VideoCapture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise CameraUnavailableError(
                "Camera access denied or camera not found",
                details={"camera_index": self.camera_index},
            )
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        return capture

    async def open(self) -> None:
        if self._capture is not None:
            return
        opening = asyncio.ensure_future(asyncio.to_thread(self._open_capture))
        try:
            self._capture = await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; release what it opens
            opening.add_done_callback(self._release_abandoned)
            raise
        logger.info("Opened camera", camera_index=self.camera_index)

    def _release_abandoned(self, opening: asyncio.Future) -> None:
        if opening.cancelled() or opening.exception() is not None:
            return
        opening.result().release()
        logger.info("Released camera opened after cancellation", camera_index=self.camera_index)

    async def read(self) -> Optional[np.ndarray]:
        if self._capture is None:
            raise CameraUnavailableError(
                "Camera is not open", details={"camera_index": self.camera_index}
            )
        success, frame = await asyncio.to_thread(self._capture.read)
        if not success or frame is None:
            logger.debug("Camera frame not ready", camera_index=self.camera_index)
            return None
        return frame

    async def close(self) -> None:
        if self._capture is None:
            return
        capture, self._capture = self._capture, None
        await asyncio.to_thread(capture.release)
        logger.info("Released camera", camera_index=self.camera_index)
