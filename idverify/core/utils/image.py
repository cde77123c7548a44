"""
Image processing utility functions.
"""
import cv2
import numpy as np

from idverify.domain.entities.face import BoundingBox


def crop_region(image: np.ndarray, bounding_box: BoundingBox) -> np.ndarray:
    """Crop a normalized bounding box out of an image.

    Args:
        image: Image as a numpy array (H x W or H x W x C)
        bounding_box: Region in normalized (0-1) coordinates

    Returns:
        numpy.ndarray: The cropped region, or the full image if the region is empty
    """
    height, width = image.shape[:2]
    x1 = max(0, int(bounding_box.left * width))
    y1 = max(0, int(bounding_box.top * height))
    x2 = min(width, int((bounding_box.left + bounding_box.width) * width))
    y2 = min(height, int((bounding_box.top + bounding_box.height) * height))

    if x2 <= x1 or y2 <= y1:
        return image
    return image[y1:y2, x1:x2]


def binarize_for_ocr(image: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Convert to grayscale and apply a hard binary threshold.

    Pixels brighter than ``threshold`` become white, everything else black,
    which gives the OCR engine sharp glyph edges on printed cards.

    Args:
        image: BGR or grayscale image
        threshold: Gray level separating black from white

    Returns:
        numpy.ndarray: Single channel uint8 image containing only 0 and 255
    """
    if image.ndim == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    else:
        gray = image
    if gray.dtype != np.uint8:
        gray = np.clip(gray, 0, 255).astype(np.uint8)

    _, binary = cv2.threshold(gray, threshold, 255, cv2.THRESH_BINARY)
    return binary
