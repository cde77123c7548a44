"""Descriptor distance computations.

All functions fail closed: anything that cannot be compared as two complete
vectors of equal length yields an infinite distance rather than an error.
"""
import math
from typing import Iterable, Optional

import numpy as np

from idverify.core.config import settings


def _as_vector(descriptor: Optional[object], length: Optional[int]) -> Optional[np.ndarray]:
    if descriptor is None:
        return None
    try:
        vector = np.asarray(descriptor, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if vector.ndim != 1 or vector.size == 0:
        return None
    if length is not None and vector.shape[0] != length:
        return None
    if not np.all(np.isfinite(vector)):
        return None
    return vector


def euclidean_distance(
    a: Optional[object],
    b: Optional[object],
    length: Optional[int] = None,
) -> float:
    """Euclidean distance between two descriptors.

    Args:
        a: First descriptor
        b: Second descriptor
        length: Required descriptor length; None only requires equal lengths

    Returns:
        The distance, or ``math.inf`` when either descriptor is missing,
        malformed or the lengths differ
    """
    va = _as_vector(a, length)
    vb = _as_vector(b, length)
    if va is None or vb is None or va.shape != vb.shape:
        return math.inf
    return float(np.linalg.norm(va - vb))


def min_distance(
    live: Optional[object],
    references: Iterable[object],
    length: Optional[int] = None,
) -> float:
    """Smallest distance from a live descriptor to any reference descriptor.

    Args:
        live: Descriptor of the face in the current frame
        references: Enrolled reference descriptors
        length: Required descriptor length (defaults to DESCRIPTOR_LENGTH)

    Returns:
        The minimum distance, ``math.inf`` when nothing could be compared
    """
    length = settings.DESCRIPTOR_LENGTH if length is None else length
    best = math.inf
    for reference in references:
        best = min(best, euclidean_distance(live, reference, length))
    return best


def display_similarity(distance: float) -> float:
    """Map a distance to a 0-1 similarity for display. Not an acceptance criterion."""
    if not math.isfinite(distance):
        return 0.0
    return max(0.0, min(1.0, 1.0 - distance))
