"""Domain entities package."""
from .face import BoundingBox, FaceDetection, LandmarkSet, Point, RegionDetection
from .identity import (
    EnrolledRecord,
    canonicalize_identifier,
    format_display_id,
    has_year_marker,
    is_canonical_identifier,
)

__all__ = [
    "BoundingBox",
    "EnrolledRecord",
    "FaceDetection",
    "LandmarkSet",
    "Point",
    "RegionDetection",
    "canonicalize_identifier",
    "format_display_id",
    "has_year_marker",
    "is_canonical_identifier",
]
