"""Core face and region detection entities."""
from typing import Any, List, Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


class BoundingBox(BaseModel):
    """Bounding box in normalized (0-1) image coordinates."""
    left: float = Field(..., description="Left coordinate of the bounding box")
    top: float = Field(..., description="Top coordinate of the bounding box")
    width: float = Field(..., description="Width of the bounding box")
    height: float = Field(..., description="Height of the bounding box")


class Point(BaseModel):
    """A 2-D landmark position in pixels."""
    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        """Euclidean distance to another point."""
        return float(np.hypot(self.x - other.x, self.y - other.y))


class LandmarkSet(BaseModel):
    """Ordered facial landmark points for one detected face.

    Only a few named indices are read by the liveness gate; the rest are opaque.
    """
    points: List[Point] = Field(default_factory=list, description="Ordered landmark points")

    @field_validator("points", mode="before")
    @classmethod
    def coerce_points(cls, v: Any) -> Any:
        """Accept (x, y) pairs and Nx2 arrays alongside Point objects."""
        if isinstance(v, np.ndarray):
            v = v.tolist()
        if isinstance(v, (list, tuple)):
            return [
                {"x": p[0], "y": p[1]} if isinstance(p, (list, tuple)) else p
                for p in v
            ]
        return v

    def point(self, index: int) -> Optional[Point]:
        """Return the landmark at ``index`` or None when the set is shorter."""
        if 0 <= index < len(self.points):
            return self.points[index]
        return None


def _to_descriptor(v: Optional[Union[np.ndarray, list]]) -> Optional[np.ndarray]:
    if v is None:
        return None
    return np.asarray(v, dtype=np.float64)


class FaceDetection(BaseModel):
    """Face detection result with optional landmarks and descriptor."""
    confidence: float = Field(..., description="Confidence score of the detection")
    bounding_box: BoundingBox = Field(..., description="Bounding box coordinates")
    landmarks: Optional[LandmarkSet] = Field(None, description="Facial landmark points")
    descriptor: Optional[np.ndarray] = Field(None, description="Face descriptor vector")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator('descriptor', mode="before")
    @classmethod
    def validate_descriptor(cls, v: Optional[Union[np.ndarray, list]]) -> Optional[np.ndarray]:
        """Validate and convert descriptor to numpy array if needed."""
        return _to_descriptor(v)


class RegionDetection(BaseModel):
    """Object detector output used to locate the identifier card in a frame."""
    label: str = Field(..., description="Detected object class")
    score: float = Field(..., description="Detection confidence score")
    bounding_box: BoundingBox = Field(..., description="Bounding box coordinates")
