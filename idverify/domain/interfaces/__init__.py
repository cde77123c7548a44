"""Service interfaces package."""
from .capture import FrameSource
from .notification import NotificationSink
from .recognition import FaceAnalyzer, RegionDetector, TextRecognizer
from .storage import RecordStore

__all__ = [
    "FaceAnalyzer",
    "FrameSource",
    "NotificationSink",
    "RecordStore",
    "RegionDetector",
    "TextRecognizer",
]
