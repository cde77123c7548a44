from .face_analysis import FaceAnalyzer
from .text_recognition import RegionDetector, TextRecognizer

__all__ = ["FaceAnalyzer", "RegionDetector", "TextRecognizer"]
