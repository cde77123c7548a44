"""Service container for dependency injection."""
import importlib
from typing import Any, Iterable, List, Optional

from idverify.core.config import settings
from idverify.core.exceptions import RecordSyncError, ServiceNotInitializedError
from idverify.core.logging import get_logger

# Import interfaces
from idverify.domain.interfaces.capture import FrameSource
from idverify.domain.interfaces.notification import NotificationSink
from idverify.domain.interfaces.recognition import FaceAnalyzer, RegionDetector, TextRecognizer

# Import concrete implementations used for instantiation
from idverify.infrastructure.camera import OpenCVFrameSource
from idverify.infrastructure.detectors import FullFrameRegionDetector
from idverify.infrastructure.notifications import LoggingNotificationSink
from idverify.infrastructure.records import (
    HttpRecordSynchronizer,
    SnapshotRecordStore,
    load_records_file,
)
from idverify.services.face_verification import FaceVerificationStage
from idverify.services.id_scanning import IdentifierScanStage
from idverify.services.orchestrator import VerificationOrchestrator

logger = get_logger(__name__)


def load_component(path: str) -> Any:
    """Build a component from a "package.module:factory" import path.

    Args:
        path: Module path and the name of a class or zero-argument factory in it

    Returns:
        The object returned by calling the factory

    Raises:
        ServiceNotInitializedError: If the path is malformed or cannot be imported
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ServiceNotInitializedError(
            f"Invalid component path '{path}', expected 'package.module:factory'"
        )
    try:
        factory = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as e:
        raise ServiceNotInitializedError(
            f"Cannot load component '{path}'", details={"error": str(e)}
        ) from e
    logger.info("Loading component", path=path)
    return factory()


class ServiceContainer:
    """Container for application services.

    Owns the record store, the capture devices and the verification
    orchestrator. Text recognition and face analysis models are deployment
    specific: they are passed in, or loaded from the TEXT_RECOGNIZER and
    FACE_ANALYZER settings. Without them the record endpoints still work but
    no verification session can run.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize(text_recognizer=ocr, face_analyzer=analyzer)

        orchestrator = container.orchestrator
        await orchestrator.start()
        ```
    """

    def __init__(self) -> None:
        """Initialize empty container."""
        self.record_store: Optional[SnapshotRecordStore] = None
        self.record_synchronizer: Optional[HttpRecordSynchronizer] = None

        self.id_frame_source: Optional[FrameSource] = None
        self.face_frame_source: Optional[FrameSource] = None
        self.region_detector: Optional[RegionDetector] = None
        self.text_recognizer: Optional[TextRecognizer] = None
        self.face_analyzer: Optional[FaceAnalyzer] = None
        self.sinks: List[NotificationSink] = []

        self.orchestrator: Optional[VerificationOrchestrator] = None
        self.initialized = False

    async def initialize(
        self,
        record_store: Optional[SnapshotRecordStore] = None,
        id_frame_source: Optional[FrameSource] = None,
        face_frame_source: Optional[FrameSource] = None,
        region_detector: Optional[RegionDetector] = None,
        text_recognizer: Optional[TextRecognizer] = None,
        face_analyzer: Optional[FaceAnalyzer] = None,
        sinks: Optional[Iterable[NotificationSink]] = None,
    ) -> None:
        """Initialize all services in the correct order."""
        self.record_store = record_store or SnapshotRecordStore(
            load_records_file(settings.RECORDS_FILE)
        )
        self.record_synchronizer = HttpRecordSynchronizer(self.record_store)
        if self.record_synchronizer.enabled:
            try:
                await self.record_synchronizer.sync()
            except RecordSyncError as e:
                # The file snapshot stays in place until the next successful sync
                logger.warning("Initial record sync failed", error=str(e))

        self.id_frame_source = id_frame_source or OpenCVFrameSource(settings.ID_CAMERA_INDEX)
        self.face_frame_source = face_frame_source or OpenCVFrameSource(
            settings.FACE_CAMERA_INDEX, width=640, height=480
        )
        if region_detector is None and settings.REGION_DETECTOR:
            region_detector = load_component(settings.REGION_DETECTOR)
        if text_recognizer is None and settings.TEXT_RECOGNIZER:
            text_recognizer = load_component(settings.TEXT_RECOGNIZER)
        if face_analyzer is None and settings.FACE_ANALYZER:
            face_analyzer = load_component(settings.FACE_ANALYZER)

        self.region_detector = region_detector or FullFrameRegionDetector()
        self.text_recognizer = text_recognizer
        self.face_analyzer = face_analyzer
        self.sinks = [LoggingNotificationSink(), *(sinks or [])]

        if self.text_recognizer is not None and self.face_analyzer is not None:
            id_stage = IdentifierScanStage(
                frame_source=self.id_frame_source,
                region_detector=self.region_detector,
                text_recognizer=self.text_recognizer,
                record_store=self.record_store,
            )
            face_stage = FaceVerificationStage(
                frame_source=self.face_frame_source,
                face_analyzer=self.face_analyzer,
            )
            self.orchestrator = VerificationOrchestrator(
                record_store=self.record_store,
                id_stage=id_stage,
                face_stage=face_stage,
                sinks=self.sinks,
            )
        else:
            logger.warning("Recognition models not configured, verification sessions unavailable")

        self.initialized = True
        logger.info(
            "Initialized service container",
            records=len(self.record_store.snapshot),
            sync_enabled=self.record_synchronizer.enabled,
            verification_enabled=self.orchestrator is not None,
        )

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        if self.orchestrator:
            await self.orchestrator.stop()
            self.orchestrator = None

        self.face_analyzer = None
        self.text_recognizer = None
        self.region_detector = None
        self.id_frame_source = None
        self.face_frame_source = None
        self.sinks = []

        self.record_synchronizer = None
        self.record_store = None
        self.initialized = False


# Global container instance
container = ServiceContainer()
