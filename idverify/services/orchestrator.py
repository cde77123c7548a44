"""Verification session state machine.

Valid transitions:
    SCANNING_ID    -> VERIFYING_FACE   (identifier found in the record store)
    SCANNING_ID    -> FAILED_ID        (identifier not found)
    VERIFYING_FACE -> SUCCESS          (a batch passed)
    VERIFYING_FACE -> FAILED_FACE      (max failed batches reached)
    VERIFYING_FACE -> FAILED_MISMATCH  (identity conflict reported across stages)
    any state      -> SCANNING_ID      (reset)

Terminal states only leave through ``reset``. Stage results are applied by
the stage schedulers in completion order and tagged with the session epoch,
so a result produced for a superseded stage never changes the current state.
"""
import asyncio
from typing import Iterable, List, Optional, Tuple, Union

from idverify.core.config import settings
from idverify.core.exceptions import CapabilityUnavailableError, InvalidTransitionError
from idverify.core.logging import get_logger
from idverify.domain.entities.face import FaceDetection
from idverify.domain.entities.identity import (
    EnrolledRecord,
    canonicalize_identifier,
    format_display_id,
)
from idverify.domain.interfaces.notification import NotificationSink
from idverify.domain.interfaces.storage import RecordStore
from idverify.domain.value_objects.verification import (
    EventKind,
    FaceTickOutcome,
    FaceTickStatus,
    LivenessStatus,
    Matched,
    SessionEvent,
    SessionSnapshot,
    VerificationResult,
    VerificationState,
)
from idverify.services.face_verification import FaceVerificationStage
from idverify.services.id_scanning import IdentifierScanStage
from idverify.services.scheduler import ScanScheduler

logger = get_logger(__name__)

_TRANSITIONS = {
    VerificationState.SCANNING_ID: {
        VerificationState.VERIFYING_FACE,
        VerificationState.FAILED_ID,
    },
    VerificationState.VERIFYING_FACE: {
        VerificationState.SUCCESS,
        VerificationState.FAILED_FACE,
        VerificationState.FAILED_MISMATCH,
    },
}


class VerificationOrchestrator:
    """Composes the identifier stage and the face stage into one verification session.

    Outcomes are published as SessionEvent objects to the configured sinks and
    to every queue handed out by ``subscribe``.

    Example:
        ```python
        orchestrator = VerificationOrchestrator(record_store, id_stage, face_stage)
        events = orchestrator.subscribe()
        await orchestrator.start()
        event = await events.get()
        ```
    """

    def __init__(
        self,
        record_store: RecordStore,
        id_stage: IdentifierScanStage,
        face_stage: FaceVerificationStage,
        sinks: Optional[Iterable[NotificationSink]] = None,
        id_interval: Optional[float] = None,
        face_interval: Optional[float] = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            record_store: Read-only enrolled records
            id_stage: Identifier stage
            face_stage: Face stage
            sinks: Consumers of session events
            id_interval: Seconds between identifier scan ticks
            face_interval: Seconds between face ticks
        """
        self._record_store = record_store
        self._id_stage = id_stage
        self._face_stage = face_stage
        self._sinks: List[NotificationSink] = list(sinks or [])
        self._subscribers: List[asyncio.Queue] = []
        self._epoch = 0
        self._running = False

        self._id_scheduler = ScanScheduler(
            "identifier",
            settings.ID_SCAN_INTERVAL if id_interval is None else id_interval,
            self._scan_identifier,
            self._apply_identifier_scan,
        )
        self._face_scheduler = ScanScheduler(
            "face",
            settings.FACE_SCAN_INTERVAL if face_interval is None else face_interval,
            self._scan_face,
            self._apply_face_scan,
        )
        self._clear_session()

    def _clear_session(self) -> None:
        self.state = VerificationState.SCANNING_ID
        self.identifier: Optional[str] = None
        self.record: Optional[EnrolledRecord] = None
        self.result: Optional[VerificationResult] = None
        self.status = ""
        self.error: Optional[str] = None
        self.failed_attempts = 0
        self.liveness = LivenessStatus()

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start (or, after a session error, re-initiate) the current stage."""
        if self._running and self.error is None:
            return
        self._running = True
        self.error = None
        logger.info("Starting verification session", state=self.state.value)
        await self._enter_stage()

    async def stop(self) -> None:
        """Stop both stages; session state is kept."""
        self._running = False
        await self._leave_stages()
        logger.info("Stopped verification session", state=self.state.value)

    async def reset(self) -> None:
        """Clear the whole session and return to SCANNING_ID.

        Valid from every state. Calling it repeatedly is equivalent to calling it once.
        """
        await self._leave_stages()
        self._face_stage.reset()
        self._clear_session()
        self._epoch += 1
        logger.info("Reset verification session")
        await self._publish(SessionEvent(
            kind=EventKind.STATE_CHANGED,
            state=self.state,
            message="Session reset",
        ))
        if self._running:
            await self._enter_stage()

    async def _enter_stage(self) -> None:
        try:
            if self.state == VerificationState.SCANNING_ID:
                await self._id_stage.open()
                self._id_scheduler.start()
                await self._set_status("Scanning for identifier...")
            elif self.state == VerificationState.VERIFYING_FACE:
                await self._face_stage.open()
                await self._face_stage.prepare(self.record)
                self._face_scheduler.start()
                await self._set_status("Look at the camera")
        except CapabilityUnavailableError as e:
            await self._fail_session(e)

    async def _leave_stages(self) -> None:
        self._id_scheduler.stop()
        self._face_scheduler.stop()
        for stage in (self._id_stage, self._face_stage):
            try:
                await stage.close()
            except Exception as e:
                logger.warning("Failed to close stage", error=str(e))

    async def _fail_session(self, error: CapabilityUnavailableError) -> None:
        """Surface a resource failure. Nothing is retried until a human re-initiates."""
        await self._leave_stages()
        self.error = str(error)
        logger.error(
            "Verification session error",
            state=self.state.value,
            error=self.error,
            details=error.details,
        )
        await self._publish(SessionEvent(
            kind=EventKind.ERROR,
            state=self.state,
            identifier=self.identifier,
            message=self.error,
        ))

    # -- Transitions --------------------------------------------------------

    async def _transition(self, target: VerificationState, message: str = "") -> None:
        if target not in _TRANSITIONS.get(self.state, set()):
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {target.value}",
                details={"from": self.state.value, "to": target.value},
            )
        logger.info(
            "Verification state changed",
            previous=self.state.value,
            state=target.value,
            identifier=self.identifier,
        )
        self.state = target
        self._epoch += 1
        self.status = message
        await self._publish(SessionEvent(
            kind=EventKind.STATE_CHANGED,
            state=target,
            identifier=self.identifier,
            message=message,
            result=self.result,
        ))

    async def handle_identifier(self, identifier: str) -> VerificationState:
        """Resolve an identifier read by the identifier stage.

        Args:
            identifier: Identifier returned by the text matcher

        Returns:
            The state after handling
        """
        if self.state != VerificationState.SCANNING_ID:
            logger.warning("Ignoring identifier outside of scanning", state=self.state.value)
            return self.state

        self._id_scheduler.stop()
        await self._id_stage.close()

        canonical = canonicalize_identifier(identifier)
        record = self._record_store.get(canonical)
        self.identifier = canonical

        if record is None:
            logger.warning("Identifier not enrolled", identifier=canonical)
            await self._transition(
                VerificationState.FAILED_ID,
                f"Identifier {format_display_id(canonical)} not found",
            )
            return self.state

        self.record = record
        await self._transition(
            VerificationState.VERIFYING_FACE,
            f"Identifier {record.display_id or format_display_id(canonical)} found",
        )
        if self._running:
            await self._enter_stage()
        return self.state

    async def handle_face_outcome(self, outcome: FaceTickOutcome) -> VerificationState:
        """Apply the outcome of one face stage tick.

        Args:
            outcome: Result of FaceVerificationStage.evaluate

        Returns:
            The state after handling
        """
        if self.state != VerificationState.VERIFYING_FACE:
            logger.warning("Ignoring face outcome outside of face stage", state=self.state.value)
            return self.state

        self.failed_attempts = outcome.failed_attempts
        self.liveness = outcome.liveness
        await self._set_status(outcome.message)

        if outcome.verdict is not None:
            await self._publish(SessionEvent(
                kind=EventKind.VERDICT,
                state=self.state,
                identifier=self.identifier,
                message=outcome.message,
                verdict=outcome.verdict,
            ))

        if outcome.status == FaceTickStatus.MATCHED and isinstance(outcome.verdict, Matched):
            self._face_scheduler.stop()
            self.result = VerificationResult(
                identifier=self.identifier,
                similarity=outcome.verdict.similarity,
                confidence=outcome.verdict.confidence,
            )
            await self._transition(VerificationState.SUCCESS, "Verified")
        elif outcome.status == FaceTickStatus.EXHAUSTED:
            self._face_scheduler.stop()
            await self._transition(VerificationState.FAILED_FACE, outcome.verdict.reason)

        if self.state.is_terminal:
            await self._face_stage.close()
        return self.state

    async def flag_mismatch(self, reason: str) -> VerificationState:
        """Fail the session because the identifier and the face belong to different people."""
        if self.state != VerificationState.VERIFYING_FACE:
            raise InvalidTransitionError(
                f"Cannot flag a mismatch from {self.state.value}",
                details={"from": self.state.value},
            )
        self._face_scheduler.stop()
        await self._face_stage.close()
        await self._transition(VerificationState.FAILED_MISMATCH, reason)
        return self.state

    # -- Scheduler callbacks -------------------------------------------------

    async def _scan_identifier(self) -> Tuple[int, Union[Optional[str], CapabilityUnavailableError]]:
        epoch = self._epoch
        try:
            return epoch, await self._id_stage.recognize()
        except CapabilityUnavailableError as e:
            return epoch, e

    async def _apply_identifier_scan(
        self, scan: Tuple[int, Union[Optional[str], CapabilityUnavailableError]]
    ) -> None:
        epoch, text = scan
        if epoch != self._epoch or text is None:
            return
        if isinstance(text, CapabilityUnavailableError):
            await self._fail_session(text)
            return
        identifier = self._id_stage.match(text)
        if identifier is None:
            await self._set_status("Scanning for identifier...")
            return
        logger.info("Identifier recognized", identifier=identifier)
        await self.handle_identifier(identifier)

    async def _scan_face(
        self,
    ) -> Tuple[int, Union[Optional[List[FaceDetection]], CapabilityUnavailableError]]:
        epoch = self._epoch
        try:
            return epoch, await self._face_stage.analyze()
        except CapabilityUnavailableError as e:
            return epoch, e

    async def _apply_face_scan(
        self, scan: Tuple[int, Union[Optional[List[FaceDetection]], CapabilityUnavailableError]]
    ) -> None:
        epoch, detections = scan
        if epoch != self._epoch or detections is None:
            return
        if isinstance(detections, CapabilityUnavailableError):
            await self._fail_session(detections)
            return
        await self.handle_face_outcome(self._face_stage.evaluate(detections))

    # -- Events -------------------------------------------------------------

    def subscribe(self, maxsize: int = 0) -> asyncio.Queue:
        """Return a queue that receives every subsequent session event."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    async def _set_status(self, message: str) -> None:
        if message == self.status:
            return
        self.status = message
        await self._publish(SessionEvent(
            kind=EventKind.STATUS,
            state=self.state,
            identifier=self.identifier,
            message=message,
        ))

    async def _publish(self, event: SessionEvent) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping event for slow subscriber", kind=event.kind.value)
        for sink in self._sinks:
            try:
                await sink.publish(event)
            except Exception as e:
                logger.error("Notification sink failed", sink=type(sink).__name__, error=str(e))

    def snapshot(self) -> SessionSnapshot:
        """Read-only view of the session for presentation layers."""
        return SessionSnapshot(
            state=self.state,
            running=self._running,
            identifier=self.identifier,
            display_id=format_display_id(self.identifier) if self.identifier else None,
            name=self.record.name if self.record else None,
            status=self.status,
            failed_attempts=self.failed_attempts,
            liveness=self.liveness,
            result=self.result,
            error=self.error,
        )
