"""Tests for the verification session state machine."""
import asyncio
from typing import Callable

import pytest

from fakes import (
    CollectingSink,
    FakeClock,
    FakeFaceAnalyzer,
    FakeFrameSource,
    FakeRegionDetector,
    FakeTextRecognizer,
    face,
    make_record,
    make_store,
)
from idverify.core.exceptions import CameraUnavailableError, InvalidTransitionError
from idverify.domain.value_objects.verification import (
    EventKind,
    FaceTickStatus,
    SessionEvent,
    VerificationState,
)
from idverify.services.batch_decision import BatchDecisionEngine
from idverify.services.face_verification import FaceVerificationStage
from idverify.services.id_scanning import IdentifierScanStage
from idverify.services.liveness import LivenessGate
from idverify.services.orchestrator import VerificationOrchestrator


class Harness:
    """Orchestrator wired to in-memory cameras and models."""

    def __init__(self, texts=("",), frames=None, records=None, interval=0.01):
        self.clock = FakeClock()
        self.store = make_store(*(records if records is not None else [make_record()]))
        self.id_camera = FakeFrameSource()
        self.face_camera = FakeFrameSource()
        self.recognizer = FakeTextRecognizer(texts)
        self.analyzer = FakeFaceAnalyzer(frames)
        self.sink = CollectingSink()
        self.id_stage = IdentifierScanStage(
            self.id_camera, FakeRegionDetector(), self.recognizer, self.store
        )
        self.face_stage = FaceVerificationStage(
            self.face_camera,
            self.analyzer,
            gate=LivenessGate(threshold=70.0, mirrored=False),
            engine=BatchDecisionEngine(
                threshold=0.6,
                required_good=6,
                max_samples=12,
                timeout=2.2,
                min_interval=0.0,
                max_valid_distance=2.0,
                clock=self.clock,
            ),
            max_failed_attempts=5,
        )
        self.orchestrator = VerificationOrchestrator(
            self.store,
            self.id_stage,
            self.face_stage,
            sinks=[self.sink],
            id_interval=interval,
            face_interval=interval,
        )

    async def drive_face(self, distance: float, frames: int = 12):
        outcome = None
        for _ in range(frames):
            outcome = self.face_stage.evaluate([face(distance=distance)])
            await self.orchestrator.handle_face_outcome(outcome)
        return outcome

    async def pass_liveness(self):
        for yaw in (80.0, -80.0):
            await self.orchestrator.handle_face_outcome(self.face_stage.evaluate([face(yaw=yaw)]))


async def wait_for_event(
    queue: asyncio.Queue, predicate: Callable[[SessionEvent], bool], timeout: float = 3.0
) -> SessionEvent:
    async def _wait():
        while True:
            event = await queue.get()
            if predicate(event):
                return event

    return await asyncio.wait_for(_wait(), timeout=timeout)


@pytest.fixture
def harness():
    return Harness()


class TestIdentifierHandling:
    async def test_unknown_identifier_fails(self, harness):
        state = await harness.orchestrator.handle_identifier("9949999")
        assert state == VerificationState.FAILED_ID
        assert harness.orchestrator.identifier == "9949999"
        assert "99-4-9999" in harness.orchestrator.status

    async def test_known_identifier_moves_to_face_stage(self, harness):
        state = await harness.orchestrator.handle_identifier("50-1-4741")
        assert state == VerificationState.VERIFYING_FACE
        assert harness.orchestrator.record.name == "Ada Lovelace"
        kinds = [(e.kind, e.state) for e in harness.sink.events]
        assert (EventKind.STATE_CHANGED, VerificationState.VERIFYING_FACE) in kinds

    async def test_identifier_ignored_outside_scanning(self, harness):
        await harness.orchestrator.handle_identifier("9949999")
        assert await harness.orchestrator.handle_identifier("5014741") == VerificationState.FAILED_ID


class TestFaceHandling:
    async def test_end_to_end_success(self, harness):
        orchestrator = harness.orchestrator
        await orchestrator.handle_identifier("5014741")
        await harness.face_stage.prepare(orchestrator.record)
        await harness.pass_liveness()
        assert orchestrator.liveness.passed

        outcome = await harness.drive_face(0.3)
        assert outcome.status == FaceTickStatus.MATCHED
        assert orchestrator.state == VerificationState.SUCCESS
        assert orchestrator.result.identifier == "5014741"
        assert orchestrator.result.similarity == pytest.approx(0.7)

        verdicts = [e for e in harness.sink.events if e.kind == EventKind.VERDICT]
        assert verdicts[-1].verdict.kind == "matched"

    async def test_exhaustion_fails_face_stage(self, harness):
        orchestrator = harness.orchestrator
        await orchestrator.handle_identifier("5014741")
        await harness.face_stage.prepare(orchestrator.record)
        await harness.pass_liveness()

        for attempt in range(1, 5):
            await harness.drive_face(0.9)
            assert orchestrator.state == VerificationState.VERIFYING_FACE
            assert orchestrator.failed_attempts == attempt

        await harness.drive_face(0.9)
        assert orchestrator.state == VerificationState.FAILED_FACE
        assert orchestrator.status == "Face verification failed: exceeded max attempts"
        assert orchestrator.result is None

    async def test_outcome_ignored_outside_face_stage(self, harness):
        outcome = harness.face_stage.evaluate([])
        state = await harness.orchestrator.handle_face_outcome(outcome)
        assert state == VerificationState.SCANNING_ID
        assert harness.sink.events == []

    async def test_flag_mismatch(self, harness):
        await harness.orchestrator.handle_identifier("5014741")
        state = await harness.orchestrator.flag_mismatch("Card belongs to someone else")
        assert state == VerificationState.FAILED_MISMATCH

    async def test_flag_mismatch_requires_face_stage(self, harness):
        with pytest.raises(InvalidTransitionError):
            await harness.orchestrator.flag_mismatch("no session")


class TestReset:
    @pytest.mark.parametrize("identifier", ["9949999", "5014741"])
    async def test_terminal_states_leave_only_through_reset(self, harness, identifier):
        orchestrator = harness.orchestrator
        await orchestrator.handle_identifier(identifier)
        if orchestrator.state == VerificationState.VERIFYING_FACE:
            await orchestrator.flag_mismatch("conflict")
        assert orchestrator.state.is_terminal

        await orchestrator.handle_identifier("5014741")
        with pytest.raises(InvalidTransitionError):
            await orchestrator.flag_mismatch("again")
        assert orchestrator.state.is_terminal

        await orchestrator.reset()
        assert orchestrator.state == VerificationState.SCANNING_ID

    async def test_reset_is_idempotent(self, harness):
        orchestrator = harness.orchestrator
        await orchestrator.handle_identifier("5014741")
        await orchestrator.reset()
        first = orchestrator.snapshot()
        await orchestrator.reset()
        second = orchestrator.snapshot()

        assert first == second
        assert second.state == VerificationState.SCANNING_ID
        assert second.identifier is None
        assert second.failed_attempts == 0
        assert not second.liveness.passed

    async def test_reset_from_initial_state(self, harness):
        await harness.orchestrator.reset()
        assert harness.orchestrator.state == VerificationState.SCANNING_ID
        assert harness.sink.events[-1].kind == EventKind.STATE_CHANGED


class TestRunningSession:
    async def test_scans_and_verifies(self):
        frames = [[face(yaw=80.0)], [face(yaw=-80.0)], [face(distance=0.3)]]
        harness = Harness(texts=["", "ID: 5O-1-4741"], frames=frames)
        orchestrator = harness.orchestrator
        events = orchestrator.subscribe()

        await orchestrator.start()
        try:
            await wait_for_event(events, lambda e: e.state == VerificationState.SUCCESS)
        finally:
            await orchestrator.stop()

        assert orchestrator.state == VerificationState.SUCCESS
        assert orchestrator.result.similarity == pytest.approx(0.7)
        assert not harness.id_camera.is_open
        assert not harness.face_camera.is_open

    async def test_camera_error_halts_session(self):
        harness = Harness()
        harness.id_camera.fail_open = True
        events = harness.orchestrator.subscribe()

        await harness.orchestrator.start()
        event = await wait_for_event(events, lambda e: e.kind == EventKind.ERROR)
        assert "Camera access denied" in event.message
        assert harness.orchestrator.error is not None
        assert harness.orchestrator.state == VerificationState.SCANNING_ID

        harness.id_camera.fail_open = False
        await harness.orchestrator.start()
        assert harness.orchestrator.error is None
        assert harness.id_camera.is_open
        await harness.orchestrator.stop()

    async def test_missing_reference_halts_face_stage(self):
        record = make_record(reference_descriptors=[], face_images=["missing.jpg"])
        harness = Harness(texts=["5014741"], records=[record])
        events = harness.orchestrator.subscribe()

        await harness.orchestrator.start()
        try:
            event = await wait_for_event(events, lambda e: e.kind == EventKind.ERROR)
        finally:
            await harness.orchestrator.stop()

        assert event.state == VerificationState.VERIFYING_FACE
        assert "No face found" in event.message

    async def test_reset_while_running_restarts_scanning(self):
        harness = Harness()
        orchestrator = harness.orchestrator

        await orchestrator.start()
        try:
            assert await orchestrator.handle_identifier("9949999") == VerificationState.FAILED_ID
            assert not harness.id_camera.is_open

            await orchestrator.reset()
            assert orchestrator.state == VerificationState.SCANNING_ID
            assert orchestrator.identifier is None
            assert harness.id_camera.is_open
            assert orchestrator._id_scheduler.running
        finally:
            await orchestrator.stop()

    async def test_frame_read_failure_halts_scanning(self):
        harness = Harness()
        events = harness.orchestrator.subscribe()
        harness.id_camera.fail_read = True

        await harness.orchestrator.start()
        try:
            event = await wait_for_event(events, lambda e: e.kind == EventKind.ERROR)
        finally:
            await harness.orchestrator.stop()

        assert "stopped delivering frames" in event.message
        assert harness.orchestrator.error == event.message
        assert harness.orchestrator.state == VerificationState.SCANNING_ID
        assert not harness.orchestrator._id_scheduler.running

    async def test_face_model_failure_halts_session(self):
        harness = Harness(texts=["5014741"])
        harness.analyzer.error = CameraUnavailableError("face model unavailable")
        orchestrator = harness.orchestrator
        events = orchestrator.subscribe()

        await orchestrator.start()
        event = await wait_for_event(events, lambda e: e.kind == EventKind.ERROR)
        assert event.state == VerificationState.VERIFYING_FACE
        assert event.identifier == "5014741"
        assert orchestrator.error == "face model unavailable"
        assert not orchestrator._face_scheduler.running
        assert not harness.face_camera.is_open

        # Nothing is retried until the session is re-initiated
        calls = harness.analyzer.calls
        await asyncio.sleep(0.1)
        assert harness.analyzer.calls == calls
        errors = [e for e in harness.sink.events if e.kind == EventKind.ERROR]
        assert len(errors) == 1

        harness.analyzer.error = None
        await orchestrator.start()
        try:
            assert orchestrator.error is None
            assert harness.face_camera.is_open
            assert orchestrator._face_scheduler.running
        finally:
            await orchestrator.stop()
