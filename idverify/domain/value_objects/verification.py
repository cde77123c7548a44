"""Verification value objects."""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class VerificationState(str, Enum):
    """States of the verification session state machine."""
    SCANNING_ID = "scanning_id"
    VERIFYING_FACE = "verifying_face"
    SUCCESS = "success"
    FAILED_ID = "failed_id"
    FAILED_FACE = "failed_face"
    FAILED_MISMATCH = "failed_mismatch"

    @property
    def is_terminal(self) -> bool:
        """Terminal states only leave through an explicit reset."""
        return self not in (VerificationState.SCANNING_ID, VerificationState.VERIFYING_FACE)


class Matched(BaseModel):
    """A batch that passed the median and good-frame thresholds."""
    kind: Literal["matched"] = "matched"
    similarity: float = Field(..., description="1 - median distance of the batch")
    confidence: float = Field(..., description="Detection score of the last frame")


class NotMatched(BaseModel):
    """A batch (or stage) that did not produce a match."""
    kind: Literal["not_matched"] = "not_matched"
    reason: str = Field(..., description="Why the batch was rejected")


Verdict = Annotated[Union[Matched, NotMatched], Field(discriminator="kind")]


class BatchDecision(BaseModel):
    """Statistics behind a single batch verdict."""
    passed: bool
    median: Optional[float] = None
    good_count: int = 0
    total: int = 0


class LivenessStatus(BaseModel):
    """Progress of the head-turn challenge."""
    yaw: float = 0.0
    passed_left: bool = False
    passed_right: bool = False
    passed: bool = False

    @property
    def pending_turns(self) -> List[str]:
        """Directions still required before matching may start."""
        if self.passed:
            return []
        pending = []
        if not self.passed_left:
            pending.append("left")
        if not self.passed_right:
            pending.append("right")
        return pending


class FaceTickStatus(str, Enum):
    """Outcome category of one face stage tick."""
    NO_FACE = "no_face"
    MULTIPLE_FACES = "multiple_faces"
    LIVENESS_PENDING = "liveness_pending"
    LIVENESS_PASSED = "liveness_passed"
    THROTTLED = "throttled"
    COLLECTING = "collecting"
    NO_DESCRIPTOR = "no_descriptor"
    ATTEMPT_FAILED = "attempt_failed"
    MATCHED = "matched"
    EXHAUSTED = "exhausted"


class FaceTickOutcome(BaseModel):
    """Result of evaluating one frame's face detections."""
    status: FaceTickStatus
    message: str = ""
    liveness: LivenessStatus = Field(default_factory=LivenessStatus)
    similarity: Optional[float] = Field(None, description="Display similarity of this frame")
    verdict: Optional[Verdict] = None
    decision: Optional[BatchDecision] = None
    failed_attempts: int = 0
    attempts_left: int = 0


class VerificationResult(BaseModel):
    """Payload carried by a successful session."""
    identifier: str
    similarity: float
    confidence: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EventKind(str, Enum):
    STATE_CHANGED = "state_changed"
    STATUS = "status"
    VERDICT = "verdict"
    ERROR = "error"


class SessionEvent(BaseModel):
    """Notification emitted by the orchestrator to sinks and subscribers."""
    kind: EventKind
    state: VerificationState
    identifier: Optional[str] = None
    message: str = ""
    verdict: Optional[Verdict] = None
    result: Optional[VerificationResult] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SessionSnapshot(BaseModel):
    """Read-only view of the current verification session."""
    state: VerificationState
    running: bool = False
    identifier: Optional[str] = None
    display_id: Optional[str] = None
    name: Optional[str] = None
    status: str = ""
    failed_attempts: int = 0
    liveness: LivenessStatus = Field(default_factory=LivenessStatus)
    result: Optional[VerificationResult] = None
    error: Optional[str] = None
