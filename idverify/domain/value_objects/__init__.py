"""Value objects package."""
from .verification import (
    BatchDecision,
    EventKind,
    FaceTickOutcome,
    FaceTickStatus,
    LivenessStatus,
    Matched,
    NotMatched,
    SessionEvent,
    SessionSnapshot,
    Verdict,
    VerificationResult,
    VerificationState,
)

__all__ = [
    "BatchDecision",
    "EventKind",
    "FaceTickOutcome",
    "FaceTickStatus",
    "LivenessStatus",
    "Matched",
    "NotMatched",
    "SessionEvent",
    "SessionSnapshot",
    "Verdict",
    "VerificationResult",
    "VerificationState",
]
