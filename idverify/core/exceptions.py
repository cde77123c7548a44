"""Custom exceptions for the identity verification service."""
from typing import Optional


class VerificationError(Exception):
    """Base exception for identity verification operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize verification error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.details = details or {}


class InvalidRecordError(VerificationError):
    """Raised when an enrolled record cannot be normalized into a snapshot."""
    pass


class RecordSyncError(VerificationError):
    """Raised when enrolled records cannot be fetched from the registration service."""
    pass


class CapabilityUnavailableError(VerificationError):
    """Raised when a camera, model or reference needed by a stage cannot be initialized.

    This is a session-level error, distinct from a verification failure.
    """
    pass


class CameraUnavailableError(CapabilityUnavailableError):
    """Raised when the camera cannot be opened or stops delivering frames."""
    pass


class ReferenceUnavailableError(CapabilityUnavailableError):
    """Raised when no usable reference descriptor exists for the enrolled record."""
    pass


class InvalidTransitionError(VerificationError):
    """Raised when the orchestrator is asked for a transition its state machine forbids."""
    pass


class ServiceNotInitializedError(VerificationError):
    """Raised when a service is requested before the container was initialized."""
    pass
