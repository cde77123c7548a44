"""API specific verification models."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from idverify.domain.entities.identity import format_display_id
from idverify.domain.value_objects.verification import (
    LivenessStatus,
    SessionSnapshot,
    VerificationResult,
    VerificationState,
)
from idverify.infrastructure.records import RecordSnapshot


class SessionResponse(BaseModel):
    """Response model for the session endpoints."""
    state: VerificationState = Field(..., description="Current verification state")
    running: bool = Field(..., description="Whether a stage is actively scanning")
    identifier: Optional[str] = Field(None, description="Canonical identifier read from the card")
    display_id: Optional[str] = Field(None, description="Identifier in YY-4-#### form")
    name: Optional[str] = Field(None, description="Name on the enrolled record")
    status: str = Field("", description="Latest user-facing status message")
    failed_attempts: int = Field(0, description="Failed matching batches so far", ge=0)
    liveness: LivenessStatus = Field(..., description="Head turn challenge progress")
    result: Optional[VerificationResult] = Field(None, description="Set once the session succeeded")
    error: Optional[str] = Field(None, description="Resource error that halted the session")

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> "SessionResponse":
        """Convert the orchestrator snapshot to the API response model."""
        return cls(**snapshot.model_dump())


class RecordIdsResponse(BaseModel):
    """Response model for the /records/ids endpoint."""
    ids: List[str] = Field(..., description="Canonical identifiers currently enrolled")
    count: int = Field(..., description="Number of enrolled records", ge=0)
    loaded_at: datetime = Field(..., description="When the current snapshot was built")

    @classmethod
    def from_snapshot(cls, snapshot: RecordSnapshot) -> "RecordIdsResponse":
        ids = snapshot.identifiers()
        return cls(ids=ids, count=len(ids), loaded_at=snapshot.loaded_at)


class RecordSyncResponse(BaseModel):
    """Response model for the /records/sync endpoint."""
    count: int = Field(..., description="Number of records in the new snapshot", ge=0)


class IdentifierMatchRequest(BaseModel):
    """Request model for the /identifiers/match endpoint."""
    text: str = Field(
        ...,
        description="Raw recognized text to reconcile",
        max_length=4096,
    )


class IdentifierMatchResponse(BaseModel):
    """Response model for the /identifiers/match endpoint."""
    matched: bool = Field(..., description="Whether an enrolled identifier was found")
    identifier: Optional[str] = Field(None, description="Canonical identifier")
    display_id: Optional[str] = Field(None, description="Identifier in YY-4-#### form")

    @classmethod
    def from_identifier(cls, identifier: Optional[str]) -> "IdentifierMatchResponse":
        if identifier is None:
            return cls(matched=False)
        return cls(
            matched=True,
            identifier=identifier,
            display_id=format_display_id(identifier),
        )
