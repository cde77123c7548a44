"""Verification session and enrolled record endpoints."""
from fastapi import APIRouter, Depends, HTTPException

from idverify.api.models.verification import (
    IdentifierMatchRequest,
    IdentifierMatchResponse,
    RecordIdsResponse,
    RecordSyncResponse,
    SessionResponse,
)
from idverify.core.exceptions import RecordSyncError
from idverify.core.logging import get_logger
from idverify.infrastructure.dependencies import (
    get_orchestrator,
    get_record_store,
    get_record_synchronizer,
)
from idverify.infrastructure.records import HttpRecordSynchronizer, SnapshotRecordStore
from idverify.services.orchestrator import VerificationOrchestrator
from idverify.services.text_matching import find_identifier

logger = get_logger(__name__)
router = APIRouter()


@router.get(
    "/session",
    response_model=SessionResponse,
    summary="Current verification session",
)
async def get_session(
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """Return the state, status message and result of the current session."""
    return SessionResponse.from_snapshot(orchestrator.snapshot())


@router.post(
    "/session/start",
    response_model=SessionResponse,
    summary="Start the verification session",
    description="Starts scanning, or re-initiates the current stage after a camera or reference error.",
)
async def start_session(
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """Start the verification session.

    Args:
        orchestrator: Verification orchestrator provided by dependency injection

    Returns:
        SessionResponse after the current stage was entered
    """
    await orchestrator.start()
    return SessionResponse.from_snapshot(orchestrator.snapshot())


@router.post(
    "/session/reset",
    response_model=SessionResponse,
    summary="Reset the verification session",
    description="Clears the session and returns to identifier scanning. Valid from every state.",
)
async def reset_session(
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    await orchestrator.reset()
    return SessionResponse.from_snapshot(orchestrator.snapshot())


@router.get(
    "/records/ids",
    response_model=RecordIdsResponse,
    summary="List enrolled identifiers",
)
async def list_record_ids(
    store: SnapshotRecordStore = Depends(get_record_store),
) -> RecordIdsResponse:
    return RecordIdsResponse.from_snapshot(store.snapshot)


@router.post(
    "/records/sync",
    response_model=RecordSyncResponse,
    summary="Sync enrolled records",
    description="Pulls every record from the registration service and replaces the snapshot.",
    responses={
        502: {
            "description": "Registration service unavailable",
            "content": {
                "application/json": {
                    "example": {"detail": "Failed to sync records"}
                }
            },
        },
    },
)
async def sync_records(
    synchronizer: HttpRecordSynchronizer = Depends(get_record_synchronizer),
) -> RecordSyncResponse:
    """Replace the enrolled record snapshot with the registration service's records.

    Args:
        synchronizer: Record synchronizer provided by dependency injection

    Returns:
        RecordSyncResponse with the size of the new snapshot

    Raises:
        HTTPException: If the registration service cannot be reached
    """
    try:
        count = await synchronizer.sync()
        return RecordSyncResponse(count=count)

    except RecordSyncError as e:
        logger.error("Record sync request failed", error=str(e), details=e.details)
        raise HTTPException(status_code=502, detail=str(e))


@router.post(
    "/identifiers/match",
    response_model=IdentifierMatchResponse,
    summary="Reconcile recognized text",
    description="Finds an enrolled identifier in raw OCR text without touching the session.",
)
async def match_identifier(
    request: IdentifierMatchRequest,
    store: SnapshotRecordStore = Depends(get_record_store),
) -> IdentifierMatchResponse:
    identifier = find_identifier(request.text, store.list_identifiers())
    return IdentifierMatchResponse.from_identifier(identifier)
