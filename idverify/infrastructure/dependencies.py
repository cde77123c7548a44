"""FastAPI dependency providers."""
from typing import AsyncGenerator

from fastapi import Depends

from idverify.core.container import ServiceContainer, container
from idverify.core.exceptions import ServiceNotInitializedError
from idverify.infrastructure.records import HttpRecordSynchronizer, SnapshotRecordStore
from idverify.services.orchestrator import VerificationOrchestrator


async def get_container() -> ServiceContainer:
    """Dependency provider for the global ServiceContainer instance.

    Raises:
        ServiceNotInitializedError: If the application lifespan has not initialized it
    """
    if not container.initialized:
        raise ServiceNotInitializedError("Service container not initialized")
    return container


async def get_record_store(
    cont: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[SnapshotRecordStore, None]:
    """Provide the enrolled record store.

    Yields:
        SnapshotRecordStore: Store holding the current record snapshot

    Raises:
        ServiceNotInitializedError: If the record store is not initialized
    """
    if cont.record_store is None:
        raise ServiceNotInitializedError("Record store not initialized")
    yield cont.record_store


async def get_record_synchronizer(
    cont: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[HttpRecordSynchronizer, None]:
    """Provide the registration service synchronizer."""
    if cont.record_synchronizer is None:
        raise ServiceNotInitializedError("Record synchronizer not initialized")
    yield cont.record_synchronizer


async def get_orchestrator(
    cont: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[VerificationOrchestrator, None]:
    """Provide the verification orchestrator.

    Yields:
        VerificationOrchestrator: The single verification session of this service

    Raises:
        ServiceNotInitializedError: If no recognition models were configured
    """
    if cont.orchestrator is None:
        raise ServiceNotInitializedError("Verification orchestrator not initialized")
    yield cont.orchestrator
