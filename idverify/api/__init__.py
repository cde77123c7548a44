"""API v1 router initialization."""
from fastapi import APIRouter

from .verification import router as verification_router

# Create v1 router
router = APIRouter()

# Include verification endpoints
router.include_router(
    verification_router,
    tags=["verification"]
)
