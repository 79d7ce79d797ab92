"""API routes for Feedback Synth."""

from fastapi import APIRouter

from .features import router as features_router
from .feedback import router as feedback_router
from .synthesis import router as synthesis_router

# Main API router
api_router = APIRouter()

# Collector intake and inspection
api_router.include_router(feedback_router)

# Review tooling and administration
api_router.include_router(features_router)
api_router.include_router(synthesis_router)

__all__ = ["api_router"]
