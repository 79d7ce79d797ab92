"""FastAPI dependencies for sessions and synthesis services."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..services.synthesis_queue import SynthesisQueue
from ..services.synthesizer import SynthesisPipeline
from .database import get_session


def get_pipeline(request: Request) -> SynthesisPipeline:
    """The pipeline built at startup."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Synthesis pipeline is not running",
        )
    return pipeline


def get_synthesis_queue(request: Request) -> SynthesisQueue:
    """The queue built at startup."""
    queue = getattr(request.app.state, "synthesis_queue", None)
    if queue is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Synthesis queue is not running",
        )
    return queue


# Type aliases for cleaner dependency injection
SessionDep = Annotated[AsyncSession, Depends(get_session)]
PipelineDep = Annotated[SynthesisPipeline, Depends(get_pipeline)]
QueueDep = Annotated[SynthesisQueue, Depends(get_synthesis_queue)]
