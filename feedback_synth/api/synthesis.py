"""Synthesis API Routes: queue inspection."""

from fastapi import APIRouter

from ..core.dependencies import QueueDep

router = APIRouter(prefix="/synthesis", tags=["synthesis"])


@router.get("/queue", summary="Synthesis queue depth and counters")
async def queue_status(queue: QueueDep):
    return queue.snapshot()
