"""
Synthesis queue.

Intake stores feedback and hands its id here; worker tasks run the
pipeline. Transient failures are retried with exponential backoff. Items
that exhaust their attempts stay `processed = false` and are picked up by
the reprocess sweep later.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from .errors import TRANSIENT_ERRORS, SynthesisError
from .synthesizer import SynthesisPipeline

logger = logging.getLogger(__name__)


@dataclass
class _QueueItem:
    feedback_id: UUID
    attempt: int = 1
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class QueueStats:
    submitted: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    dropped: int = 0


class SynthesisQueue:
    """In-process queue feeding feedback ids to the synthesis pipeline."""

    def __init__(
        self,
        pipeline: SynthesisPipeline,
        workers: int = 2,
        max_attempts: int = 3,
        retry_base_seconds: float = 2.0,
    ):
        self.pipeline = pipeline
        self.workers = workers
        self.max_attempts = max_attempts
        self.retry_base_seconds = retry_base_seconds
        self.stats = QueueStats()
        self._queue: asyncio.Queue[_QueueItem] = asyncio.Queue()
        self._worker_tasks: list[asyncio.Task] = []
        self._retry_tasks: set[asyncio.Task] = set()
        self._in_flight = 0

    async def submit(self, feedback_id: UUID) -> int:
        """Enqueue a feedback item for synthesis. Returns queue depth."""
        await self._queue.put(_QueueItem(feedback_id=feedback_id))
        self.stats.submitted += 1
        depth = self._queue.qsize()
        logger.info(f"Queued feedback {feedback_id} for synthesis (queue_depth={depth})")
        return depth

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._worker_tasks)

    def snapshot(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "workers": len(self._worker_tasks),
            "queue_depth": self.queue_depth,
            "in_flight": self._in_flight,
            "pending_retries": len(self._retry_tasks),
            **asdict(self.stats),
        }

    async def worker_loop(self, name: str) -> None:
        logger.info(f"Synthesis worker {name} started")
        while True:
            item = await self._queue.get()
            self._in_flight += 1
            try:
                await self._process(item)
            finally:
                self._in_flight -= 1
                self._queue.task_done()
                await asyncio.sleep(0)  # yield to event loop

    async def _process(self, item: _QueueItem) -> None:
        try:
            outcome = await self.pipeline.synthesize(item.feedback_id)
        except TRANSIENT_ERRORS as e:
            if item.attempt >= self.max_attempts:
                self.stats.failed += 1
                logger.error(
                    f"Giving up on feedback {item.feedback_id} after {item.attempt} attempts: {e}"
                )
                return
            delay = self.retry_base_seconds * (2 ** (item.attempt - 1))
            self.stats.retried += 1
            logger.warning(
                f"Synthesis of feedback {item.feedback_id} failed (attempt {item.attempt}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            self._schedule_retry(item, delay)
        except SynthesisError as e:
            # Missing records and configuration errors do not heal on retry
            self.stats.dropped += 1
            logger.error(f"Dropping feedback {item.feedback_id}: {e}")
        except Exception:
            self.stats.failed += 1
            logger.exception(f"Unexpected failure synthesizing feedback {item.feedback_id}")
        else:
            self.stats.succeeded += 1
            if not outcome.skipped:
                logger.debug(f"Synthesized feedback {item.feedback_id} -> feature {outcome.feature_id}")

    def _schedule_retry(self, item: _QueueItem, delay: float) -> None:
        async def requeue() -> None:
            await asyncio.sleep(delay)
            await self._queue.put(
                _QueueItem(
                    feedback_id=item.feedback_id,
                    attempt=item.attempt + 1,
                    submitted_at=item.submitted_at,
                )
            )

        task = asyncio.create_task(requeue())
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def join(self) -> None:
        """Wait until the queue and all scheduled retries are drained."""
        while True:
            await self._queue.join()
            pending = [t for t in self._retry_tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def start(self) -> list[asyncio.Task]:
        """Start worker tasks up to the configured concurrency."""
        # Clean up finished tasks
        self._worker_tasks = [t for t in self._worker_tasks if not t.done()]
        while len(self._worker_tasks) < self.workers:
            idx = len(self._worker_tasks)
            self._worker_tasks.append(asyncio.create_task(self.worker_loop(f"synthesis_{idx}")))
        return self._worker_tasks

    async def shutdown(self) -> None:
        """Cancel all worker and retry tasks."""
        tasks = self._worker_tasks + list(self._retry_tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._worker_tasks = []
        self._retry_tasks.clear()
        logger.info("Synthesis queue stopped")
