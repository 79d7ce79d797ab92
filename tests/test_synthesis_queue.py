"""Tests for the synthesis queue and the reprocess sweep."""

import pytest
from uuid import uuid4

from feedback_synth.jobs.reprocess_sweep import reprocess_unprocessed
from feedback_synth.models import FeedbackItem
from feedback_synth.services.errors import ExtractorUnavailableError
from feedback_synth.services.synthesis_queue import SynthesisQueue

from factories import add_feedback, reload, unit


@pytest.fixture
async def queue(pipeline):
    queue = SynthesisQueue(pipeline, workers=2, max_attempts=3, retry_base_seconds=0)
    queue.start()
    yield queue
    await queue.shutdown()


class TestSynthesisQueue:

    async def test_submitted_items_are_synthesized(self, queue, extractor, session_factory):
        extractor.vectors.update({"dark mode": unit(1), "csv export": unit(0, 1)})
        first = await add_feedback(session_factory, "dark mode")
        second = await add_feedback(session_factory, "csv export")

        await queue.submit(first.id)
        await queue.submit(second.id)
        await queue.join()

        assert (await reload(session_factory, FeedbackItem, first.id)).processed is True
        assert (await reload(session_factory, FeedbackItem, second.id)).processed is True
        assert queue.stats.submitted == 2
        assert queue.stats.succeeded == 2

    async def test_transient_failure_is_retried(self, queue, extractor, session_factory):
        extractor.vectors["dark mode"] = unit(1)
        item = await add_feedback(session_factory, "dark mode")
        original = extractor.extract_signal
        calls = {"n": 0}

        async def flaky(content):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ExtractorUnavailableError("503 from provider")
            return await original(content)

        extractor.extract_signal = flaky

        await queue.submit(item.id)
        await queue.join()

        assert calls["n"] == 2
        assert queue.stats.retried == 1
        assert queue.stats.succeeded == 1
        assert (await reload(session_factory, FeedbackItem, item.id)).processed is True

    async def test_gives_up_after_max_attempts(self, queue, extractor, session_factory):
        extractor.error = ExtractorUnavailableError("down")
        item = await add_feedback(session_factory, "dark mode")

        await queue.submit(item.id)
        await queue.join()

        assert extractor.extract_calls == 3
        assert queue.stats.retried == 2
        assert queue.stats.failed == 1
        assert (await reload(session_factory, FeedbackItem, item.id)).processed is False

    async def test_missing_feedback_is_dropped(self, queue):
        await queue.submit(uuid4())
        await queue.join()

        assert queue.stats.dropped == 1
        assert queue.stats.retried == 0

    async def test_snapshot(self, queue):
        snapshot = queue.snapshot()

        assert snapshot["running"] is True
        assert snapshot["workers"] == 2
        assert snapshot["queue_depth"] == 0


class TestReprocessSweep:

    async def test_counts_processed_and_errors(self, pipeline, extractor, session_factory):
        extractor.vectors.update({"dark mode": unit(1), "csv export": unit(0, 1)})
        await add_feedback(session_factory, "dark mode")
        await add_feedback(session_factory, "csv export")
        broken = await add_feedback(session_factory, "no vector scripted")

        results = await reprocess_unprocessed(pipeline, session_factory, limit=100)

        assert results == {"processed": 2, "errors": 1}
        assert (await reload(session_factory, FeedbackItem, broken.id)).processed is False

    async def test_respects_limit(self, pipeline, extractor, session_factory):
        extractor.vectors.update({"dark mode": unit(1), "csv export": unit(0, 1)})
        await add_feedback(session_factory, "dark mode")
        await add_feedback(session_factory, "csv export")

        results = await reprocess_unprocessed(pipeline, session_factory, limit=1)

        assert results == {"processed": 1, "errors": 0}
