"""
Reprocess Sweep: retry synthesis for feedback still marked unprocessed.

Picks up items whose queued synthesis exhausted its retries, or that were
stored while the extractor was down. Oldest first, one item at a time.

Typical cron schedule: */15 * * * * (every 15 minutes)
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.database import build_engine, build_session_factory
from ..services.errors import SynthesisError
from ..services.extractor import get_extractor
from ..services.feedback_store import FeedbackStore
from ..services.synthesizer import SynthesisConfig, SynthesisPipeline

logger = logging.getLogger(__name__)


async def reprocess_unprocessed(
    pipeline: SynthesisPipeline,
    session_factory: async_sessionmaker[AsyncSession],
    limit: int = 100,
) -> dict[str, int]:
    """
    Synthesize up to `limit` unprocessed items, oldest first.

    One failing item never stops the batch; it is counted and left
    unprocessed for the next sweep.
    """
    async with session_factory() as session:
        feedback_ids = await FeedbackStore(session).list_unprocessed_ids(limit)

    processed = 0
    errors = 0
    for feedback_id in feedback_ids:
        try:
            await pipeline.synthesize(feedback_id)
            processed += 1
        except SynthesisError as e:
            errors += 1
            logger.error(f"Reprocess failed for feedback {feedback_id}: {e}")

    logger.info(f"Reprocess sweep finished: {processed} processed, {errors} errors")
    return {"processed": processed, "errors": errors}


async def run_reprocess_job(database_url: str, limit: int) -> dict[str, Any]:
    """Standalone entry point with its own engine."""
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting reprocess sweep at {start_time.isoformat()}")

    engine = build_engine(database_url)
    session_factory = build_session_factory(engine)
    pipeline = SynthesisPipeline(
        session_factory,
        get_extractor(),
        SynthesisConfig.from_settings(),
    )

    try:
        results: dict[str, Any] = await reprocess_unprocessed(pipeline, session_factory, limit)
    finally:
        await engine.dispose()

    results["duration_seconds"] = (datetime.now(timezone.utc) - start_time).total_seconds()
    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the reprocess sweep."""
    import argparse

    settings = get_settings()

    parser = argparse.ArgumentParser(description="Reprocess unprocessed feedback")
    parser.add_argument(
        "--database-url",
        default=settings.database_url_async,
        help="Database connection string",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=settings.reprocess_batch_size,
        help="Maximum number of items to process",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        results = asyncio.run(run_reprocess_job(args.database_url, args.limit))
        print(f"Job completed: {results}")
    except Exception as e:
        print(f"Job failed: {e}")
        exit(1)


if __name__ == "__main__":
    main()
