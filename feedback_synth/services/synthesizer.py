"""
Synthesis Pipeline: turns one unprocessed feedback item into a feature link.

Flow for synthesize(feedback_id):
1. Load the item (missing -> FeedbackNotFoundError, processed -> no-op)
2. Extract a structured signal (malformed output degrades, never fails)
3. Embed "title summary"
4. Find the nearest candidate feature
5. Merge if distance < auto_merge_threshold, otherwise create a feature
6. Insert the link idempotently
7. Mark the item processed
8. Recalculate the feature's aggregates

Steps 2-3 run with no database transaction or lock held. Steps 4-8 run in a
single transaction under a lock keyed by the nearest candidate (the
"bucket"), and step 4 is re-read inside that transaction. Two near-identical
items arriving together therefore usually serialize and the second sees the
first's feature. Items whose probes land on different buckets can still race
and create near-duplicates; similar_features plus manual merge repair those.
"""

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings, get_settings
from ..models import Feature, FeedbackFeatureLink, FeedbackItem
from .aggregates import AggregateMaintainer
from .errors import (
    ExtractorTimeoutError,
    ExtractorUnavailableError,
    FeedbackNotFoundError,
    StorageError,
    SynthesisError,
)
from .extractor import ExtractedSignal, ExtractorAdapter
from .feature_index import FeatureIndex, IndexMatch
from .locks import KeyedLocks, advisory_xact_lock

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SynthesisConfig:
    """Tunables for the pipeline, passed in rather than read globally."""

    # Strictly-less-than distance at which feedback joins an existing feature
    auto_merge_threshold: float = 0.15

    # Length of every embedding stored on a feature
    embedding_dimensions: int = 384

    # Upper bound on each extractor call
    extractor_timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SynthesisConfig":
        settings = settings or get_settings()
        return cls(
            auto_merge_threshold=settings.auto_merge_threshold,
            embedding_dimensions=settings.embedding_dimensions,
            extractor_timeout_seconds=settings.extractor_timeout_seconds,
        )


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class SynthesisOutcome:
    """What one synthesize() call did."""
    feedback_id: UUID
    feature_id: UUID | None = None
    created_feature: bool = False
    linked: bool = False
    similarity_score: float | None = None
    degraded: bool = False
    skipped: bool = False  # Item was already processed


# =============================================================================
# SYNTHESIS PIPELINE
# =============================================================================


class SynthesisPipeline:
    """
    Merge-or-create classifier for incoming feedback.

    Guarantees:
    1. `processed` flips to true only together with a committed link
    2. Any extractor or storage failure leaves the item untouched
    3. Calling synthesize on a processed item changes nothing
    """

    EMPTY_BUCKET = "feature-bucket:empty"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        extractor: ExtractorAdapter,
        config: SynthesisConfig | None = None,
        locks: KeyedLocks | None = None,
    ):
        self.session_factory = session_factory
        self._extractor = extractor
        self.config = config or SynthesisConfig.from_settings()
        self._locks = locks or KeyedLocks()

    async def synthesize(self, feedback_id: UUID) -> SynthesisOutcome:
        # Step 1: Load
        content = await self._load_unprocessed_content(feedback_id)
        if content is None:
            logger.debug(f"Feedback {feedback_id} already processed, skipping")
            return SynthesisOutcome(feedback_id=feedback_id, skipped=True)

        # Steps 2-3: Extractor calls, outside any transaction
        signal = await self._extract(content)
        embedding = await self._embed(signal.embedding_text)

        # Steps 4-8: Decide and persist atomically within the bucket
        bucket = self._bucket_key(await self._probe(embedding))
        async with self._locks.hold(bucket):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        await advisory_xact_lock(session, bucket)
                        outcome = await self._decide_and_link(
                            session, feedback_id, signal, embedding
                        )
            except SQLAlchemyError as e:
                logger.error(f"Synthesis of feedback {feedback_id} rolled back: {e}")
                raise StorageError(f"Failed to persist synthesis of {feedback_id}: {e}") from e

        return outcome

    # =========================================================================
    # EXTRACTOR BOUNDARY
    # =========================================================================

    async def _extract(self, content: str) -> ExtractedSignal:
        signal = await self._call_extractor("extract_signal", self._extractor.extract_signal(content))
        if signal.degraded:
            logger.warning("Extraction degraded, continuing with fallback signal")
        return signal

    async def _embed(self, text: str) -> list[float]:
        return await self._call_extractor("embed", self._extractor.embed(text))

    async def _call_extractor(self, name: str, call):
        timeout = self.config.extractor_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ExtractorTimeoutError(f"Extractor {name} exceeded {timeout}s") from e
        except SynthesisError:
            raise
        except Exception as e:
            raise ExtractorUnavailableError(f"Extractor {name} failed: {e}") from e

    # =========================================================================
    # STORAGE STEPS
    # =========================================================================

    async def _load_unprocessed_content(self, feedback_id: UUID) -> str | None:
        try:
            async with self.session_factory() as session:
                feedback = await session.get(FeedbackItem, feedback_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load feedback {feedback_id}: {e}") from e

        if feedback is None:
            raise FeedbackNotFoundError(f"Feedback {feedback_id} not found")
        if feedback.processed:
            return None
        return feedback.content

    async def _probe(self, embedding: list[float]) -> IndexMatch | None:
        """Unlocked nearest-neighbor read, used only to pick the bucket."""
        try:
            async with self.session_factory() as session:
                return await self._index(session).nearest(embedding)
        except SQLAlchemyError as e:
            raise StorageError(f"Feature index lookup failed: {e}") from e

    def _bucket_key(self, probe: IndexMatch | None) -> str:
        if probe is None:
            return self.EMPTY_BUCKET
        return f"feature-bucket:{probe.feature.id}"

    async def _decide_and_link(
        self,
        session: AsyncSession,
        feedback_id: UUID,
        signal: ExtractedSignal,
        embedding: list[float],
    ) -> SynthesisOutcome:
        # Re-check under lock: a concurrent delivery may have finished first
        result = await session.execute(
            select(FeedbackItem).where(FeedbackItem.id == feedback_id).with_for_update()
        )
        feedback = result.scalar_one_or_none()
        if feedback is None:
            raise FeedbackNotFoundError(f"Feedback {feedback_id} not found")
        if feedback.processed:
            return SynthesisOutcome(feedback_id=feedback_id, skipped=True)

        # Step 4: Nearest neighbor, re-read inside the transaction
        match = await self._index(session).nearest(embedding)

        # Step 5: Strictly-less-than decision rule
        if match is not None and match.distance < self.config.auto_merge_threshold:
            feature_id = match.feature.id
            similarity_score: float | None = match.distance
            created = False
            logger.info(
                f"Auto-merging feedback {feedback_id} into feature "
                f"'{match.feature.title}' (distance={match.distance:.4f})"
            )
        else:
            feature = await self._create_feature(session, signal, embedding)
            feature_id = feature.id
            similarity_score = None
            created = True
            logger.info(f"Created new feature '{feature.title}' from feedback {feedback_id}")

        # Step 6: Link
        linked = await self._insert_link(session, feedback_id, feature_id, similarity_score)

        # Step 7: Mark processed
        feedback.processed = True

        # Step 8: Aggregates
        await AggregateMaintainer(session).recalculate(feature_id)

        return SynthesisOutcome(
            feedback_id=feedback_id,
            feature_id=feature_id,
            created_feature=created,
            linked=linked,
            similarity_score=similarity_score,
            degraded=signal.degraded,
        )

    async def _create_feature(
        self,
        session: AsyncSession,
        signal: ExtractedSignal,
        embedding: list[float],
    ) -> Feature:
        feature = Feature(
            title=signal.title,
            problem_summary=signal.summary,
            sentiment=signal.sentiment,
            urgency_score=signal.urgency,
            tags=list(signal.tags),
            embedding=list(embedding),
        )
        session.add(feature)
        await session.flush()
        return feature

    async def _insert_link(
        self,
        session: AsyncSession,
        feedback_id: UUID,
        feature_id: UUID,
        similarity_score: float | None,
    ) -> bool:
        """Insert the link; an existing (feedback, feature) pair is a no-op."""
        values = {
            "feedback_id": feedback_id,
            "feature_id": feature_id,
            "similarity_score": similarity_score,
        }
        dialect = session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            result = await session.execute(
                insert(FeedbackFeatureLink.__table__)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["feedback_id", "feature_id"])
            )
            inserted = result.rowcount == 1
        else:
            existing = await session.execute(
                select(FeedbackFeatureLink.id).where(
                    FeedbackFeatureLink.feedback_id == feedback_id,
                    FeedbackFeatureLink.feature_id == feature_id,
                )
            )
            inserted = existing.scalar_one_or_none() is None
            if inserted:
                session.add(FeedbackFeatureLink(**values))
                await session.flush()

        if not inserted:
            logger.info(f"Feedback {feedback_id} already linked to feature {feature_id}")
        return inserted

    def _index(self, session: AsyncSession) -> FeatureIndex:
        return FeatureIndex(session, self.config.embedding_dimensions)
