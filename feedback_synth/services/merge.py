"""
Manual Merge Operator.

Absorbs one feature into another:
- Links on source move to target, except items already linked to target
  (those source links are dropped, never duplicated)
- Both features' aggregates are recomputed (source ends at zero)
- Source is set to DECLINED; it is never deleted

Runs inside the caller's transaction; a failure at any step leaves both
features as they were once the caller rolls back.
"""

import logging
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Feature, FeatureStatus, FeedbackFeatureLink
from .aggregates import AggregateMaintainer
from .errors import InvalidArgumentError, StorageError

logger = logging.getLogger(__name__)


class FeatureMergeService:
    """Operator-driven consolidation of duplicate features."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.aggregates = AggregateMaintainer(session)

    async def merge(self, source_id: UUID, target_id: UUID) -> Feature:
        if source_id == target_id:
            raise InvalidArgumentError("Cannot merge a feature into itself")

        try:
            source, target = await self._lock_pair(source_id, target_id)

            # Items already on target: their source links are dropped
            on_target = select(FeedbackFeatureLink.feedback_id).where(
                FeedbackFeatureLink.feature_id == target_id
            )
            moved = await self.session.execute(
                update(FeedbackFeatureLink)
                .where(
                    FeedbackFeatureLink.feature_id == source_id,
                    FeedbackFeatureLink.feedback_id.not_in(on_target),
                )
                .values(feature_id=target_id)
                .execution_options(synchronize_session=False)
            )
            dropped = await self.session.execute(
                delete(FeedbackFeatureLink)
                .where(FeedbackFeatureLink.feature_id == source_id)
                .execution_options(synchronize_session=False)
            )

            source.status = FeatureStatus.DECLINED
            await self.aggregates.recalculate(source_id)
            target = await self.aggregates.recalculate(target_id)
        except SQLAlchemyError as e:
            logger.error(f"Merge of {source_id} into {target_id} failed: {e}")
            raise StorageError(f"Failed to merge {source_id} into {target_id}: {e}") from e

        logger.info(
            f"Merged feature '{source.title}' into '{target.title}': "
            f"{moved.rowcount} links moved, {dropped.rowcount} duplicates dropped"
        )
        return target

    async def _lock_pair(self, source_id: UUID, target_id: UUID) -> tuple[Feature, Feature]:
        """Lock both feature rows in id order so opposing merges cannot deadlock."""
        result = await self.session.execute(
            select(Feature)
            .where(Feature.id.in_([source_id, target_id]))
            .order_by(Feature.id)
            .with_for_update()
        )
        found = {feature.id: feature for feature in result.scalars().all()}

        missing = [str(i) for i in (source_id, target_id) if i not in found]
        if missing:
            raise InvalidArgumentError(f"Feature(s) not found: {', '.join(missing)}")

        return found[source_id], found[target_id]
