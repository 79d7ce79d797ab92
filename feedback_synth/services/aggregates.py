"""Feature Aggregate Maintainer.

Derived fields on a Feature (feedback_count, total_weight, total_arr) are a
pure function of its current link set. They are recomputed from scratch on
every call; nothing is incremented in place, so repeated calls cannot drift.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Customer, Feature, FeedbackFeatureLink, FeedbackItem
from .errors import FeatureNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class FeatureAggregates:
    feedback_count: int
    total_weight: float
    total_arr: float


class AggregateMaintainer:
    """Recomputes a feature's aggregate statistics from its links."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def recalculate(self, feature_id: UUID) -> Feature:
        """
        Recompute and store the aggregates of one feature.

        The feature row is locked for the rest of the transaction so two
        link changes landing at once cannot interleave their recomputation.
        """
        await self._session.flush()
        result = await self._session.execute(
            select(Feature)
            .where(Feature.id == feature_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        feature = result.scalar_one_or_none()
        if feature is None:
            raise FeatureNotFoundError(f"Feature {feature_id} not found")

        aggregates = await self.compute(feature_id)

        feature.feedback_count = aggregates.feedback_count
        feature.total_weight = aggregates.total_weight
        feature.total_arr = aggregates.total_arr
        await self._session.flush()

        logger.debug(
            f"Recalculated feature {feature_id}: count={aggregates.feedback_count} "
            f"weight={aggregates.total_weight} arr={aggregates.total_arr}"
        )
        return feature

    async def compute(self, feature_id: UUID) -> FeatureAggregates:
        """Read-only aggregate computation over the current link set."""
        totals = await self._session.execute(
            select(
                func.count(FeedbackFeatureLink.id),
                func.coalesce(func.sum(FeedbackItem.weight), 0.0),
            )
            .select_from(FeedbackFeatureLink)
            .join(FeedbackItem, FeedbackItem.id == FeedbackFeatureLink.feedback_id)
            .where(FeedbackFeatureLink.feature_id == feature_id)
        )
        count, total_weight = totals.one()

        # Each customer counts once per feature, however many items they sent
        linked_customers = (
            select(FeedbackItem.customer_id)
            .join(FeedbackFeatureLink, FeedbackFeatureLink.feedback_id == FeedbackItem.id)
            .where(
                FeedbackFeatureLink.feature_id == feature_id,
                FeedbackItem.customer_id.is_not(None),
            )
            .distinct()
        )
        revenue = await self._session.execute(
            select(func.coalesce(func.sum(Customer.arr), 0.0)).where(
                Customer.id.in_(linked_customers)
            )
        )
        total_arr = revenue.scalar_one()

        return FeatureAggregates(
            feedback_count=int(count),
            total_weight=float(total_weight),
            total_arr=float(total_arr),
        )
