"""Feature service: listing, inspection and editing of synthesized features."""

import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Customer, Feature, FeedbackFeatureLink, FeedbackItem
from ..schemas import FeatureSearchParams, FeatureUpdate, LinkedFeedback, SortOrder
from .errors import FeatureNotFoundError

logger = logging.getLogger(__name__)


class FeatureService:
    """Service for reading and editing features outside the pipeline."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_feature(self, feature_id: UUID) -> Feature:
        feature = await self.session.get(Feature, feature_id)
        if feature is None:
            raise FeatureNotFoundError(f"Feature {feature_id} not found")
        return feature

    async def list_features(
        self,
        params: FeatureSearchParams,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[Feature], int]:
        """List features with filters."""
        query = select(Feature)

        if params.status:
            query = query.where(Feature.status.in_(params.status))

        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(
                or_(
                    Feature.title.ilike(pattern),
                    Feature.problem_summary.ilike(pattern),
                )
            )

        # Count total
        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        sort_column = getattr(Feature, params.sort.value)
        ordering = sort_column.asc() if params.order == SortOrder.ASC else sort_column.desc()

        result = await self.session.execute(
            query.order_by(ordering, Feature.created_at.desc(), Feature.id)
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all(), total

    async def update_feature(self, feature_id: UUID, data: FeatureUpdate) -> Feature:
        """Apply operator edits. Aggregates are never touched here."""
        feature = await self.get_feature(feature_id)

        changes = data.model_dump(exclude_unset=True)
        for field_name, value in changes.items():
            setattr(feature, field_name, value)

        await self.session.flush()
        logger.info(f"Updated feature {feature_id}: {sorted(changes)}")
        return feature

    async def linked_feedback(self, feature_id: UUID) -> list[LinkedFeedback]:
        """Feedback behind a feature, highest weight first, then newest."""
        await self.get_feature(feature_id)

        result = await self.session.execute(
            select(FeedbackItem, FeedbackFeatureLink.similarity_score, Customer)
            .join(FeedbackFeatureLink, FeedbackFeatureLink.feedback_id == FeedbackItem.id)
            .outerjoin(Customer, Customer.id == FeedbackItem.customer_id)
            .where(FeedbackFeatureLink.feature_id == feature_id)
            .order_by(FeedbackItem.weight.desc(), FeedbackItem.created_at.desc())
        )

        return [
            LinkedFeedback(
                id=item.id,
                source=item.source,
                content=item.content,
                author_email=item.author_email,
                author_name=item.author_name,
                weight=item.weight,
                similarity_score=score,
                customer_name=customer.name if customer else None,
                company_name=customer.company_name if customer else None,
                customer_arr=customer.arr if customer else None,
                created_at=item.created_at,
            )
            for item, score, customer in result.all()
        ]
