"""Feedback Store: persistence for normalized feedback items."""

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import FeedbackFeatureLink, FeedbackItem, FeedbackSource
from .errors import FeedbackNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class NormalizedFeedback:
    """Source-agnostic shape a collector hands over for storage."""
    source: FeedbackSource
    content: str
    external_id: str | None = None
    author_email: str | None = None
    author_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class FeedbackStore:
    """Service for storing and reading feedback items."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, data: NormalizedFeedback) -> tuple[FeedbackItem, bool]:
        """
        Store a normalized item, returning (item, created).

        A second delivery with the same (source, external_id) returns the
        stored item instead of inserting a copy.
        """
        if data.external_id:
            existing = await self.get_by_external_id(data.source, data.external_id)
            if existing is not None:
                logger.info(
                    f"Duplicate delivery of {data.source.value}:{data.external_id}, "
                    f"keeping feedback {existing.id}"
                )
                return existing, False

        item = FeedbackItem(
            source=data.source,
            external_id=data.external_id,
            content=data.content,
            author_email=data.author_email.lower() if data.author_email else None,
            author_name=data.author_name,
            metadata_=dict(data.metadata),
        )
        self.session.add(item)
        await self.session.flush()
        return item, True

    async def get(self, feedback_id: UUID) -> FeedbackItem:
        item = await self.session.get(FeedbackItem, feedback_id)
        if item is None:
            raise FeedbackNotFoundError(f"Feedback {feedback_id} not found")
        return item

    async def get_by_external_id(
        self,
        source: FeedbackSource,
        external_id: str,
    ) -> FeedbackItem | None:
        result = await self.session.execute(
            select(FeedbackItem).where(
                FeedbackItem.source == source,
                FeedbackItem.external_id == external_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_feedback(
        self,
        processed: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[FeedbackItem], int]:
        """Newest first, optionally filtered by processed state."""
        query = select(FeedbackItem)
        if processed is not None:
            query = query.where(FeedbackItem.processed == processed)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        result = await self.session.execute(
            query.order_by(FeedbackItem.created_at.desc(), FeedbackItem.id)
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all(), total

    async def list_unprocessed_ids(self, limit: int) -> list[UUID]:
        """Oldest unprocessed items first."""
        result = await self.session.execute(
            select(FeedbackItem.id)
            .where(FeedbackItem.processed.is_(False))
            .order_by(FeedbackItem.created_at.asc(), FeedbackItem.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def linked_feature_ids(self, feedback_id: UUID) -> list[UUID]:
        result = await self.session.execute(
            select(FeedbackFeatureLink.feature_id).where(
                FeedbackFeatureLink.feedback_id == feedback_id
            )
        )
        return list(result.scalars().all())
