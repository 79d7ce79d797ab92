"""
Identity attachment.

Applies a resolved customer profile to a feedback item. Weight is derived
from the customer's annual recurring revenue:

    weight = 1 + arr / 1000

A customer with no revenue therefore weighs the same as an anonymous author.
Any feature whose aggregates depend on the changed values is recalculated in
the same transaction.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Customer, FeedbackFeatureLink, FeedbackItem
from .aggregates import AggregateMaintainer
from .errors import FeedbackNotFoundError, InvalidArgumentError

logger = logging.getLogger(__name__)

BASE_WEIGHT = 1.0
ARR_PER_WEIGHT_UNIT = 1000.0


def calculate_weight(arr: float) -> float:
    """Customer-value weight for one feedback item."""
    return BASE_WEIGHT + arr / ARR_PER_WEIGHT_UNIT


@dataclass
class CustomerProfile:
    """What the identifier knows about a feedback author."""
    email: str
    arr: float = 0.0
    name: str | None = None
    company_name: str | None = None
    plan_name: str | None = None


class IdentityService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.aggregates = AggregateMaintainer(session)

    async def attach_customer(self, feedback_id: UUID, profile: CustomerProfile) -> FeedbackItem:
        if not profile.email or "@" not in profile.email:
            raise InvalidArgumentError(f"Invalid customer email: {profile.email!r}")
        if profile.arr < 0:
            raise InvalidArgumentError("Customer ARR cannot be negative")

        item = await self.session.get(FeedbackItem, feedback_id)
        if item is None:
            raise FeedbackNotFoundError(f"Feedback {feedback_id} not found")

        customer, arr_changed = await self._upsert_customer(profile)

        item.customer_id = customer.id
        item.author_email = customer.email
        item.weight = calculate_weight(customer.arr)
        await self.session.flush()

        # The item's own features, plus every feature this customer's revenue counts toward
        affected = set(await self._features_for_items([item.id]))
        if arr_changed:
            affected.update(await self._features_for_customer(customer.id))

        for feature_id in sorted(affected, key=str):
            await self.aggregates.recalculate(feature_id)

        logger.info(
            f"Identity resolved for feedback {feedback_id}: {customer.email} "
            f"(${customer.arr:,.0f} ARR, weight={item.weight:.2f})"
        )
        return item

    async def _upsert_customer(self, profile: CustomerProfile) -> tuple[Customer, bool]:
        email = profile.email.strip().lower()
        result = await self.session.execute(select(Customer).where(Customer.email == email))
        customer = result.scalar_one_or_none()

        if customer is None:
            customer = Customer(email=email, arr=profile.arr)
            self.session.add(customer)
            arr_changed = False
        else:
            arr_changed = customer.arr != profile.arr
            customer.arr = profile.arr

        customer.name = profile.name or customer.name
        customer.company_name = profile.company_name or customer.company_name
        customer.plan_name = profile.plan_name or customer.plan_name
        await self.session.flush()
        return customer, arr_changed

    async def _features_for_items(self, feedback_ids: list[UUID]) -> list[UUID]:
        result = await self.session.execute(
            select(FeedbackFeatureLink.feature_id)
            .where(FeedbackFeatureLink.feedback_id.in_(feedback_ids))
            .distinct()
        )
        return list(result.scalars().all())

    async def _features_for_customer(self, customer_id: UUID) -> list[UUID]:
        result = await self.session.execute(
            select(FeedbackFeatureLink.feature_id)
            .join(FeedbackItem, FeedbackItem.id == FeedbackFeatureLink.feedback_id)
            .where(FeedbackItem.customer_id == customer_id)
            .distinct()
        )
        return list(result.scalars().all())
