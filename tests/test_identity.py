"""Tests for identity attachment and weight calculation."""

import pytest
from uuid import uuid4

from sqlalchemy import select

from feedback_synth.models import Customer, Feature, FeedbackItem
from feedback_synth.services.errors import FeedbackNotFoundError, InvalidArgumentError
from feedback_synth.services.identity import CustomerProfile, IdentityService, calculate_weight

from factories import add_feature, add_feedback, link, reload, unit


class TestCalculateWeight:

    def test_base_weight_without_revenue(self):
        assert calculate_weight(0) == 1.0

    def test_revenue_adds_one_per_thousand(self):
        assert calculate_weight(50_000) == pytest.approx(51.0)


class TestAttachCustomer:

    async def test_creates_customer_and_sets_weight(self, session_factory):
        item = await add_feedback(session_factory, "need sso")

        async with session_factory() as session:
            await IdentityService(session).attach_customer(
                item.id,
                CustomerProfile(email="CTO@Acme.test", arr=12_000, company_name="Acme"),
            )
            await session.commit()

        stored = await reload(session_factory, FeedbackItem, item.id)
        assert stored.author_email == "cto@acme.test"
        assert stored.weight == pytest.approx(13.0)

        async with session_factory() as session:
            customer = (await session.execute(select(Customer))).scalar_one()
        assert customer.id == stored.customer_id
        assert customer.company_name == "Acme"

    async def test_recalculates_linked_feature(self, session_factory):
        feature = await add_feature(session_factory, "SSO", unit(1))
        item = await add_feedback(session_factory, "need sso")
        await link(session_factory, item.id, feature.id)

        async with session_factory() as session:
            await IdentityService(session).attach_customer(
                item.id, CustomerProfile(email="cto@acme.test", arr=9_000)
            )
            await session.commit()

        stored = await reload(session_factory, Feature, feature.id)
        assert stored.feedback_count == 1
        assert stored.total_weight == pytest.approx(10.0)
        assert stored.total_arr == pytest.approx(9_000)

    async def test_revenue_change_updates_every_feature_of_customer(self, session_factory):
        sso = await add_feature(session_factory, "SSO", unit(1))
        audit = await add_feature(session_factory, "Audit log", unit(0, 1))
        first = await add_feedback(session_factory, "need sso")
        second = await add_feedback(session_factory, "need audit log")
        await link(session_factory, first.id, sso.id)
        await link(session_factory, second.id, audit.id)

        async with session_factory() as session:
            service = IdentityService(session)
            await service.attach_customer(first.id, CustomerProfile(email="a@acme.test", arr=1_000))
            await service.attach_customer(second.id, CustomerProfile(email="a@acme.test", arr=5_000))
            await session.commit()

        assert (await reload(session_factory, Feature, sso.id)).total_arr == pytest.approx(5_000)
        assert (await reload(session_factory, Feature, audit.id)).total_arr == pytest.approx(5_000)

    async def test_unknown_feedback(self, session):
        with pytest.raises(FeedbackNotFoundError):
            await IdentityService(session).attach_customer(
                uuid4(), CustomerProfile(email="a@b.test")
            )

    async def test_invalid_email(self, session_factory, session):
        item = await add_feedback(session_factory, "hello")

        with pytest.raises(InvalidArgumentError):
            await IdentityService(session).attach_customer(item.id, CustomerProfile(email="nobody"))
