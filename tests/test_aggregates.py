"""Tests for the Feature Aggregate Maintainer."""

import pytest
from uuid import uuid4

from feedback_synth.models import Feature
from feedback_synth.services.aggregates import AggregateMaintainer
from feedback_synth.services.errors import FeatureNotFoundError

from factories import add_customer, add_feature, add_feedback, link, reload, unit


class TestRecalculate:

    async def test_counts_weights_and_distinct_customer_revenue(self, session_factory):
        """A customer with several items contributes their revenue once."""
        acme = await add_customer(session_factory, "cto@acme.test", arr=50_000)
        globex = await add_customer(session_factory, "pm@globex.test", arr=20_000)
        feature = await add_feature(session_factory, "SSO", unit(1))

        items = [
            await add_feedback(session_factory, "sso 1", weight=51.0, customer_id=acme.id),
            await add_feedback(session_factory, "sso 2", weight=51.0, customer_id=acme.id),
            await add_feedback(session_factory, "sso 3", weight=21.0, customer_id=globex.id),
            await add_feedback(session_factory, "sso 4", weight=1.0),
        ]
        for item in items:
            await link(session_factory, item.id, feature.id)

        async with session_factory() as session:
            await AggregateMaintainer(session).recalculate(feature.id)
            await session.commit()

        stored = await reload(session_factory, Feature, feature.id)
        assert stored.feedback_count == 4
        assert stored.total_weight == pytest.approx(124.0)
        assert stored.total_arr == pytest.approx(70_000)

    async def test_recalculate_is_idempotent(self, session_factory):
        feature = await add_feature(session_factory, "CSV export", unit(0, 1))
        item = await add_feedback(session_factory, "export please", weight=3.0)
        await link(session_factory, item.id, feature.id)

        async with session_factory() as session:
            maintainer = AggregateMaintainer(session)
            first = await maintainer.compute(feature.id)
            await maintainer.recalculate(feature.id)
            await maintainer.recalculate(feature.id)
            second = await maintainer.compute(feature.id)
            await session.commit()

        assert first == second
        stored = await reload(session_factory, Feature, feature.id)
        assert stored.feedback_count == 1
        assert stored.total_weight == pytest.approx(3.0)

    async def test_overwrites_drifted_values(self, session_factory):
        """Stored aggregates are replaced, never incremented."""
        feature = await add_feature(
            session_factory, "Drifted", unit(1), feedback_count=99, total_weight=500.0, total_arr=1.0
        )

        async with session_factory() as session:
            await AggregateMaintainer(session).recalculate(feature.id)
            await session.commit()

        stored = await reload(session_factory, Feature, feature.id)
        assert stored.feedback_count == 0
        assert stored.total_weight == 0.0
        assert stored.total_arr == 0.0

    async def test_unknown_feature(self, session):
        with pytest.raises(FeatureNotFoundError):
            await AggregateMaintainer(session).recalculate(uuid4())
