"""Tests for the Manual Merge Operator."""

import pytest
from uuid import uuid4

from sqlalchemy import select

from feedback_synth.models import Feature, FeatureStatus, FeedbackFeatureLink
from feedback_synth.services.errors import InvalidArgumentError
from feedback_synth.services.merge import FeatureMergeService

from factories import add_customer, add_feature, add_feedback, link, reload, unit


async def feedback_ids_on(session_factory, feature_id) -> list:
    async with session_factory() as session:
        result = await session.execute(
            select(FeedbackFeatureLink.feedback_id).where(
                FeedbackFeatureLink.feature_id == feature_id
            )
        )
        return list(result.scalars().all())


class TestMerge:

    async def test_merge_moves_links_and_declines_source(self, session_factory):
        customer = await add_customer(session_factory, "ops@initech.test", arr=10_000)
        source = await add_feature(session_factory, "Dark theme", unit(1, 0.1))
        target = await add_feature(session_factory, "Dark mode", unit(1, 0))

        shared = await add_feedback(session_factory, "shared", weight=11.0, customer_id=customer.id)
        only_source = await add_feedback(session_factory, "only source", weight=2.0)
        only_target = await add_feedback(session_factory, "only target", weight=1.0)

        await link(session_factory, shared.id, source.id, 0.01)
        await link(session_factory, shared.id, target.id)
        await link(session_factory, only_source.id, source.id, 0.02)
        await link(session_factory, only_target.id, target.id)

        async with session_factory() as session:
            merged = await FeatureMergeService(session).merge(source.id, target.id)
            await session.commit()

        assert merged.id == target.id

        # Union of both link sets, no duplicate pair
        on_target = await feedback_ids_on(session_factory, target.id)
        assert sorted(on_target, key=str) == sorted(
            [shared.id, only_source.id, only_target.id], key=str
        )
        assert await feedback_ids_on(session_factory, source.id) == []

        stored_target = await reload(session_factory, Feature, target.id)
        assert stored_target.feedback_count == 3
        assert stored_target.total_weight == pytest.approx(14.0)
        assert stored_target.total_arr == pytest.approx(10_000)

        stored_source = await reload(session_factory, Feature, source.id)
        assert stored_source.status == FeatureStatus.DECLINED
        assert stored_source.feedback_count == 0
        assert stored_source.total_weight == 0.0
        assert stored_source.embedding == unit(1, 0.1)

    async def test_merge_into_self_rejected(self, session_factory):
        feature = await add_feature(session_factory, "Dark mode", unit(1))

        async with session_factory() as session:
            with pytest.raises(InvalidArgumentError):
                await FeatureMergeService(session).merge(feature.id, feature.id)

    async def test_merge_with_missing_feature_rejected(self, session_factory):
        feature = await add_feature(session_factory, "Dark mode", unit(1))

        async with session_factory() as session:
            with pytest.raises(InvalidArgumentError):
                await FeatureMergeService(session).merge(uuid4(), feature.id)

        stored = await reload(session_factory, Feature, feature.id)
        assert stored.status == FeatureStatus.DISCOVERED
