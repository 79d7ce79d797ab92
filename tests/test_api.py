"""End-to-end tests of the HTTP surface through httpx's ASGI transport."""

import httpx
import pytest

from feedback_synth.core.database import get_session
from feedback_synth.main import app
from feedback_synth.services.synthesis_queue import SynthesisQueue

from factories import add_feature, add_feedback, unit

PREFIX = "/api/v1"


@pytest.fixture
async def client(session_factory, pipeline):
    async def session_override():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # Workers are not started: submitted ids stay queued for inspection
    app.state.pipeline = pipeline
    app.state.synthesis_queue = SynthesisQueue(pipeline, workers=1)
    app.dependency_overrides[get_session] = session_override

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    del app.state.pipeline
    del app.state.synthesis_queue


# =============================================================================
# TEST: FEEDBACK INTAKE
# =============================================================================


class TestFeedbackIntake:

    async def test_submit_stores_and_queues(self, client):
        response = await client.post(
            f"{PREFIX}/feedback",
            json={"source": "chat", "content": "Please add dark mode", "external_id": "msg-1"},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["created"] is True
        assert body["queued"] is True

        queue_status = (await client.get(f"{PREFIX}/synthesis/queue")).json()
        assert queue_status["queue_depth"] == 1
        assert queue_status["submitted"] == 1

        stored = await client.get(f"{PREFIX}/feedback/{body['id']}")
        assert stored.status_code == 200
        assert stored.json()["processed"] is False
        assert stored.json()["weight"] == 1.0

    async def test_redelivery_is_not_stored_twice(self, client):
        payload = {"source": "helpdesk", "content": "SSO please", "external_id": "ticket-7"}

        first = (await client.post(f"{PREFIX}/feedback", json=payload)).json()
        second = (await client.post(f"{PREFIX}/feedback", json=payload)).json()

        assert second["id"] == first["id"]
        assert second["created"] is False

        listing = (await client.get(f"{PREFIX}/feedback")).json()
        assert listing["total"] == 1

    async def test_customer_block_sets_weight(self, client):
        response = await client.post(
            f"{PREFIX}/feedback",
            json={
                "source": "call_transcript",
                "content": "We need audit logs before renewal",
                "customer": {"email": "cto@acme.com", "arr": 24000, "company_name": "Acme"},
            },
        )
        feedback_id = response.json()["id"]

        stored = (await client.get(f"{PREFIX}/feedback/{feedback_id}")).json()
        assert stored["weight"] == pytest.approx(25.0)
        assert stored["author_email"] == "cto@acme.com"
        assert stored["customer_id"] is not None

    async def test_blank_content_rejected(self, client):
        response = await client.post(
            f"{PREFIX}/feedback", json={"source": "chat", "content": "   "}
        )
        assert response.status_code == 422

    async def test_unknown_feedback(self, client):
        response = await client.get(f"{PREFIX}/feedback/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404


# =============================================================================
# TEST: FEATURES AND REVIEW TOOLING
# =============================================================================


class TestFeatureRoutes:

    async def test_synthesized_feature_detail(self, client, pipeline, extractor, session_factory):
        extractor.vectors["dark mode please"] = unit(1)
        item = await add_feedback(session_factory, "dark mode please", weight=3.0)
        outcome = await pipeline.synthesize(item.id)

        response = await client.get(f"{PREFIX}/features/{outcome.feature_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["feedback_count"] == 1
        assert body["total_weight"] == pytest.approx(3.0)
        assert [f["id"] for f in body["feedback"]] == [str(item.id)]
        assert body["feedback"][0]["similarity_score"] is None

    async def test_list_sorted_by_revenue(self, client, session_factory):
        await add_feature(session_factory, "Small", unit(1), total_arr=1_000)
        await add_feature(session_factory, "Large", unit(0, 1), total_arr=90_000)

        body = (await client.get(f"{PREFIX}/features")).json()

        assert [f["title"] for f in body["items"]] == ["Large", "Small"]
        assert body["total"] == 2

        ascending = (
            await client.get(f"{PREFIX}/features", params={"sort": "total_arr", "order": "asc"})
        ).json()
        assert [f["title"] for f in ascending["items"]] == ["Small", "Large"]

    async def test_patch_cannot_touch_aggregates(self, client, session_factory):
        feature = await add_feature(session_factory, "Dark mode", unit(1))

        response = await client.patch(
            f"{PREFIX}/features/{feature.id}",
            json={"status": "planned", "priority": 2, "feedback_count": 500},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "planned"
        assert body["priority"] == 2
        assert body["feedback_count"] == 0

    @pytest.mark.parametrize("field", ["title", "status", "priority", "tags", "is_public"])
    async def test_patch_rejects_null_for_required_fields(self, client, session_factory, field):
        feature = await add_feature(session_factory, "Dark mode", unit(1))

        response = await client.patch(f"{PREFIX}/features/{feature.id}", json={field: None})

        assert response.status_code == 422
        unchanged = (await client.get(f"{PREFIX}/features/{feature.id}")).json()
        assert unchanged["title"] == "Dark mode"
        assert unchanged["status"] == "discovered"

    async def test_patch_clears_description(self, client, session_factory):
        feature = await add_feature(session_factory, "Dark mode", unit(1), description="Old notes")

        response = await client.patch(f"{PREFIX}/features/{feature.id}", json={"description": None})

        assert response.status_code == 200
        assert response.json()["description"] is None

    async def test_similar_and_merge(self, client, session_factory):
        target = await add_feature(session_factory, "Dark mode", unit(1, 0))
        source = await add_feature(session_factory, "Dark theme", unit(1, 0.1))

        similar = (await client.get(f"{PREFIX}/features/{target.id}/similar")).json()
        assert [s["id"] for s in similar] == [str(source.id)]

        merged = await client.post(
            f"{PREFIX}/features/merge",
            json={"source_id": str(source.id), "target_id": str(target.id)},
        )
        assert merged.status_code == 200
        assert merged.json()["id"] == str(target.id)

        declined = (await client.get(f"{PREFIX}/features/{source.id}")).json()
        assert declined["status"] == "declined"

        # Declined features drop out of review results
        assert (await client.get(f"{PREFIX}/features/{target.id}/similar")).json() == []

    async def test_merge_into_self_is_bad_request(self, client, session_factory):
        feature = await add_feature(session_factory, "Dark mode", unit(1))

        response = await client.post(
            f"{PREFIX}/features/merge",
            json={"source_id": str(feature.id), "target_id": str(feature.id)},
        )

        assert response.status_code == 400

    async def test_unknown_feature(self, client):
        response = await client.get(
            f"{PREFIX}/features/00000000-0000-0000-0000-000000000000/similar"
        )
        assert response.status_code == 404

    async def test_reprocess(self, client, extractor, session_factory):
        extractor.vectors["csv export"] = unit(0, 1)
        await add_feedback(session_factory, "csv export")

        response = await client.post(f"{PREFIX}/features/reprocess", json={"limit": 10})

        assert response.status_code == 200
        assert response.json() == {"processed": 1, "errors": 0}


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
