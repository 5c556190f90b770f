import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from config import settings
from database import get_db
from generation.client import GenerationResult
from main import app
from routers import recommendations as recommendations_router
from services.recommendations import RecommendationEngine


CHANNEL_RESPONSE = json.dumps(
    {
        "recommendations": [
            {
                "category": "Thumbnail Improvement",
                "priority": "High",
                "summary": "Use one face and three words",
                "detailedDescription": "1) Redesign the last five thumbnails (2 hours).",
                "effortLevel": "Medium",
                "timeline": {"implementation": "1 week", "resultsTimeframe": "2-4 weeks"},
                "successMetric": {"metric": "CTR", "currentValue": 4, "targetValue": 5, "confidenceLevel": "Medium"},
                "reasoning": "Simple thumbnails read at small sizes",
            }
        ]
    }
)


class ScriptedClient:
    def __init__(self, content=CHANNEL_RESPONSE, error=None):
        self.content = content
        self.error = error
        self.calls = 0

    async def generate(self, prompt, options):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return GenerationResult(content=self.content, model="scripted-model", duration_ms=1)


async def _no_sleep(seconds):
    return None


@pytest_asyncio.fixture
async def api_client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def _use_client(generation_client):
    app.dependency_overrides[recommendations_router.get_engine] = lambda: RecommendationEngine(
        generation_client, max_retries=2, sleep=_no_sleep
    )


def _channel_payload(strong_video, weak_video, channel_profile):
    return {
        "channel": channel_profile.model_dump(mode="json"),
        "videos": [strong_video.model_dump(mode="json"), weak_video.model_dump(mode="json")],
    }


@pytest.mark.asyncio
async def test_channel_recommendations_are_generated_and_persisted(api_client, strong_video, weak_video, channel_profile):
    _use_client(ScriptedClient())

    resp = await api_client.post(
        "/recommendations/channel",
        json=_channel_payload(strong_video, weak_video, channel_profile),
    )
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["target_id"] == "UC_TEST"
    assert payload["target_type"] == "channel"
    assert payload["score"]["grade"]
    assert len(payload["recommendations"]) == 1
    assert payload["recommendations"][0]["category"] == "thumbnail_improvement"

    latest = await api_client.get("/recommendations/channel/UC_TEST/latest")
    assert latest.status_code == 200
    assert latest.json()["recommendations"][0]["id"] == payload["recommendations"][0]["id"]
    assert latest.json()["score"] == payload["score"]


@pytest.mark.asyncio
async def test_channel_snapshots_are_pruned(api_client, strong_video, weak_video, channel_profile, monkeypatch):
    monkeypatch.setattr(settings, "RECOMMENDATION_SNAPSHOTS_TO_KEEP", 1)
    _use_client(ScriptedClient())
    body = _channel_payload(strong_video, weak_video, channel_profile)

    await api_client.post("/recommendations/channel", json=body)
    await api_client.post("/recommendations/channel", json=body)

    stats = await api_client.get("/recommendations/channel/UC_TEST/stats")
    assert stats.status_code == 200
    assert stats.json()["total"] == 1


@pytest.mark.asyncio
async def test_generation_failure_maps_to_502(api_client, strong_video, weak_video, channel_profile):
    client = ScriptedClient(error=TimeoutError("upstream timed out"))
    _use_client(client)

    resp = await api_client.post(
        "/recommendations/channel",
        json=_channel_payload(strong_video, weak_video, channel_profile),
    )

    assert resp.status_code == 502
    assert resp.json()["detail"] == "AI generation failed after 2 attempts: upstream timed out"
    assert client.calls == 2


@pytest.mark.asyncio
async def test_missing_channel_id_maps_to_422(api_client, strong_video, weak_video, channel_profile):
    _use_client(ScriptedClient())
    body = _channel_payload(strong_video, weak_video, channel_profile)
    body["channel"]["channel_id"] = ""

    resp = await api_client.post("/recommendations/channel", json=body)

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_missing_openai_key_maps_to_500(api_client, strong_video, monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")

    resp = await api_client.post("/recommendations/title", json={"video": strong_video.model_dump(mode="json")})

    assert resp.status_code == 500
    assert resp.json()["detail"] == "OPENAI_API_KEY is not configured"


@pytest.mark.asyncio
async def test_title_suggestions(api_client, strong_video):
    _use_client(ScriptedClient(content="Title 1: Edit Faster Today\nTitle 2: The 3x Editing Workflow"))

    resp = await api_client.post("/recommendations/title", json={"video": strong_video.model_dump(mode="json")})

    assert resp.status_code == 200
    assert resp.json() == {"titles": ["Edit Faster Today", "The 3x Editing Workflow"]}


@pytest.mark.asyncio
async def test_video_recommendations_need_no_model(api_client, weak_video, monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")

    resp = await api_client.post("/recommendations/video", json={"video": weak_video.model_dump(mode="json")})

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["target_type"] == "video"
    assert payload["score"]["overall"] < 50
    assert payload["recommendations"][0]["priority"] == "critical"

    latest = await api_client.get("/recommendations/video/vid_weak/latest")
    assert [r["id"] for r in latest.json()["recommendations"]] == [r["id"] for r in payload["recommendations"]]


@pytest.mark.asyncio
async def test_latest_snapshot_404(api_client):
    resp = await api_client.get("/recommendations/channel/UC_NONE/latest")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_unknown_target_type_is_rejected(api_client):
    resp = await api_client.get("/recommendations/playlist/PL1/latest")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_status_and_feedback_endpoints(api_client, weak_video):
    created = await api_client.post("/recommendations/video", json={"video": weak_video.model_dump(mode="json")})
    rec_id = created.json()["recommendations"][0]["id"]

    started = await api_client.patch(f"/recommendations/{rec_id}/status", json={"status": "in_progress", "notes": "on it"})
    assert started.status_code == 200
    assert started.json()["status"] == "in_progress"
    assert started.json()["implementation_notes"] == "on it"

    done = await api_client.patch(f"/recommendations/{rec_id}/status", json={"status": "implemented"})
    assert done.status_code == 200
    assert done.json()["implemented_at"] is not None

    illegal = await api_client.patch(f"/recommendations/{rec_id}/status", json={"status": "pending"})
    assert illegal.status_code == 409

    feedback = await api_client.post(f"/recommendations/{rec_id}/feedback", json={"rating": 5, "helpful": True})
    assert feedback.status_code == 200
    assert feedback.json()["user_rating"] == 5
    assert feedback.json()["helpful"] is True

    bad_rating = await api_client.post(f"/recommendations/{rec_id}/feedback", json={"rating": 9})
    assert bad_rating.status_code == 422


@pytest.mark.asyncio
async def test_status_and_feedback_unknown_id(api_client):
    status = await api_client.patch("/recommendations/missing/status", json={"status": "dismissed"})
    feedback = await api_client.post("/recommendations/missing/feedback", json={"rating": 3})

    assert status.status_code == 404
    assert feedback.status_code == 404


@pytest.mark.asyncio
async def test_history_lists_recommendations_across_snapshots(api_client, weak_video):
    body = {"video": weak_video.model_dump(mode="json")}
    first = await api_client.post("/recommendations/video", json=body)
    second = await api_client.post("/recommendations/video", json=body)
    per_snapshot = len(first.json()["recommendations"])

    history = await api_client.get("/recommendations/video/vid_weak/history")
    limited = await api_client.get("/recommendations/video/vid_weak/history", params={"limit": 1})

    assert history.status_code == 200
    assert len(history.json()) == 2 * per_snapshot
    assert {r["id"] for r in second.json()["recommendations"]} <= {r["id"] for r in history.json()}
    assert len(limited.json()) == 1
