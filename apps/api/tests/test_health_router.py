import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from main import app
from routers import health


@pytest_asyncio.fixture
async def api_client(tmp_path, monkeypatch):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'health.db'}")
    monkeypatch.setattr(health, "engine", engine)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    await engine.dispose()


@pytest.mark.asyncio
async def test_health_reports_configuration(api_client, monkeypatch):
    monkeypatch.setattr(health.settings, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(health.settings, "YOUTUBE_API_KEY", "")

    resp = await api_client.get("/health")

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["status"] == "healthy"
    assert payload["database"] == "up"
    assert payload["openai_api_key"] == "configured"
    assert payload["youtube_api_key"] == "missing"


@pytest.mark.asyncio
async def test_ready_requires_openai_key(api_client, monkeypatch):
    monkeypatch.setattr(health.settings, "OPENAI_API_KEY", "your_openai_key")

    resp = await api_client.get("/health/ready")

    assert resp.status_code == 503
    assert resp.json()["missing"] == ["OPENAI_API_KEY"]


@pytest.mark.asyncio
async def test_ready_and_live(api_client, monkeypatch):
    monkeypatch.setattr(health.settings, "OPENAI_API_KEY", "sk-test")

    ready = await api_client.get("/health/ready")
    live = await api_client.get("/health/live")

    assert ready.json() == {"ready": True}
    assert live.json() == {"alive": True}
