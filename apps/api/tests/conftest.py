import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import models  # noqa: F401
from analysis.models import ChannelProfile, TrafficSource, VideoMetrics
from database import Base
from generation.client import GenerationResult


class FakeGenerationClient:
    """Returns canned responses in order; raises queued exceptions."""

    def __init__(self, *responses, model: str = "fake-model"):
        self.responses = list(responses)
        self.model = model
        self.calls = []

    async def generate(self, prompt, options):
        self.calls.append((prompt, options))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        return GenerationResult(content=response, model=options.model or self.model, duration_ms=5, tokens_used=42)


async def _no_sleep(seconds):
    return None


@pytest.fixture
def fake_client_factory():
    return FakeGenerationClient


@pytest.fixture
def no_sleep():
    return _no_sleep


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "coach.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def strong_video():
    return VideoMetrics(
        video_id="vid_strong",
        channel_id="UC_TEST",
        title="How I Edit Videos 3x Faster",
        ctr=12,
        main_traffic_source=TrafficSource.SEARCH,
        avg_percentage_viewed=60,
        avg_view_duration=300,
        duration_seconds=400,
        retention_at_15s=85,
        likes=500,
        comments=60,
        shares=10,
        views=10000,
        impressions=83000,
        subscribers_gained=25,
        tags=["editing", "premiere"],
    )


@pytest.fixture
def weak_video():
    return VideoMetrics(
        video_id="vid_weak",
        channel_id="UC_TEST",
        title="Vlog 12",
        ctr=2,
        avg_percentage_viewed=25,
        avg_view_duration=90,
        duration_seconds=900,
        retention_at_15s=55,
        likes=20,
        comments=1,
        shares=0,
        views=5000,
        impressions=250000,
    )


@pytest.fixture
def channel_profile():
    return ChannelProfile(
        channel_id="UC_TEST",
        title="Test Channel",
        subscriber_count=12000,
        video_count=48,
        primary_topics=["video editing", "creator tools"],
        upload_frequency="weekly",
    )
