"""
Scoring router.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from analysis.models import AlgorithmScore, BenchmarkComparison, ChannelProfile, VideoMetrics
from analysis.scoring import AlgorithmScorer
from database import get_db
from ingestion.youtube import YouTubeClient, create_youtube_client, to_channel_profile, to_video_metrics
from services.snapshots import SnapshotStore, get_snapshot_store

router = APIRouter()
logger = logging.getLogger(__name__)

RECENT_VIDEOS_IN_RESPONSE = 10


class ChannelScoreRequest(BaseModel):
    videos: List[VideoMetrics]


class ChannelAnalysisResponse(BaseModel):
    channel: ChannelProfile
    score: AlgorithmScore
    previous_score: Optional[AlgorithmScore] = None
    change: Optional[BenchmarkComparison] = None
    recent_videos: List[VideoMetrics]
    video_count: int


def get_scorer() -> AlgorithmScorer:
    return AlgorithmScorer()


def get_youtube_client() -> YouTubeClient:
    """YouTube client from settings. Missing key surfaces as 500."""
    try:
        return create_youtube_client()
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_store(db: AsyncSession = Depends(get_db)) -> SnapshotStore:
    return get_snapshot_store(db)


@router.post("/video", response_model=AlgorithmScore)
async def score_video(video: VideoMetrics, scorer: AlgorithmScorer = Depends(get_scorer)):
    """Score one video's algorithm performance (0-100)."""
    return scorer.score_video(video)


@router.post("/channel", response_model=AlgorithmScore)
async def score_channel(request: ChannelScoreRequest, scorer: AlgorithmScorer = Depends(get_scorer)):
    """Average per-video scores across a channel. Empty input yields a zero score."""
    return scorer.score_channel(request.videos)


@router.get("/channel/{channel_id}", response_model=ChannelAnalysisResponse)
async def analyze_channel(
    channel_id: str,
    max_videos: int = Query(20, ge=1, le=50),
    youtube: YouTubeClient = Depends(get_youtube_client),
    scorer: AlgorithmScorer = Depends(get_scorer),
    store: SnapshotStore = Depends(get_store),
):
    """
    Fetch a channel and its recent uploads from YouTube and score them.

    Data API records carry no CTR or retention, so those sub-scores sit
    at their floor. `change` compares against the last stored channel
    score, when there is one.
    """
    channel_data = youtube.get_channel_data(channel_id)
    if channel_data is None:
        raise HTTPException(status_code=404, detail="Channel not found")

    video_ids = youtube.get_channel_video_ids(channel_data, max_results=max_videos)
    videos = [to_video_metrics(record) for record in youtube.get_videos_data_batch(video_ids)]
    score = scorer.score_channel(videos)
    logger.info("Analyzed channel %s: %d videos, overall %.2f", channel_id, len(videos), score.overall)

    previous_score = await store.get_latest_algorithm_score(channel_id)
    change = None
    if previous_score is not None:
        change = scorer.compare_against_benchmark(score.overall, previous_score.overall)

    return ChannelAnalysisResponse(
        channel=to_channel_profile(channel_data),
        score=score,
        previous_score=previous_score,
        change=change,
        recent_videos=videos[:RECENT_VIDEOS_IN_RESPONSE],
        video_count=len(videos),
    )
