"""
Recommendations router.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from analysis.models import (
    ChannelProfile,
    Recommendation,
    RecommendationStats,
    RecommendationStatus,
    Snapshot,
    TargetType,
    VideoMetrics,
)
from config import settings
from database import get_db
from generation.retry import GenerationError
from services.recommendations import (
    RecommendationEngine,
    get_recommendation_engine,
)
from services.snapshots import (
    InvalidStatusTransition,
    RecommendationNotFound,
    SnapshotStore,
    get_snapshot_store,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class ChannelRecommendationsRequest(BaseModel):
    channel: ChannelProfile
    videos: List[VideoMetrics]


class VideoRequest(BaseModel):
    video: VideoMetrics


class TitleSuggestionsResponse(BaseModel):
    titles: List[str]


class StatusUpdateRequest(BaseModel):
    status: RecommendationStatus
    notes: Optional[str] = None


class FeedbackRequest(BaseModel):
    rating: Optional[int] = None
    text: Optional[str] = None
    helpful: Optional[bool] = None


def get_engine() -> RecommendationEngine:
    """Model-backed engine. Missing credentials surface as 500."""
    try:
        return get_recommendation_engine()
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_rule_engine() -> RecommendationEngine:
    """Engine for the deterministic paths; needs no model client."""
    return RecommendationEngine(client=None)


def get_store(db: AsyncSession = Depends(get_db)) -> SnapshotStore:
    return get_snapshot_store(db)


@router.post("/channel", response_model=Snapshot)
async def generate_channel_recommendations(
    request: ChannelRecommendationsRequest,
    engine: RecommendationEngine = Depends(get_engine),
    store: SnapshotStore = Depends(get_store),
):
    """Generate, persist and return a fresh channel snapshot."""
    channel_id = request.channel.channel_id
    try:
        score, recommendations = await engine.generate_channel_snapshot(request.channel, request.videos)
    except GenerationError as exc:
        logger.error("Channel recommendation generation failed for %s: %s", channel_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    generated_at = await store.save_snapshot(channel_id, TargetType.CHANNEL, score, recommendations)
    await store.cleanup_old_snapshots(
        channel_id,
        TargetType.CHANNEL,
        keep_latest=settings.RECOMMENDATION_SNAPSHOTS_TO_KEEP,
    )

    return Snapshot(
        target_id=channel_id,
        target_type=TargetType.CHANNEL,
        generated_at=generated_at,
        recommendations=recommendations,
        score=score,
    )


@router.post("/video", response_model=Snapshot)
async def generate_video_recommendations(
    request: VideoRequest,
    engine: RecommendationEngine = Depends(get_rule_engine),
    store: SnapshotStore = Depends(get_store),
):
    """Score a video and persist its gap-driven recommendations."""
    video = request.video
    if not video.video_id:
        raise HTTPException(status_code=422, detail="video_id is required for generating recommendations")

    score = engine.scorer.score_video(video)
    recommendations = await engine.generate_video_recommendations(video, score)

    generated_at = await store.save_snapshot(video.video_id, TargetType.VIDEO, score, recommendations)
    await store.cleanup_old_snapshots(
        video.video_id,
        TargetType.VIDEO,
        keep_latest=settings.RECOMMENDATION_SNAPSHOTS_TO_KEEP,
    )

    return Snapshot(
        target_id=video.video_id,
        target_type=TargetType.VIDEO,
        generated_at=generated_at,
        recommendations=recommendations,
        score=score,
    )


@router.post("/title", response_model=TitleSuggestionsResponse)
async def suggest_titles(
    request: VideoRequest,
    engine: RecommendationEngine = Depends(get_engine),
):
    try:
        titles = await engine.optimize_title(request.video)
    except GenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return TitleSuggestionsResponse(titles=titles)


@router.get("/{target_type}/{target_id}/latest", response_model=Snapshot)
async def get_latest_snapshot(
    target_type: TargetType,
    target_id: str,
    store: SnapshotStore = Depends(get_store),
):
    snapshot = await store.get_latest_snapshot(target_id, target_type)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No recommendations found")
    return snapshot


@router.get("/{target_type}/{target_id}/history", response_model=List[Recommendation])
async def get_history(
    target_type: TargetType,
    target_id: str,
    limit: int = Query(50, ge=1, le=200),
    store: SnapshotStore = Depends(get_store),
):
    """Recommendations across all kept snapshots, newest first."""
    return await store.get_recommendations_by_target(target_id, target_type, limit=limit)


@router.get("/{target_type}/{target_id}/stats", response_model=RecommendationStats)
async def get_stats(
    target_type: TargetType,
    target_id: str,
    store: SnapshotStore = Depends(get_store),
):
    return await store.get_stats(target_id, target_type)


@router.patch("/{recommendation_id}/status", response_model=Recommendation)
async def update_status(
    recommendation_id: str,
    request: StatusUpdateRequest,
    store: SnapshotStore = Depends(get_store),
):
    try:
        return await store.update_status(recommendation_id, request.status, request.notes)
    except RecommendationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.post("/{recommendation_id}/feedback", response_model=Recommendation)
async def add_feedback(
    recommendation_id: str,
    request: FeedbackRequest,
    store: SnapshotStore = Depends(get_store),
):
    try:
        return await store.add_feedback(
            recommendation_id,
            rating=request.rating,
            text=request.text,
            helpful=request.helpful,
        )
    except RecommendationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
