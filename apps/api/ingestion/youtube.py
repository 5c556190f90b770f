"""
YouTube Data API client for channel and video records used by scoring.
"""

import logging
import re
from datetime import datetime
from typing import Optional, List, Dict, Any

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from analysis.metrics import impression_ctr
from analysis.models import ChannelProfile, TrafficSource, VideoMetrics
from config import require_youtube_api_key

logger = logging.getLogger(__name__)

VIDEO_BATCH_SIZE = 50
SHORTS_MAX_SECONDS = 60

_DURATION_PATTERN = re.compile(r"P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


def parse_duration(duration: str) -> int:
    """Parse ISO 8601 duration (PT1H2M3S, P1DT2M) to seconds."""
    match = _DURATION_PATTERN.fullmatch(duration or "")
    if not match:
        return 0

    days = int(match.group(1) or 0)
    hours = int(match.group(2) or 0)
    minutes = int(match.group(3) or 0)
    seconds = int(match.group(4) or 0)

    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def _parse_published_at(value: Any) -> Optional[datetime]:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


class YouTubeClient:
    """Client for interacting with YouTube Data API v3."""

    def __init__(self, api_key: Optional[str] = None, credentials: Any = None, service: Any = None):
        """
        Initialize YouTube client.

        Args:
            api_key: API key for public data access
            credentials: OAuth2 credentials for authenticated access
            service: prebuilt discovery resource (tests)
        """
        if service is not None:
            self.youtube = service
        elif credentials:
            self.youtube = build("youtube", "v3", credentials=credentials)
        elif api_key:
            self.youtube = build("youtube", "v3", developerKey=api_key)
        else:
            raise ValueError("Either api_key or credentials must be provided")

    def get_channel_data(self, channel_id: str) -> Optional[Dict[str, Any]]:
        """
        Get channel metadata.

        Returns:
            Dict with: id, title, description, custom_url, published_at,
                       subscriber_count, video_count, view_count, topics
        """
        try:
            response = self.youtube.channels().list(
                part="snippet,statistics,topicDetails,contentDetails",
                id=channel_id,
            ).execute()
        except HttpError as e:
            logger.warning("Error fetching channel %s: %s", channel_id, e)
            return None

        if not response.get("items"):
            return None

        item = response["items"][0]
        snippet = item.get("snippet", {})
        stats = item.get("statistics", {})
        topic_urls = item.get("topicDetails", {}).get("topicCategories", [])

        return {
            "id": item["id"],
            "title": snippet.get("title", ""),
            "description": snippet.get("description", ""),
            "custom_url": snippet.get("customUrl", ""),
            "published_at": snippet.get("publishedAt", ""),
            "subscriber_count": int(stats.get("subscriberCount", 0)),
            "video_count": int(stats.get("videoCount", 0)),
            "view_count": int(stats.get("viewCount", 0)),
            # https://en.wikipedia.org/wiki/Gaming -> Gaming
            "topics": [url.rsplit("/", 1)[-1].replace("_", " ") for url in topic_urls],
            "uploads_playlist_id": item.get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads"),
        }

    def get_channel_video_ids(self, channel_data: Dict[str, Any], max_results: int = 20) -> List[str]:
        """
        Walk the channel's uploads playlist, newest first.

        Args:
            channel_data: record from `get_channel_data`
            max_results: cap on returned ids
        """
        uploads_playlist_id = channel_data.get("uploads_playlist_id")
        if not uploads_playlist_id:
            return []

        video_ids: List[str] = []
        next_page_token = None

        while len(video_ids) < max_results:
            try:
                response = self.youtube.playlistItems().list(
                    part="contentDetails",
                    playlistId=uploads_playlist_id,
                    maxResults=min(VIDEO_BATCH_SIZE, max_results - len(video_ids)),
                    pageToken=next_page_token,
                ).execute()
            except HttpError as e:
                logger.warning("Error fetching uploads for %s: %s", channel_data.get("id"), e)
                break

            for item in response.get("items", []):
                video_id = item.get("contentDetails", {}).get("videoId")
                if video_id:
                    video_ids.append(video_id)

            next_page_token = response.get("nextPageToken")
            if not next_page_token:
                break

        return video_ids[:max_results]

    def get_videos_data_batch(self, video_ids: List[str]) -> List[Dict[str, Any]]:
        """
        Get snippet, statistics and duration for videos, 50 ids per request.

        Unknown ids are skipped; a failed batch is logged and skipped.
        """
        records: List[Dict[str, Any]] = []

        for i in range(0, len(video_ids), VIDEO_BATCH_SIZE):
            batch = video_ids[i:i + VIDEO_BATCH_SIZE]

            try:
                response = self.youtube.videos().list(
                    part="snippet,statistics,contentDetails",
                    id=",".join(batch),
                ).execute()
            except HttpError as e:
                logger.warning("Error fetching video batch %d-%d: %s", i, i + len(batch), e)
                continue

            for item in response.get("items", []):
                snippet = item.get("snippet", {})
                stats = item.get("statistics", {})
                duration_seconds = parse_duration(item.get("contentDetails", {}).get("duration", "PT0S"))

                records.append({
                    "id": item["id"],
                    "channel_id": snippet.get("channelId", ""),
                    "title": snippet.get("title", ""),
                    "published_at": snippet.get("publishedAt", ""),
                    "category_id": snippet.get("categoryId", ""),
                    "tags": snippet.get("tags", []),
                    "view_count": int(stats.get("viewCount", 0)),
                    "like_count": int(stats.get("likeCount", 0)),
                    "comment_count": int(stats.get("commentCount", 0)),
                    "duration_seconds": duration_seconds,
                    "is_short": duration_seconds < SHORTS_MAX_SECONDS,
                })

        return records


def to_video_metrics(record: Dict[str, Any], analytics: Optional[Dict[str, Any]] = None) -> VideoMetrics:
    """
    Map a `get_videos_data_batch` record plus optional analytics onto VideoMetrics.

    The Data API has no impressions, CTR or retention; those come from
    analytics and default to 0 when absent. CTR is derived from
    impressions when analytics reports counters only.
    """
    analytics = analytics or {}
    metrics = VideoMetrics(
        video_id=record["id"],
        channel_id=record.get("channel_id", ""),
        title=record.get("title", ""),
        category=record.get("category_id", ""),
        tags=record.get("tags", []),
        published_at=_parse_published_at(record.get("published_at")),
        views=record.get("view_count", 0),
        likes=record.get("like_count", 0),
        comments=record.get("comment_count", 0),
        duration_seconds=record.get("duration_seconds", 0),
        is_short=record.get("is_short"),
        impressions=analytics.get("impressions", 0),
        ctr=analytics.get("ctr", 0.0),
        main_traffic_source=analytics.get("main_traffic_source", TrafficSource.BROWSE),
        avg_percentage_viewed=analytics.get("avg_percentage_viewed", 0.0),
        avg_view_duration=analytics.get("avg_view_duration", 0.0),
        retention_at_15s=analytics.get("retention_at_15s", 0.0),
        shares=analytics.get("shares", 0),
        subscribers_gained=analytics.get("subscribers_gained", 0),
        satisfaction_score=analytics.get("satisfaction_score"),
        negative_signal_rate=analytics.get("negative_signal_rate"),
    )
    if "ctr" not in analytics and metrics.impressions > 0:
        metrics = metrics.model_copy(update={"ctr": impression_ctr(metrics)})
    return metrics


def to_channel_profile(record: Dict[str, Any]) -> ChannelProfile:
    return ChannelProfile(
        channel_id=record["id"],
        title=record.get("title", ""),
        subscriber_count=record.get("subscriber_count", 0),
        video_count=record.get("video_count"),
        primary_topics=record.get("topics", []),
        created_at=_parse_published_at(record.get("published_at")),
    )


def create_youtube_client_with_api_key(api_key: str) -> YouTubeClient:
    """Create a YouTube client using an API key."""
    return YouTubeClient(api_key=api_key)


def create_youtube_client() -> YouTubeClient:
    """Create a YouTube client from settings; raises ValueError when the key is missing."""
    return create_youtube_client_with_api_key(require_youtube_api_key())
