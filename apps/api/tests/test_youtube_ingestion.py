from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from analysis.models import TrafficSource
from config import settings
from ingestion.youtube import (
    YouTubeClient,
    create_youtube_client,
    parse_duration,
    to_channel_profile,
    to_video_metrics,
)


def _video_item(video_id, duration="PT10M5S", **stats):
    return {
        "id": video_id,
        "snippet": {
            "channelId": "UC_MOCK",
            "title": f"Video {video_id}",
            "publishedAt": "2026-09-01T10:00:00Z",
            "categoryId": "27",
            "tags": ["tutorial"],
        },
        "statistics": {"viewCount": "1000", "likeCount": "50", "commentCount": "7", **stats},
        "contentDetails": {"duration": duration},
    }


@pytest.fixture
def service():
    return MagicMock()


@pytest.mark.parametrize(
    "duration,seconds",
    [
        ("PT45S", 45),
        ("PT10M5S", 605),
        ("PT1H2M3S", 3723),
        ("P1DT1M", 86460),
        ("PT0S", 0),
        ("garbage", 0),
    ],
)
def test_parse_duration(duration, seconds):
    assert parse_duration(duration) == seconds


def test_get_channel_data(service):
    service.channels.return_value.list.return_value.execute.return_value = {
        "items": [
            {
                "id": "UC_MOCK",
                "snippet": {"title": "Mock Channel", "publishedAt": "2020-01-01T00:00:00Z"},
                "statistics": {"subscriberCount": "1500", "videoCount": "42", "viewCount": "99000"},
                "topicDetails": {"topicCategories": ["https://en.wikipedia.org/wiki/Video_game_culture"]},
            }
        ]
    }

    data = YouTubeClient(service=service).get_channel_data("UC_MOCK")

    assert data["subscriber_count"] == 1500
    assert data["uploads_playlist_id"] is None
    assert data["topics"] == ["Video game culture"]

    profile = to_channel_profile(data)
    assert profile.channel_id == "UC_MOCK"
    assert profile.video_count == 42
    assert profile.created_at.year == 2020


def test_get_channel_data_missing_or_failing(service):
    service.channels.return_value.list.return_value.execute.return_value = {"items": []}
    assert YouTubeClient(service=service).get_channel_data("UC_NONE") is None

    service.channels.return_value.list.return_value.execute.side_effect = HttpError(
        MagicMock(status=403, reason="Forbidden"), b"quota exceeded"
    )
    assert YouTubeClient(service=service).get_channel_data("UC_MOCK") is None


def test_get_videos_data_batch_splits_into_fifty(service):
    ids = [f"v{i}" for i in range(120)]
    service.videos.return_value.list.return_value.execute.side_effect = [
        {"items": [_video_item(i) for i in ids[:50]]},
        {"items": [_video_item(i, duration="PT30S") for i in ids[50:100]]},
        {"items": [_video_item(i) for i in ids[100:]]},
    ]

    records = YouTubeClient(service=service).get_videos_data_batch(ids)

    assert len(records) == 120
    calls = service.videos.return_value.list.call_args_list
    assert [len(call.kwargs["id"].split(",")) for call in calls] == [50, 50, 20]
    assert records[0]["duration_seconds"] == 605
    assert records[0]["is_short"] is False
    assert records[60]["is_short"] is True


def test_get_videos_data_batch_skips_failed_batch(service):
    ids = [f"v{i}" for i in range(60)]
    service.videos.return_value.list.return_value.execute.side_effect = [
        HttpError(MagicMock(status=500, reason="Backend Error"), b"boom"),
        {"items": [_video_item(i) for i in ids[50:]]},
    ]

    records = YouTubeClient(service=service).get_videos_data_batch(ids)

    assert [r["id"] for r in records] == ids[50:]


def test_to_video_metrics_defaults_analytics_to_zero():
    record = {
        "id": "v1",
        "channel_id": "UC_MOCK",
        "title": "Video v1",
        "published_at": "2026-09-01T10:00:00Z",
        "category_id": "27",
        "tags": ["tutorial"],
        "view_count": 1000,
        "like_count": 50,
        "comment_count": 7,
        "duration_seconds": 605,
        "is_short": False,
    }

    metrics = to_video_metrics(record)

    assert metrics.views == 1000
    assert metrics.ctr == 0
    assert metrics.impressions == 0
    assert metrics.main_traffic_source == TrafficSource.BROWSE
    assert metrics.published_at.tzinfo is not None

    enriched = to_video_metrics(record, {"ctr": 6.5, "main_traffic_source": "search", "retention_at_15s": 72})
    assert enriched.ctr == 6.5
    assert enriched.main_traffic_source == TrafficSource.SEARCH
    assert enriched.retention_at_15s == 72


def test_client_requires_credentials():
    with pytest.raises(ValueError):
        YouTubeClient()


def test_create_youtube_client_requires_key(monkeypatch):
    monkeypatch.setattr(settings, "YOUTUBE_API_KEY", "")
    with pytest.raises(ValueError, match="YOUTUBE_API_KEY is not configured"):
        create_youtube_client()


def test_get_channel_video_ids_follows_pages(service):
    playlist = service.playlistItems.return_value.list.return_value.execute
    playlist.side_effect = [
        {"items": [{"contentDetails": {"videoId": f"v{i}"}} for i in range(3)], "nextPageToken": "p2"},
        {"items": [{"contentDetails": {"videoId": "v3"}}, {"contentDetails": {}}]},
    ]

    ids = YouTubeClient(service=service).get_channel_video_ids({"id": "UC_MOCK", "uploads_playlist_id": "UU_MOCK"}, 10)

    assert ids == ["v0", "v1", "v2", "v3"]
    calls = service.playlistItems.return_value.list.call_args_list
    assert calls[1].kwargs["pageToken"] == "p2"
    assert calls[1].kwargs["maxResults"] == 7


def test_get_channel_video_ids_without_uploads_playlist(service):
    assert YouTubeClient(service=service).get_channel_video_ids({"id": "UC_MOCK"}) == []
    service.playlistItems.assert_not_called()


def test_to_video_metrics_derives_ctr_from_impressions():
    record = {"id": "v1", "view_count": 500, "duration_seconds": 300}

    assert to_video_metrics(record, {"impressions": 10000}).ctr == pytest.approx(5.0)
    assert to_video_metrics(record, {"impressions": 10000, "ctr": 7.5}).ctr == 7.5
