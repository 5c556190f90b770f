"""
Metric normalization: comparison-ready ratios derived from raw counters.
"""

from typing import Optional, Sequence

import numpy as np

from .models import TrafficSource, VideoMetrics

SEARCH_CTR_BENCHMARK = 10.0
BROWSE_CTR_BENCHMARK = 5.0
RETENTION_BENCHMARK = 50.0
ENGAGEMENT_BENCHMARK = 5.0


def ctr_benchmark(traffic_source: TrafficSource) -> float:
    """Search traffic is held to a higher CTR bar than every other source."""
    if traffic_source == TrafficSource.SEARCH:
        return SEARCH_CTR_BENCHMARK
    return BROWSE_CTR_BENCHMARK


def engagement_rate(video: VideoMetrics) -> float:
    """(likes + comments + shares) per 100 views; 0 when there are no views."""
    if video.views <= 0:
        return 0.0
    return (video.likes + video.comments + video.shares) / video.views * 100


def comment_ratio(video: VideoMetrics) -> float:
    if video.likes <= 0:
        return 0.0
    return video.comments / video.likes


def subscriber_conversion(video: VideoMetrics) -> float:
    """Subscribers gained per 1000 views."""
    if video.views <= 0:
        return 0.0
    return video.subscribers_gained / (video.views / 1000)


def impression_ctr(video: VideoMetrics) -> float:
    """CTR recomputed from views/impressions, for sources that only report counters."""
    if video.impressions <= 0:
        return 0.0
    return video.views / video.impressions * 100


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(values))


def average_ctr(videos: Sequence[VideoMetrics]) -> float:
    return _mean([v.ctr for v in videos])


def average_retention(videos: Sequence[VideoMetrics]) -> float:
    return _mean([v.avg_percentage_viewed for v in videos])


def average_engagement(videos: Sequence[VideoMetrics]) -> float:
    """Mean engagement rate over videos that actually have views."""
    return _mean([engagement_rate(v) for v in videos if v.views > 0])


def shorts_percentage(videos: Sequence[VideoMetrics]) -> float:
    if not videos:
        return 0.0
    return sum(1 for v in videos if v.is_short) / len(videos) * 100


def percent_change(current: float, target: float) -> float:
    """Relative change from current to target, 0 when current is 0."""
    if current == 0:
        return 0.0
    return (target - current) / current * 100


def benchmark_gap(current: float, benchmark: float) -> Optional[float]:
    """Shortfall as a percentage of the benchmark, None when not below it."""
    if benchmark <= 0 or current >= benchmark:
        return None
    return (benchmark - current) / benchmark * 100
