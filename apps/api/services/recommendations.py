"""Recommendation generation for channels and videos."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from analysis.metrics import (
    BROWSE_CTR_BENCHMARK,
    ENGAGEMENT_BENCHMARK,
    RETENTION_BENCHMARK,
    average_ctr,
    average_engagement,
    average_retention,
    benchmark_gap,
    ctr_benchmark,
    engagement_rate,
    percent_change,
    shorts_percentage,
)
from analysis.models import (
    ActionItem,
    AlgorithmScore,
    ChannelProfile,
    EffortLevel,
    ImpactEstimate,
    PerformanceGap,
    Priority,
    Recommendation,
    RecommendationCategory,
    TargetType,
    TrafficSource,
    VideoMetrics,
)
from analysis.scoring import AlgorithmScorer
from config import settings
from generation.client import GenerationClient, GenerationOptions, create_generation_client
from generation.prompts import build_prompt, get_prompt_config
from generation.retry import generate_with_retry
from services.recommendation_parser import extract_titles, parse_recommendations

logger = logging.getLogger(__name__)

PRIORITY_ORDER: Dict[Priority, int] = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}

HOOK_RETENTION_TARGET = 80.0
HOOK_PROJECTED_RETENTION = 75.0


def prioritize_recommendations(recommendations: Sequence[Recommendation]) -> List[Recommendation]:
    """Most urgent first, then largest projected improvement. Stable for ties."""
    return sorted(
        recommendations,
        key=lambda rec: (PRIORITY_ORDER[rec.priority], -rec.expected_impact.improvement),
    )


def identify_video_performance_gaps(video: VideoMetrics) -> List[PerformanceGap]:
    gaps: List[PerformanceGap] = []

    ctr_target = ctr_benchmark(video.main_traffic_source)
    ctr_gap = benchmark_gap(video.ctr, ctr_target)
    if ctr_gap is not None:
        gaps.append(
            PerformanceGap(
                category=RecommendationCategory.TITLE_OPTIMIZATION,
                metric="CTR",
                current_value=video.ctr,
                benchmark_value=ctr_target,
                gap=ctr_gap,
                severity=Priority.CRITICAL if video.ctr < ctr_target * 0.5 else Priority.HIGH,
                description=f"CTR is {video.ctr:.1f}%, below the {ctr_target:g}% benchmark",
            )
        )

    retention_gap = benchmark_gap(video.avg_percentage_viewed, RETENTION_BENCHMARK)
    if retention_gap is not None:
        gaps.append(
            PerformanceGap(
                category=RecommendationCategory.RETENTION_IMPROVEMENT,
                metric="Retention Rate",
                current_value=video.avg_percentage_viewed,
                benchmark_value=RETENTION_BENCHMARK,
                gap=retention_gap,
                severity=Priority.CRITICAL if video.avg_percentage_viewed < 30 else Priority.HIGH,
                description=(
                    f"Retention is {video.avg_percentage_viewed:.1f}%, "
                    f"below the {RETENTION_BENCHMARK:g}% benchmark"
                ),
            )
        )

    rate = engagement_rate(video)
    engagement_gap = benchmark_gap(rate, ENGAGEMENT_BENCHMARK)
    if engagement_gap is not None:
        gaps.append(
            PerformanceGap(
                category=RecommendationCategory.ENGAGEMENT_TACTICS,
                metric="Engagement Rate",
                current_value=rate,
                benchmark_value=ENGAGEMENT_BENCHMARK,
                gap=engagement_gap,
                severity=Priority.HIGH if rate < 2 else Priority.MEDIUM,
                description=f"Engagement rate is {rate:.1f}%, below the {ENGAGEMENT_BENCHMARK:g}% benchmark",
            )
        )

    return gaps


def _format_duration(seconds: int) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def _channel_age(created_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    age_days = (now - created_at).days
    if age_days < 30:
        return f"{age_days} days"
    if age_days < 365:
        return f"{age_days // 30} months"
    return f"{age_days // 365} years"


def _format_video_lines(videos: Sequence[VideoMetrics]) -> str:
    return "\n".join(
        f'{i}. "{v.title}" - {v.views:,} views, {v.ctr:.1f}% CTR'
        for i, v in enumerate(videos, start=1)
    )


def _benchmark_status(value: float, benchmark: float) -> str:
    return "✓ Above benchmark" if value >= benchmark else "✗ Below benchmark"


class RecommendationEngine:
    """Builds prompts, calls the model and shapes recommendations."""

    def __init__(
        self,
        client: Optional[GenerationClient],
        scorer: Optional[AlgorithmScorer] = None,
        *,
        model_name: Optional[str] = None,
        max_retries: Optional[int] = None,
        base_delay_seconds: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.client = client
        self.scorer = scorer or AlgorithmScorer()
        self.model_name = model_name or settings.AI_MODEL
        self.max_retries = max_retries if max_retries is not None else settings.AI_MAX_RETRIES
        self.base_delay_seconds = (
            base_delay_seconds if base_delay_seconds is not None else settings.AI_RETRY_BASE_DELAY_SECONDS
        )
        self.sleep = sleep

    async def _generate(self, prompt: str, options: GenerationOptions):
        if self.client is None:
            raise ValueError("No generation client configured")
        kwargs = {"base_delay_seconds": self.base_delay_seconds}
        if self.sleep is not None:
            kwargs["sleep"] = self.sleep
        return await generate_with_retry(self.client, prompt, options, self.max_retries, **kwargs)

    async def generate_channel_snapshot(
        self,
        channel: ChannelProfile,
        videos: Sequence[VideoMetrics],
    ) -> Tuple[AlgorithmScore, List[Recommendation]]:
        """Score the channel and generate its strategy recommendations."""
        if not channel.channel_id:
            raise ValueError("Channel ID is required for generating recommendations")

        channel_id = channel.channel_id
        logger.info("Generating channel recommendations for %s (%d videos)", channel_id, len(videos))

        channel_score = self.scorer.score_channel(videos)

        avg_ctr = channel.avg_ctr if channel.avg_ctr is not None else average_ctr(videos)
        avg_retention = (
            channel.avg_retention_rate if channel.avg_retention_rate is not None else average_retention(videos)
        )
        avg_engagement = (
            channel.avg_engagement_rate if channel.avg_engagement_rate is not None else average_engagement(videos)
        )
        shorts_pct = (
            channel.shorts_percentage if channel.shorts_percentage is not None else shorts_percentage(videos)
        )
        created_at = channel.created_at or (datetime.now(timezone.utc) - timedelta(days=365))

        variables = {
            "channelName": channel.title or "Unknown Channel",
            "subscriberCount": f"{channel.subscriber_count:,}",
            "videoCount": channel.video_count if channel.video_count is not None else len(videos),
            "niche": channel.primary_topics[0] if channel.primary_topics else "general",
            "uploadFrequency": channel.upload_frequency or "irregular",
            "channelAge": _channel_age(created_at),
            "algorithmScore": channel_score.overall,
            "scoreGrade": channel_score.grade.value,
            "avgCTR": round(avg_ctr, 2),
            "ctrBenchmark": BROWSE_CTR_BENCHMARK,
            "ctrGap": f"{BROWSE_CTR_BENCHMARK - avg_ctr:.1f}",
            "ctrStatus": _benchmark_status(avg_ctr, BROWSE_CTR_BENCHMARK),
            "avgRetention": round(avg_retention, 2),
            "retentionBenchmark": RETENTION_BENCHMARK,
            "retentionGap": f"{RETENTION_BENCHMARK - avg_retention:.1f}",
            "retentionStatus": _benchmark_status(avg_retention, RETENTION_BENCHMARK),
            "avgEngagement": round(avg_engagement, 2),
            "engagementBenchmark": ENGAGEMENT_BENCHMARK,
            "engagementGap": f"{ENGAGEMENT_BENCHMARK - avg_engagement:.1f}",
            "engagementStatus": _benchmark_status(avg_engagement, ENGAGEMENT_BENCHMARK),
            "subGrowthRate": "0",
            "viewsGrowthRate": "0",
            "growthTrend": "stable",
            "topTopics": ", ".join(channel.primary_topics) or "Not analyzed yet",
            "weakTopics": "To be analyzed",
            "longformPercentage": f"{100 - shorts_pct:.1f}",
            "midformPercentage": "0",
            "shortsPercentage": f"{shorts_pct:.1f}",
            "topVideos": _format_video_lines(videos[:5]),
            "bottomVideos": _format_video_lines(videos[-5:]),
        }

        prompt_config = get_prompt_config(RecommendationCategory.UPLOAD_SCHEDULE)
        prompt = build_prompt(prompt_config.template, variables, prompt_config.system_prompt)

        result = await self._generate(
            prompt,
            GenerationOptions(
                model=self.model_name,
                temperature=settings.AI_TEMPERATURE_ANALYTICAL,
                max_tokens=settings.AI_MAX_TOKENS,
            ),
        )
        logger.info(
            "AI response received for %s: model=%s length=%d tokens=%s",
            channel_id,
            result.model,
            len(result.content),
            result.tokens_used,
        )

        recommendations = parse_recommendations(result.content, channel_id, TargetType.CHANNEL, result.model)
        recommendations = prioritize_recommendations(recommendations)
        logger.info("Channel recommendations generated for %s: %d", channel_id, len(recommendations))
        return channel_score, recommendations

    async def generate_channel_recommendations(
        self,
        channel: ChannelProfile,
        videos: Sequence[VideoMetrics],
    ) -> List[Recommendation]:
        _, recommendations = await self.generate_channel_snapshot(channel, videos)
        return recommendations

    async def generate_video_recommendations(
        self,
        video: VideoMetrics,
        score: AlgorithmScore,
    ) -> List[Recommendation]:
        """Deterministic gap-driven recommendations for one video, prioritized."""
        gaps = identify_video_performance_gaps(video)
        logger.info(
            "Performance gaps for %s: %d (critical=%d, high=%d, score=%.2f)",
            video.video_id,
            len(gaps),
            sum(1 for g in gaps if g.severity == Priority.CRITICAL),
            sum(1 for g in gaps if g.severity == Priority.HIGH),
            score.overall,
        )

        recommendations = [
            self._recommendation_for_gap(gap, video.video_id)
            for gap in gaps
            if gap.severity in (Priority.CRITICAL, Priority.HIGH)
        ]

        if video.retention_at_15s < HOOK_RETENTION_TARGET:
            recommendations.append(self._hook_recommendation(video))

        return prioritize_recommendations(recommendations)

    async def optimize_title(self, video: VideoMetrics) -> List[str]:
        """Ask the model for alternative titles and extract them."""
        variables = {
            "currentTitle": video.title,
            "topic": video.category or "general",
            "audience": "general",
            "duration": _format_duration(video.duration_seconds),
            "contentType": "Short" if video.is_short else "Long-form",
            "niche": video.category or "general",
            "ctr": f"{video.ctr:.2f}",
            "ctrBenchmark": f"{BROWSE_CTR_BENCHMARK:.1f}",
            "gap": f"{BROWSE_CTR_BENCHMARK - video.ctr:.1f}",
            "trafficSource": video.main_traffic_source.value,
            "views": f"{video.views:,}",
            "impressions": f"{video.impressions:,}",
            "keywords": ", ".join(video.keywords) or ", ".join(video.tags[:5]),
            "competitorTitles": "To be analyzed",
            "searchTraffic": video.main_traffic_source == TrafficSource.SEARCH,
            "browseTraffic": video.main_traffic_source == TrafficSource.BROWSE,
        }

        prompt_config = get_prompt_config(RecommendationCategory.TITLE_OPTIMIZATION)
        prompt = build_prompt(prompt_config.template, variables, prompt_config.system_prompt)

        result = await self._generate(
            prompt,
            GenerationOptions(
                model=self.model_name,
                temperature=settings.AI_TEMPERATURE_CREATIVE,
                max_tokens=prompt_config.max_tokens,
            ),
        )
        return extract_titles(result.content)

    def _recommendation_for_gap(self, gap: PerformanceGap, target_id: str) -> Recommendation:
        return Recommendation(
            target_id=target_id,
            target_type=TargetType.VIDEO,
            category=gap.category,
            priority=Priority.CRITICAL if gap.severity == Priority.CRITICAL else Priority.HIGH,
            title=f"Improve {gap.metric}",
            description=gap.description,
            action_items=[
                ActionItem(
                    action=f"Address {gap.metric} issue",
                    details=gap.description,
                    effort=EffortLevel.MEDIUM,
                    timeline="1-2 weeks",
                    order=1,
                )
            ],
            expected_impact=ImpactEstimate(
                metric=gap.metric,
                current_value=gap.current_value,
                projected_value=gap.benchmark_value,
                improvement=gap.gap,
                confidence=0.7,
                timeframe="2-4 weeks",
            ),
            confidence=0.7,
            generated_by=self.model_name,
            reasoning=f"Identified performance gap: {gap.description}",
        )

    def _hook_recommendation(self, video: VideoMetrics) -> Recommendation:
        return Recommendation(
            target_id=video.video_id,
            target_type=TargetType.VIDEO,
            category=RecommendationCategory.RETENTION_IMPROVEMENT,
            priority=Priority.CRITICAL,
            title="Optimize First 15 Seconds Hook",
            description=(
                f"First 15-second retention is {video.retention_at_15s:.1f}%, below the "
                f"{HOOK_RETENTION_TARGET:g}% target. Most viewers decide whether to stay in this window."
            ),
            action_items=[
                ActionItem(
                    action="Remove intro fluff",
                    details="Cut logos, intros and greetings. Open with immediate value or a pattern interrupt.",
                    effort=EffortLevel.LOW,
                    timeline="15 minutes",
                    order=1,
                ),
                ActionItem(
                    action="Create strong hook",
                    details="Use a bold claim, surprising stat, question or visual interrupt in the first 3 seconds.",
                    effort=EffortLevel.MEDIUM,
                    timeline="30 minutes",
                    order=2,
                ),
                ActionItem(
                    action="State value proposition",
                    details="Tell viewers what they will learn or gain in seconds 4-8.",
                    effort=EffortLevel.LOW,
                    timeline="10 minutes",
                    order=3,
                ),
            ],
            expected_impact=ImpactEstimate(
                metric="First 15s Retention",
                current_value=video.retention_at_15s,
                projected_value=HOOK_PROJECTED_RETENTION,
                improvement=percent_change(video.retention_at_15s, HOOK_PROJECTED_RETENTION),
                confidence=0.8,
                timeframe="1-2 weeks",
            ),
            confidence=0.85,
            generated_by=self.model_name,
            reasoning="The first 15 seconds are the main drop-off decision point for viewers",
        )


def get_recommendation_engine() -> RecommendationEngine:
    """FastAPI dependency; raises ValueError when the model client is not configured."""
    return RecommendationEngine(create_generation_client())
