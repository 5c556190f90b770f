"""
Algorithm scoring engine.

Scores a video (or a channel's recent videos) on a 0-100 scale:
- CTR: 0-25 points
- Watch time: 0-35 points
- Engagement: 0-25 points
- Satisfaction: 0-15 points
"""

import logging
from typing import List, Sequence

import numpy as np

from .metrics import comment_ratio, ctr_benchmark, engagement_rate, subscriber_conversion
from .models import AlgorithmScore, BenchmarkComparison, ScoreBreakdown, ScoreGrade, VideoMetrics

logger = logging.getLogger(__name__)

CTR_MAX = 25.0
WATCH_TIME_MAX = 35.0
ENGAGEMENT_MAX = 25.0
SATISFACTION_MAX = 15.0

NO_DATA_MESSAGE = "No data available for scoring"

GRADE_THRESHOLDS = [
    (90, ScoreGrade.A_PLUS),
    (80, ScoreGrade.A),
    (70, ScoreGrade.B_PLUS),
    (60, ScoreGrade.B),
    (50, ScoreGrade.C_PLUS),
    (40, ScoreGrade.C),
    (30, ScoreGrade.D),
]


def _clip(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class AlgorithmScorer:
    """Deterministic scorer. Holds no state; safe to share across requests."""

    def score_video(self, video: VideoMetrics) -> AlgorithmScore:
        """Calculate the complete algorithm score for one video."""
        breakdown = self._round_breakdown(
            ScoreBreakdown(
                ctr_score=self._score_ctr(video),
                watch_time_score=self._score_watch_time(video),
                engagement_score=self._score_engagement(video),
                satisfaction_score=self._score_satisfaction(video),
            )
        )
        overall = round(breakdown.total(), 2)

        score = AlgorithmScore(
            overall=overall,
            breakdown=breakdown,
            grade=self.calculate_grade(overall),
            strengths=self._identify_strengths(breakdown),
            weaknesses=self._identify_weaknesses(breakdown),
            opportunities=self._identify_opportunities(breakdown, video),
        )
        logger.debug("Scored video %s: %.2f (%s)", video.video_id or "<anon>", overall, score.grade.value)
        return score

    def score_channel(self, videos: Sequence[VideoMetrics]) -> AlgorithmScore:
        """Average the per-video scores of a channel's videos."""
        if not videos:
            return self._create_empty_score()

        scores = [self.score_video(video) for video in videos]
        breakdown = self._round_breakdown(
            ScoreBreakdown(
                ctr_score=float(np.mean([s.breakdown.ctr_score for s in scores])),
                watch_time_score=float(np.mean([s.breakdown.watch_time_score for s in scores])),
                engagement_score=float(np.mean([s.breakdown.engagement_score for s in scores])),
                satisfaction_score=float(np.mean([s.breakdown.satisfaction_score for s in scores])),
            )
        )
        overall = round(float(np.mean([s.overall for s in scores])), 2)

        return AlgorithmScore(
            overall=overall,
            breakdown=breakdown,
            grade=self.calculate_grade(overall),
            strengths=self._identify_strengths(breakdown),
            weaknesses=self._identify_weaknesses(breakdown),
            opportunities=[],
        )

    @staticmethod
    def calculate_grade(overall: float) -> ScoreGrade:
        for threshold, grade in GRADE_THRESHOLDS:
            if overall >= threshold:
                return grade
        return ScoreGrade.F

    @staticmethod
    def compare_against_benchmark(score: float, benchmark: float) -> BenchmarkComparison:
        """Position a score relative to a benchmark; within 0.5 counts as "at"."""
        gap = score - benchmark
        percentage = (gap / benchmark) * 100 if benchmark > 0 else 0.0
        if abs(gap) < 0.5:
            status = "at"
        elif gap > 0:
            status = "above"
        else:
            status = "below"
        return BenchmarkComparison(status=status, gap=gap, percentage=percentage)

    # Sub-scores

    def _score_ctr(self, video: VideoMetrics) -> float:
        """Full points at the benchmark (10% search, 5% otherwise), 10% bonus above 1.5x."""
        benchmark = ctr_benchmark(video.main_traffic_source)
        score = min(video.ctr / benchmark * CTR_MAX, CTR_MAX)
        if video.ctr > benchmark * 1.5:
            score = min(score * 1.1, CTR_MAX)
        return max(0.0, score)

    def _score_watch_time(self, video: VideoMetrics) -> float:
        """
        Retention (0-20, 50% target) + absolute duration (0-10, up to 8 minutes
        watched) + first 15 seconds (0-5, 80% target).
        """
        retention_score = _clip(video.avg_percentage_viewed / 50 * 20, 0.0, 20.0)

        duration_target = min(video.duration_seconds, 480)
        if duration_target > 0:
            duration_score = _clip(video.avg_view_duration / duration_target * 10, 0.0, 10.0)
        else:
            duration_score = 0.0

        first_15_score = _clip(video.retention_at_15s / 80 * 5, 0.0, 5.0)

        return _clip(retention_score + duration_score + first_15_score, 0.0, WATCH_TIME_MAX)

    def _score_engagement(self, video: VideoMetrics) -> float:
        """5% engagement earns full points; community and subscriber bonuses stack."""
        rate = engagement_rate(video)
        score = min(rate / 5 * ENGAGEMENT_MAX, ENGAGEMENT_MAX)

        if comment_ratio(video) > 0.1:
            score = min(score * 1.05, ENGAGEMENT_MAX)

        if video.subscribers_gained > 0 and subscriber_conversion(video) > 2:
            score = min(score * 1.05, ENGAGEMENT_MAX)

        return max(0.0, score)

    def _score_satisfaction(self, video: VideoMetrics) -> float:
        if video.satisfaction_score is None and video.negative_signal_rate is None:
            return 10.0  # neutral assumption

        score = SATISFACTION_MAX
        if video.satisfaction_score is not None:
            score = video.satisfaction_score / 100 * SATISFACTION_MAX

        if video.negative_signal_rate is not None and video.negative_signal_rate > 10:
            score -= (video.negative_signal_rate - 10) * 0.5

        return _clip(score, 0.0, SATISFACTION_MAX)

    # Narrative

    def _identify_strengths(self, breakdown: ScoreBreakdown) -> List[str]:
        strengths = []
        if breakdown.ctr_score >= 20:
            strengths.append("Excellent click-through rate - thumbnails and titles are working well")
        if breakdown.watch_time_score >= 28:
            strengths.append("Strong watch time and retention - content keeps viewers engaged")
        if breakdown.engagement_score >= 20:
            strengths.append("High engagement rate - audience is actively interacting")
        if breakdown.satisfaction_score >= 12:
            strengths.append("High viewer satisfaction - low negative signals")
        return strengths

    def _identify_weaknesses(self, breakdown: ScoreBreakdown) -> List[str]:
        weaknesses = []
        if breakdown.ctr_score < 12.5:
            weaknesses.append("Low CTR - thumbnails and titles need optimization")
        if breakdown.watch_time_score < 17.5:
            weaknesses.append("Poor watch time - content structure and retention need improvement")
        if breakdown.engagement_score < 12.5:
            weaknesses.append("Low engagement - need stronger calls-to-action and community building")
        if breakdown.satisfaction_score < 7.5:
            weaknesses.append("Low satisfaction - high negative signals or poor viewer response")
        return weaknesses

    def _identify_opportunities(self, breakdown: ScoreBreakdown, video: VideoMetrics) -> List[str]:
        opportunities = []
        if 10 < breakdown.ctr_score < 18:
            opportunities.append("CTR is decent but has room for improvement - A/B test thumbnails")
        if video.retention_at_15s < 70:
            opportunities.append("First 15 seconds need stronger hook - this is critical for algorithm")
        if video.comments < video.likes * 0.05:
            opportunities.append("Low comment rate - add conversation starters and questions")
        if not video.is_short and video.duration_seconds > 600:
            opportunities.append("Create Shorts from this content to increase discovery")
        return opportunities

    @staticmethod
    def _round_breakdown(breakdown: ScoreBreakdown) -> ScoreBreakdown:
        return ScoreBreakdown(
            ctr_score=round(breakdown.ctr_score, 2),
            watch_time_score=round(breakdown.watch_time_score, 2),
            engagement_score=round(breakdown.engagement_score, 2),
            satisfaction_score=round(breakdown.satisfaction_score, 2),
        )

    def _create_empty_score(self) -> AlgorithmScore:
        return AlgorithmScore(
            overall=0.0,
            breakdown=ScoreBreakdown(),
            grade=ScoreGrade.F,
            strengths=[],
            weaknesses=[NO_DATA_MESSAGE],
            opportunities=[],
        )


_default_scorer = AlgorithmScorer()


def score_video(video: VideoMetrics) -> AlgorithmScore:
    return _default_scorer.score_video(video)


def score_channel(videos: Sequence[VideoMetrics]) -> AlgorithmScore:
    return _default_scorer.score_channel(videos)
