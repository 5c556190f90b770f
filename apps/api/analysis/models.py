"""
Analysis models and schemas.
"""

from datetime import datetime, timezone
from typing import List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator
from enum import Enum


class TrafficSource(str, Enum):
    SEARCH = "search"
    BROWSE = "browse"
    SHORTS = "shorts"
    EXTERNAL = "external"


class ScoreGrade(str, Enum):
    A_PLUS = "A+"   # 90-100: viral potential
    A = "A"         # 80-89
    B_PLUS = "B+"   # 70-79
    B = "B"         # 60-69
    C_PLUS = "C+"   # 50-59
    C = "C"         # 40-49
    D = "D"         # 30-39
    F = "F"         # 0-29: needs immediate attention


class TargetType(str, Enum):
    CHANNEL = "channel"
    VIDEO = "video"


class RecommendationCategory(str, Enum):
    TITLE_OPTIMIZATION = "title_optimization"
    THUMBNAIL_IMPROVEMENT = "thumbnail_improvement"
    CONTENT_STRUCTURE = "content_structure"
    ENGAGEMENT_TACTICS = "engagement_tactics"
    SEO_KEYWORDS = "seo_keywords"
    UPLOAD_SCHEDULE = "upload_schedule"
    SHORTS_STRATEGY = "shorts_strategy"
    AUDIENCE_TARGETING = "audience_targeting"
    RETENTION_IMPROVEMENT = "retention_improvement"
    CTA_OPTIMIZATION = "cta_optimization"
    TOPIC_SELECTION = "topic_selection"
    COLLABORATION = "collaboration"
    PLAYLIST_STRATEGY = "playlist_strategy"
    END_SCREEN_OPTIMIZATION = "end_screen_optimization"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    DISMISSED = "dismissed"
    EXPIRED = "expired"


class EffortLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VideoMetrics(BaseModel):
    """Raw per-video metrics supplied by the data source. Read-only."""

    model_config = ConfigDict(frozen=True)

    views: int = Field(default=0, ge=0)
    impressions: int = Field(default=0, ge=0)
    ctr: float = 0.0  # percentage
    main_traffic_source: TrafficSource = TrafficSource.BROWSE
    avg_percentage_viewed: float = 0.0
    avg_view_duration: float = 0.0  # seconds
    duration_seconds: int = Field(default=0, ge=0)
    retention_at_15s: float = 0.0
    likes: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    subscribers_gained: int = Field(default=0, ge=0)
    satisfaction_score: Optional[float] = None  # 0-100 survey score
    negative_signal_rate: Optional[float] = None  # % "Not interested"

    # Descriptive fields used by prompts and heuristics
    video_id: str = ""
    channel_id: str = ""
    title: str = ""
    category: str = ""
    tags: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    is_short: Optional[bool] = None
    published_at: Optional[datetime] = None
    retention_at_25_percent: Optional[float] = None
    retention_at_50_percent: Optional[float] = None
    retention_at_75_percent: Optional[float] = None
    retention_at_90_percent: Optional[float] = None

    @model_validator(mode="after")
    def _default_is_short(self) -> "VideoMetrics":
        if self.is_short is None:
            object.__setattr__(self, "is_short", self.duration_seconds < 60)
        return self


class ScoreBreakdown(BaseModel):
    ctr_score: float = Field(default=0.0, ge=0, le=25)
    watch_time_score: float = Field(default=0.0, ge=0, le=35)
    engagement_score: float = Field(default=0.0, ge=0, le=25)
    satisfaction_score: float = Field(default=0.0, ge=0, le=15)

    def total(self) -> float:
        return self.ctr_score + self.watch_time_score + self.engagement_score + self.satisfaction_score


class AlgorithmScore(BaseModel):
    """Normalized 0-100 algorithm performance score."""
    overall: float = Field(ge=0, le=100)
    breakdown: ScoreBreakdown
    grade: ScoreGrade
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)


class BenchmarkComparison(BaseModel):
    status: str  # "above", "at", "below"
    gap: float
    percentage: float


class PerformanceGap(BaseModel):
    """Gap between a metric and its benchmark, consumed within one generation call."""
    category: RecommendationCategory
    metric: str
    current_value: float
    benchmark_value: float
    gap: float  # percentage of benchmark
    severity: Priority
    description: str


class ActionItem(BaseModel):
    """One concrete step of a recommendation."""
    action: str
    details: str
    effort: EffortLevel
    timeline: str
    order: int = Field(ge=1)


class ImpactEstimate(BaseModel):
    metric: str
    current_value: float
    projected_value: float
    improvement: float  # percentage
    confidence: float = Field(ge=0, le=1)
    timeframe: str
    measurement_method: Optional[str] = None


class Recommendation(BaseModel):
    """Persisted unit of advice for a channel or video."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    target_id: str
    target_type: TargetType
    category: RecommendationCategory
    priority: Priority
    title: str
    description: str
    action_items: List[ActionItem]
    expected_impact: ImpactEstimate
    confidence: float = Field(ge=0, le=1)
    generated_by: str
    reasoning: str = ""
    prompt: str = ""
    project_value: Optional[int] = None
    status: RecommendationStatus = RecommendationStatus.PENDING
    implemented_at: Optional[datetime] = None
    implementation_notes: Optional[str] = None
    user_rating: Optional[int] = Field(default=None, ge=1, le=5)
    user_feedback: Optional[str] = None
    helpful: Optional[bool] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None


class ChannelProfile(BaseModel):
    """Channel-level context for strategy generation."""
    channel_id: str = ""
    title: str = ""
    subscriber_count: int = 0
    video_count: Optional[int] = None
    primary_topics: List[str] = Field(default_factory=list)
    upload_frequency: str = "irregular"
    created_at: Optional[datetime] = None
    avg_ctr: Optional[float] = None
    avg_retention_rate: Optional[float] = None
    avg_engagement_rate: Optional[float] = None
    shorts_percentage: Optional[float] = None


class Snapshot(BaseModel):
    """Point-in-time bundle of recommendations for one target."""
    target_id: str
    target_type: TargetType
    generated_at: datetime
    recommendations: List[Recommendation]
    score: Optional[AlgorithmScore] = None


class RecommendationStats(BaseModel):
    total: int
    by_priority: dict
    by_status: dict
    avg_rating: Optional[float] = None
    last_generated: Optional[datetime] = None
