import json

import pytest

from analysis.models import (
    ActionItem,
    EffortLevel,
    ImpactEstimate,
    Priority,
    Recommendation,
    RecommendationCategory,
    TargetType,
)
from analysis.scoring import AlgorithmScorer
from config import settings
from generation.retry import GenerationError
from services.recommendations import (
    RecommendationEngine,
    get_recommendation_engine,
    identify_video_performance_gaps,
    prioritize_recommendations,
)


CHANNEL_RESPONSE = json.dumps(
    {
        "recommendations": [
            {
                "category": "Upload Schedule",
                "priority": "Medium",
                "summary": "Publish on a fixed weekly slot",
                "detailedDescription": "1) Pick one weekday (10 minutes). 2) Batch-record two videos.",
                "effortLevel": "Medium",
                "timeline": {"implementation": "2 weeks", "resultsTimeframe": "4-6 weeks"},
                "successMetric": {"metric": "Views", "currentValue": 1000, "targetValue": 1500, "confidenceLevel": "Medium"},
                "reasoning": "Consistency trains returning viewers",
            },
            {
                "category": "Title Optimization",
                "priority": "Critical",
                "summary": "Lead titles with the outcome",
                "detailedDescription": "Titles bury the payoff.",
                "effortLevel": "Low",
                "timeline": {"implementation": "1 day", "resultsTimeframe": "2 weeks"},
                "successMetric": {"metric": "CTR", "currentValue": 4, "targetValue": 6, "confidenceLevel": "High"},
                "reasoning": "Outcome-first titles lift CTR",
            },
        ]
    }
)


def _rec(title, priority, improvement):
    return Recommendation(
        target_id="t",
        target_type=TargetType.VIDEO,
        category=RecommendationCategory.CONTENT_STRUCTURE,
        priority=priority,
        title=title,
        description=title,
        action_items=[ActionItem(action="a", details="d", effort=EffortLevel.LOW, timeline="1 day", order=1)],
        expected_impact=ImpactEstimate(
            metric="m", current_value=1, projected_value=2, improvement=improvement, confidence=0.5, timeframe="1w"
        ),
        confidence=0.5,
        generated_by="test",
    )


def test_prioritize_orders_by_priority_then_improvement():
    recs = [
        _rec("low", Priority.LOW, 90),
        _rec("high-small", Priority.HIGH, 10),
        _rec("critical", Priority.CRITICAL, 1),
        _rec("high-big", Priority.HIGH, 40),
    ]

    ordered = prioritize_recommendations(recs)

    assert [r.title for r in ordered] == ["critical", "high-big", "high-small", "low"]
    assert [r.title for r in recs][0] == "low"


def test_prioritize_is_stable_for_equal_keys():
    recs = [_rec(f"r{i}", Priority.MEDIUM, 25) for i in range(5)]
    assert [r.title for r in prioritize_recommendations(recs)] == ["r0", "r1", "r2", "r3", "r4"]


def test_performance_gaps_for_weak_video(weak_video):
    gaps = {gap.metric: gap for gap in identify_video_performance_gaps(weak_video)}

    assert gaps["CTR"].category == RecommendationCategory.TITLE_OPTIMIZATION
    assert gaps["CTR"].severity == Priority.CRITICAL
    assert gaps["CTR"].gap == pytest.approx(60)
    assert gaps["Retention Rate"].severity == Priority.CRITICAL
    assert gaps["Engagement Rate"].severity == Priority.HIGH


def test_no_gaps_for_strong_video(strong_video):
    assert identify_video_performance_gaps(strong_video) == []


@pytest.mark.asyncio
async def test_video_recommendations_are_deterministic_and_prioritized(weak_video):
    engine = RecommendationEngine(client=None, model_name="rules")
    score = engine.scorer.score_video(weak_video)

    recs = await engine.generate_video_recommendations(weak_video, score)

    assert [r.title for r in recs] == [
        "Improve CTR",
        "Improve Retention Rate",
        "Optimize First 15 Seconds Hook",
        "Improve Engagement Rate",
    ]
    hook = recs[2]
    assert hook.priority == Priority.CRITICAL
    assert [item.action for item in hook.action_items] == [
        "Remove intro fluff",
        "Create strong hook",
        "State value proposition",
    ]
    assert hook.expected_impact.projected_value == 75
    assert all(r.target_type == TargetType.VIDEO and r.target_id == "vid_weak" for r in recs)


@pytest.mark.asyncio
async def test_strong_video_gets_no_recommendations(strong_video):
    engine = RecommendationEngine(client=None)
    recs = await engine.generate_video_recommendations(strong_video, engine.scorer.score_video(strong_video))
    assert recs == []


@pytest.mark.asyncio
async def test_channel_recommendations(fake_client_factory, no_sleep, channel_profile, strong_video, weak_video, monkeypatch):
    monkeypatch.setattr(settings, "PROMPT_STRICT_PLACEHOLDERS", True)
    client = fake_client_factory(CHANNEL_RESPONSE)
    engine = RecommendationEngine(client, model_name="test-model", sleep=no_sleep)

    recs = await engine.generate_channel_recommendations(channel_profile, [strong_video, weak_video])

    assert [r.title for r in recs] == ["Lead titles with the outcome", "Publish on a fixed weekly slot"]
    assert all(r.target_id == "UC_TEST" and r.target_type == TargetType.CHANNEL for r in recs)
    assert recs[0].generated_by == "test-model"

    prompt, options = client.calls[0]
    assert "Test Channel" in prompt
    assert "video editing" in prompt
    assert '1. "How I Edit Videos 3x Faster" - 10,000 views, 12.0% CTR' in prompt
    assert "{{" not in prompt
    assert options.temperature == settings.AI_TEMPERATURE_ANALYTICAL
    assert options.max_tokens == settings.AI_MAX_TOKENS


@pytest.mark.asyncio
async def test_channel_snapshot_includes_channel_score(fake_client_factory, no_sleep, channel_profile, strong_video):
    engine = RecommendationEngine(fake_client_factory(CHANNEL_RESPONSE), sleep=no_sleep)

    score, recs = await engine.generate_channel_snapshot(channel_profile, [strong_video])

    assert score == AlgorithmScorer().score_channel([strong_video])
    assert len(recs) == 2


@pytest.mark.asyncio
async def test_channel_id_is_required(fake_client_factory, channel_profile):
    client = fake_client_factory(CHANNEL_RESPONSE)
    engine = RecommendationEngine(client)

    with pytest.raises(ValueError, match="Channel ID is required"):
        await engine.generate_channel_recommendations(channel_profile.model_copy(update={"channel_id": ""}), [])

    assert client.calls == []


@pytest.mark.asyncio
async def test_channel_generation_failure_surfaces_generation_error(fake_client_factory, no_sleep, channel_profile):
    client = fake_client_factory(TimeoutError("request timed out"))
    engine = RecommendationEngine(client, max_retries=2, sleep=no_sleep)

    with pytest.raises(GenerationError, match="AI generation failed after 2 attempts: request timed out"):
        await engine.generate_channel_recommendations(channel_profile, [])

    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_channel_plain_text_response_falls_back(fake_client_factory, no_sleep, channel_profile, strong_video):
    engine = RecommendationEngine(fake_client_factory("Focus on Shorts this month."), sleep=no_sleep)

    recs = await engine.generate_channel_recommendations(channel_profile, [strong_video])

    assert len(recs) == 1
    assert recs[0].title == "AI-Generated Channel Strategy"


@pytest.mark.asyncio
async def test_optimize_title(fake_client_factory, no_sleep, strong_video):
    client = fake_client_factory("Title 1: Edit 3x Faster in Premiere\nTitle 2: My Fastest Editing Workflow\n")
    engine = RecommendationEngine(client, sleep=no_sleep)

    titles = await engine.optimize_title(strong_video)

    assert titles == ["Edit 3x Faster in Premiere", "My Fastest Editing Workflow"]
    prompt, options = client.calls[0]
    assert 'Current title: "How I Edit Videos 3x Faster"' in prompt
    assert "Optimize for search" in prompt
    assert "Optimize for browse" not in prompt
    assert options.temperature == settings.AI_TEMPERATURE_CREATIVE
    assert options.max_tokens == 2500


@pytest.mark.asyncio
async def test_engine_without_client_cannot_generate(strong_video):
    with pytest.raises(ValueError, match="No generation client configured"):
        await RecommendationEngine(client=None).optimize_title(strong_video)


def test_get_recommendation_engine_requires_api_key(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    with pytest.raises(ValueError, match="OPENAI_API_KEY is not configured"):
        get_recommendation_engine()


@pytest.mark.asyncio
async def test_channel_recommendations_come_back_prioritized(fake_client_factory, no_sleep, channel_profile, strong_video):
    elements = json.loads(CHANNEL_RESPONSE)["recommendations"]
    low, critical = dict(elements[0], priority="Low"), elements[1]
    client = fake_client_factory(json.dumps({"recommendations": [low, critical]}))
    engine = RecommendationEngine(client, sleep=no_sleep)

    recs = await engine.generate_channel_recommendations(channel_profile, [strong_video])

    assert [r.priority for r in recs] == [Priority.CRITICAL, Priority.LOW]
