"""
Parse model output into typed recommendations.

Two paths:
- JSON: the whole output (optionally inside one ```json fence) is an object
  with a `recommendations` array; every element is mapped.
- Fallback: anything else becomes exactly one catch-all recommendation that
  carries the raw text.

The parser never raises.

Action item grammar (version 1), applied to `detailedDescription`:

    <digits>) <text up to the first period>[ (<timeline>)]<period or newline>

e.g. "1) Rewrite the first line of the script (30 minutes). 2) Re-upload."
An item must be terminated by a period or newline to be picked up.

Title grammar (version 1), one title per line:

    [### ]Title <n>[:|-] <title>      or      <n>. <title>
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from analysis.metrics import percent_change
from analysis.models import (
    ActionItem,
    EffortLevel,
    ImpactEstimate,
    Priority,
    Recommendation,
    RecommendationCategory,
    TargetType,
)

logger = logging.getLogger(__name__)

ACTION_ITEM_GRAMMAR_VERSION = 1
TITLE_GRAMMAR_VERSION = 1

ACTION_ITEM_PATTERN = re.compile(r"\d+\)\s+([^.]+?)(?:\s*\(([^)]+)\))?[.\n]")
TITLE_PATTERN = re.compile(r"(?:Title \d+|^\d+\.)\s*[:\-]?\s*([^:\-\s].*)$", re.MULTILINE)
_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*\n(.*)\n```$", re.DOTALL)

FALLBACK_DESCRIPTION_LENGTH = 500
FALLBACK_TITLE = "AI-Generated Channel Strategy"
FALLBACK_CONFIDENCE = 0.75
DEFAULT_CONFIDENCE = 0.7

CATEGORY_LABELS: Dict[str, RecommendationCategory] = {
    "Title Optimization": RecommendationCategory.TITLE_OPTIMIZATION,
    "Thumbnail Improvement": RecommendationCategory.THUMBNAIL_IMPROVEMENT,
    "Content Structure": RecommendationCategory.CONTENT_STRUCTURE,
    "Engagement Tactics": RecommendationCategory.ENGAGEMENT_TACTICS,
    "SEO Keywords": RecommendationCategory.SEO_KEYWORDS,
    "Upload Schedule": RecommendationCategory.UPLOAD_SCHEDULE,
    "Shorts Strategy": RecommendationCategory.SHORTS_STRATEGY,
    "Audience Targeting": RecommendationCategory.AUDIENCE_TARGETING,
    "Retention Improvement": RecommendationCategory.RETENTION_IMPROVEMENT,
    "CTA Optimization": RecommendationCategory.CTA_OPTIMIZATION,
    "Topic Selection": RecommendationCategory.TOPIC_SELECTION,
    "Collaboration": RecommendationCategory.COLLABORATION,
    "Playlist Strategy": RecommendationCategory.PLAYLIST_STRATEGY,
    "End Screen Optimization": RecommendationCategory.END_SCREEN_OPTIMIZATION,
}

CONFIDENCE_LEVELS: Dict[str, float] = {
    "Low": 0.5,
    "Medium": 0.7,
    "High": 0.9,
}


def map_category(label: Any) -> RecommendationCategory:
    """Free-text label -> category; unknown labels fall back to content_structure."""
    text = str(label or "").strip()
    if text in CATEGORY_LABELS:
        return CATEGORY_LABELS[text]
    try:
        return RecommendationCategory(text)
    except ValueError:
        logger.warning("Unknown recommendation category %r, defaulting to content_structure", label)
        return RecommendationCategory.CONTENT_STRUCTURE


def map_confidence(level: Any) -> float:
    return CONFIDENCE_LEVELS.get(str(level or "").strip().capitalize(), DEFAULT_CONFIDENCE)


def _map_effort(value: Any) -> EffortLevel:
    try:
        return EffortLevel(str(value or "").strip().lower())
    except ValueError:
        return EffortLevel.MEDIUM


def _map_priority(value: Any) -> Priority:
    try:
        return Priority(str(value or "").strip().lower())
    except ValueError:
        return Priority.MEDIUM


def extract_action_items(description: str, effort_level: Any, timeline: str) -> List[ActionItem]:
    """Numbered steps from free text; one catch-all item when none are found."""
    effort = _map_effort(effort_level)
    items: List[ActionItem] = []
    for order, match in enumerate(ACTION_ITEM_PATTERN.finditer(description or ""), start=1):
        text = match.group(1).strip()
        items.append(
            ActionItem(
                action=text,
                details=text,
                effort=effort,
                timeline=(match.group(2) or timeline).strip(),
                order=order,
            )
        )

    if not items:
        items.append(
            ActionItem(
                action="Implement recommendation",
                details=description or "",
                effort=effort,
                timeline=timeline,
                order=1,
            )
        )
    return items


def extract_titles(content: str) -> List[str]:
    titles = []
    for match in TITLE_PATTERN.finditer(content or ""):
        title = match.group(1).strip().strip('*"').strip()
        if title:
            titles.append(title)
    return titles


def _load_json(content: str) -> Any:
    text = (content or "").strip()
    fenced = _FENCE_PATTERN.match(text)
    if fenced:
        text = fenced.group(1)
    return json.loads(text)


def _finite_number(value: Any) -> float:
    number = float(value or 0)
    if not math.isfinite(number):
        raise ValueError(f"Non-finite number in model output: {value!r}")
    return number


def _map_element(
    element: Dict[str, Any],
    target_id: str,
    target_type: TargetType,
    generated_by: str,
) -> Recommendation:
    timeline = element.get("timeline") or {}
    metric = element["successMetric"]
    description = element.get("detailedDescription") or ""

    current_value = _finite_number(metric.get("currentValue"))
    target_value = _finite_number(metric.get("targetValue"))
    confidence = map_confidence(metric.get("confidenceLevel"))

    project_value = element.get("projectValue")

    return Recommendation(
        target_id=target_id,
        target_type=target_type,
        category=map_category(element.get("category")),
        priority=_map_priority(element.get("priority")),
        title=element.get("summary") or "",
        description=description,
        action_items=extract_action_items(
            description,
            element.get("effortLevel"),
            timeline.get("implementation") or "",
        ),
        expected_impact=ImpactEstimate(
            metric=str(metric.get("metric") or ""),
            current_value=current_value,
            projected_value=target_value,
            improvement=percent_change(current_value, target_value),
            confidence=confidence,
            timeframe=timeline.get("resultsTimeframe") or "",
            measurement_method=metric.get("measurementMethod"),
        ),
        confidence=confidence,
        generated_by=generated_by,
        reasoning=element.get("reasoning") or "",
        project_value=int(_finite_number(project_value)) if project_value is not None else None,
    )


def _parse_json_recommendations(
    content: str,
    target_id: str,
    target_type: TargetType,
    generated_by: str,
) -> Optional[List[Recommendation]]:
    try:
        parsed = _load_json(content)
    except (RecursionError, ValueError) as exc:
        logger.warning("Model output is not JSON, using fallback: %s", exc)
        return None

    if not isinstance(parsed, dict) or not isinstance(parsed.get("recommendations"), list):
        logger.warning("Model output JSON has no recommendations array, using fallback")
        return None
    if not parsed["recommendations"]:
        logger.warning("Model output JSON has an empty recommendations array, using fallback")
        return None

    try:
        return [
            _map_element(element, target_id, target_type, generated_by)
            for element in parsed["recommendations"]
        ]
    except (AttributeError, KeyError, OverflowError, TypeError, ValueError) as exc:
        logger.warning("Malformed recommendation element, using fallback: %s", exc)
        return None


def _fallback_recommendation(
    content: str,
    target_id: str,
    target_type: TargetType,
    generated_by: str,
) -> Recommendation:
    return Recommendation(
        target_id=target_id,
        target_type=target_type,
        category=RecommendationCategory.CONTENT_STRUCTURE,
        priority=Priority.HIGH,
        title=FALLBACK_TITLE,
        description=content[:FALLBACK_DESCRIPTION_LENGTH] + "...",
        action_items=[
            ActionItem(
                action="Review full AI recommendations",
                details=content,
                effort=EffortLevel.HIGH,
                timeline="1-2 weeks",
                order=1,
            )
        ],
        expected_impact=ImpactEstimate(
            metric="Overall Performance",
            current_value=0,
            projected_value=0,
            improvement=0,
            confidence=DEFAULT_CONFIDENCE,
            timeframe="4-8 weeks",
        ),
        confidence=FALLBACK_CONFIDENCE,
        generated_by=generated_by,
        reasoning="AI-generated comprehensive strategy",
    )


def parse_recommendations(
    content: str,
    target_id: str,
    target_type: TargetType,
    generated_by: str,
) -> List[Recommendation]:
    """Model output -> recommendations, in model order."""
    content = content or ""
    target_type = TargetType(target_type)

    recommendations = _parse_json_recommendations(content, target_id, target_type, generated_by)
    if recommendations is not None:
        logger.info("Parsed %d recommendations from JSON for %s", len(recommendations), target_id)
        return recommendations

    return [_fallback_recommendation(content, target_id, target_type, generated_by)]
