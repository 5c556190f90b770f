"""
Prompt templates and rendering.

Templates use `{{name}}` placeholders and a single-level
`{{#if name}}...{{/if}}` conditional block.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from analysis.models import RecommendationCategory
from config import settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_PLACEHOLDER = "{{systemPrompt}}"

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")
_CONDITIONAL_RE = re.compile(r"\{\{#if\s+(\w+)\}\}(.*?)\{\{/if\}\}", re.DOTALL)


class UnresolvedPlaceholderError(ValueError):
    def __init__(self, names: List[str]):
        self.names = names
        super().__init__(f"Unresolved prompt placeholders: {', '.join(names)}")


def find_unresolved_placeholders(text: str) -> List[str]:
    """Distinct placeholder names still present in rendered text, in order of appearance."""
    seen: List[str] = []
    for name in _PLACEHOLDER_RE.findall(text):
        if name not in seen:
            seen.append(name)
    return seen


def build_prompt(
    template: str,
    variables: Mapping[str, Any],
    system_prompt: Optional[str] = None,
    *,
    strict: Optional[bool] = None,
    missing_value: Optional[str] = None,
) -> str:
    """
    Render a template.

    Placeholders with no entry in `variables` are left intact; in strict mode
    they raise UnresolvedPlaceholderError instead of logging a warning.
    `None` values render as `missing_value` (PROMPT_MISSING_VALUE by default).
    """
    if strict is None:
        strict = settings.PROMPT_STRICT_PLACEHOLDERS
    if missing_value is None:
        missing_value = settings.PROMPT_MISSING_VALUE

    prompt = template
    if system_prompt:
        prompt = prompt.replace(SYSTEM_PROMPT_PLACEHOLDER, system_prompt, 1)

    def substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        value = variables[name]
        return missing_value if value is None else str(value)

    prompt = _PLACEHOLDER_RE.sub(substitute, prompt)

    def conditional(match: "re.Match[str]") -> str:
        return match.group(2) if variables.get(match.group(1)) else ""

    prompt = _CONDITIONAL_RE.sub(conditional, prompt)

    unresolved = find_unresolved_placeholders(prompt)
    if unresolved:
        if strict:
            raise UnresolvedPlaceholderError(unresolved)
        logger.warning("Prompt rendered with unresolved placeholders: %s", ", ".join(unresolved))

    return prompt


# System prompts

YOUTUBE_ALGORITHM_EXPERT_SYSTEM_PROMPT = """You are a YouTube algorithm optimization expert.

The algorithm rewards viewer satisfaction through four weighted signals:
1. Click-through rate (25%): >10% for search, >5% for browse.
2. Watch time and retention (35%): >50% average percentage viewed; the first 15 seconds decide whether viewers stay.
3. Engagement (25%): likes, comments, shares and subscriptions; >5% engagement rate.
4. Satisfaction (15%): survey responses and absence of "Not interested" signals.

Give data-driven, specific, measurable recommendations. Always reference the data provided and explain your reasoning."""

CREATIVE_OPTIMIZATION_SYSTEM_PROMPT = """You are a YouTube creative optimization specialist focused on click-through rate and early retention.

Every suggestion must be actionable and specific. Titles stay within 60 characters, hooks land in the first 15 seconds,
and curiosity never comes at the cost of clarity or honesty."""


# Templates

RECOMMENDATIONS_JSON_FORMAT = """Respond with a single JSON object and nothing else:
{
  "recommendations": [
    {
      "category": "Title Optimization | Thumbnail Improvement | Content Structure | Engagement Tactics | SEO Keywords | Upload Schedule | Shorts Strategy | Audience Targeting | Retention Improvement | CTA Optimization | Topic Selection | Collaboration | Playlist Strategy | End Screen Optimization",
      "priority": "Critical | High | Medium | Low",
      "summary": "one-line title",
      "detailedDescription": "issue and numbered steps, e.g. 1) Do X (1 hour). 2) Do Y (1 week).",
      "effortLevel": "Low | Medium | High",
      "timeline": {"implementation": "e.g. 1 week", "resultsTimeframe": "e.g. 2-4 weeks"},
      "successMetric": {
        "metric": "CTR | Retention | Engagement | ...",
        "currentValue": 0,
        "targetValue": 0,
        "measurementMethod": "how to measure",
        "confidenceLevel": "Low | Medium | High"
      },
      "reasoning": "why this works",
      "projectValue": 0
    }
  ]
}"""

CHANNEL_STRATEGY_PROMPT = """{{systemPrompt}}

# CHANNEL ANALYSIS

## Overview
- Channel: {{channelName}}
- Subscribers: {{subscriberCount}}
- Videos: {{videoCount}}
- Niche: {{niche}}
- Upload frequency: {{uploadFrequency}}
- Channel age: {{channelAge}}

## Algorithm score: {{algorithmScore}}/100 ({{scoreGrade}})

- CTR: {{avgCTR}}% (benchmark {{ctrBenchmark}}%, gap {{ctrGap}}%) {{ctrStatus}}
- Retention: {{avgRetention}}% (benchmark {{retentionBenchmark}}%, gap {{retentionGap}}%) {{retentionStatus}}
- Engagement: {{avgEngagement}}% (benchmark {{engagementBenchmark}}%, gap {{engagementGap}}%) {{engagementStatus}}
- Subscriber growth: {{subGrowthRate}}%, views growth: {{viewsGrowthRate}}% ({{growthTrend}})

## Content
Top topics: {{topTopics}}
Weak topics: {{weakTopics}}
Mix: long-form {{longformPercentage}}%, mid-form {{midformPercentage}}%, Shorts {{shortsPercentage}}%

## Top videos
{{topVideos}}

## Bottom videos
{{bottomVideos}}

# TASK
Produce 8-12 prioritized recommendations for the next 90 days. Favour quick wins (low effort, high impact)
and critical issues first. Respect the creator's upload capacity ({{uploadFrequency}}).

""" + RECOMMENDATIONS_JSON_FORMAT

VIDEO_ANALYSIS_PROMPT = """{{systemPrompt}}

# VIDEO ANALYSIS

- Title: {{title}}
- Video ID: {{videoId}}
- Duration: {{duration}} ({{videoType}})
- Algorithm score: {{algorithmScore}}/100 ({{scoreGrade}})

## Metrics
- CTR: {{ctr}}% on {{impressions}} impressions ({{ctrStatus}})
- Average percentage viewed: {{avgPercentageViewed}}%, average view duration: {{avgViewDuration}}
- Retention at 15s: {{retention15s}}%
- Views: {{views}}, likes: {{likes}}, comments: {{comments}}, shares: {{shares}}
- Engagement rate: {{engagementRate}}%, subscribers gained: {{subsGained}}

# TASK
Give 5-8 recommendations, starting with the first 15 seconds when retention there is below 80%,
then CTR, mid-video retention and engagement.

""" + RECOMMENDATIONS_JSON_FORMAT

TITLE_OPTIMIZATION_PROMPT = """{{systemPrompt}}

# TITLE OPTIMIZATION

Current title: "{{currentTitle}}"

- Topic: {{topic}}
- Audience: {{audience}}
- Length: {{duration}} ({{contentType}})
- Niche: {{niche}}
- CTR: {{ctr}}% (benchmark {{ctrBenchmark}}%, gap {{gap}}%)
- Main traffic source: {{trafficSource}}
- Views: {{views}}, impressions: {{impressions}}
- Keywords: {{keywords}}
- Competitor titles: {{competitorTitles}}

# TASK
Write 5 alternative titles, 60 characters max, primary keyword in the first 40 characters.
{{#if searchTraffic}}
Optimize for search: use exact-match keywords.
{{/if}}
{{#if browseTraffic}}
Optimize for browse: lead with curiosity and emotion.
{{/if}}

Format each one on its own line as:
Title 1: <title>
"""

THUMBNAIL_OPTIMIZATION_PROMPT = """{{systemPrompt}}

# THUMBNAIL REVIEW

- Title: {{title}}
- CTR: {{ctr}}% (benchmark {{ctrBenchmark}}%)
- Niche: {{niche}}

Suggest thumbnail concepts that complement the title without repeating it.

""" + RECOMMENDATIONS_JSON_FORMAT

RETENTION_OPTIMIZATION_PROMPT = """{{systemPrompt}}

# RETENTION REVIEW

- Title: {{title}}
- Duration: {{duration}}
- Retention at 15s: {{retention15s}}%
- Average percentage viewed: {{avgPercentageViewed}}%

Identify where viewers leave and how to restructure the hook, pacing and calls to action.

""" + RECOMMENDATIONS_JSON_FORMAT

SHORTS_STRATEGY_PROMPT = """{{systemPrompt}}

# SHORTS STRATEGY

- Channel: {{channelName}}
- Shorts share of uploads: {{shortsPercentage}}%
- Top long-form videos:
{{topVideos}}

Propose Shorts that drive discovery back to long-form content.

""" + RECOMMENDATIONS_JSON_FORMAT


@dataclass(frozen=True)
class PromptConfig:
    category: RecommendationCategory
    template: str
    system_prompt: str
    default_temperature: float
    max_tokens: int


def _config(category, template, system_prompt, temperature, max_tokens) -> PromptConfig:
    return PromptConfig(
        category=category,
        template=template,
        system_prompt=system_prompt,
        default_temperature=temperature,
        max_tokens=max_tokens,
    )


_C = RecommendationCategory
_EXPERT = YOUTUBE_ALGORITHM_EXPERT_SYSTEM_PROMPT
_CREATIVE = CREATIVE_OPTIMIZATION_SYSTEM_PROMPT

PROMPT_TEMPLATES: Dict[RecommendationCategory, PromptConfig] = {
    _C.TITLE_OPTIMIZATION: _config(_C.TITLE_OPTIMIZATION, TITLE_OPTIMIZATION_PROMPT, _CREATIVE, 0.6, 2500),
    _C.THUMBNAIL_IMPROVEMENT: _config(_C.THUMBNAIL_IMPROVEMENT, THUMBNAIL_OPTIMIZATION_PROMPT, _CREATIVE, 0.5, 3000),
    _C.CONTENT_STRUCTURE: _config(_C.CONTENT_STRUCTURE, VIDEO_ANALYSIS_PROMPT, _EXPERT, 0.3, 3500),
    _C.RETENTION_IMPROVEMENT: _config(_C.RETENTION_IMPROVEMENT, RETENTION_OPTIMIZATION_PROMPT, _EXPERT, 0.3, 4000),
    _C.SHORTS_STRATEGY: _config(_C.SHORTS_STRATEGY, SHORTS_STRATEGY_PROMPT, _EXPERT, 0.4, 4500),
    _C.ENGAGEMENT_TACTICS: _config(_C.ENGAGEMENT_TACTICS, VIDEO_ANALYSIS_PROMPT, _EXPERT, 0.4, 2000),
    _C.SEO_KEYWORDS: _config(_C.SEO_KEYWORDS, TITLE_OPTIMIZATION_PROMPT, _CREATIVE, 0.4, 2000),
    _C.UPLOAD_SCHEDULE: _config(_C.UPLOAD_SCHEDULE, CHANNEL_STRATEGY_PROMPT, _EXPERT, 0.3, 4000),
    _C.AUDIENCE_TARGETING: _config(_C.AUDIENCE_TARGETING, CHANNEL_STRATEGY_PROMPT, _EXPERT, 0.3, 2500),
    _C.CTA_OPTIMIZATION: _config(_C.CTA_OPTIMIZATION, RETENTION_OPTIMIZATION_PROMPT, _CREATIVE, 0.4, 2000),
    _C.TOPIC_SELECTION: _config(_C.TOPIC_SELECTION, CHANNEL_STRATEGY_PROMPT, _EXPERT, 0.3, 2500),
    _C.COLLABORATION: _config(_C.COLLABORATION, CHANNEL_STRATEGY_PROMPT, _EXPERT, 0.4, 2000),
    _C.PLAYLIST_STRATEGY: _config(_C.PLAYLIST_STRATEGY, CHANNEL_STRATEGY_PROMPT, _EXPERT, 0.3, 2000),
    _C.END_SCREEN_OPTIMIZATION: _config(_C.END_SCREEN_OPTIMIZATION, RETENTION_OPTIMIZATION_PROMPT, _EXPERT, 0.3, 2000),
}


def get_prompt_config(category: RecommendationCategory) -> PromptConfig:
    return PROMPT_TEMPLATES[RecommendationCategory(category)]
