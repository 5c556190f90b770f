"""Response quality gate and prompt size helpers."""

import logging
import math
import re

logger = logging.getLogger(__name__)

ERROR_PATTERNS = [
    re.compile(r"I cannot", re.IGNORECASE),
    re.compile(r"I'm unable to", re.IGNORECASE),
    re.compile(r"I don't have access", re.IGNORECASE),
    re.compile(r"API error", re.IGNORECASE),
]

TRUNCATION_MARKER = "\n\n[Content truncated due to length]"


def validate_response(content: str, min_length: int = 100) -> bool:
    """Reject empty, too-short, or refusal-looking model output."""
    if not content or not content.strip():
        logger.warning("AI response is empty")
        return False

    if len(content) < min_length:
        logger.warning("AI response too short: length=%d min_length=%d", len(content), min_length)
        return False

    for pattern in ERROR_PATTERNS:
        if pattern.search(content):
            logger.warning("AI response contains error pattern: %s", pattern.pattern)
            return False

    return True


def estimate_tokens(text: str) -> int:
    # ~4 characters per token
    return math.ceil(len(text) / 4)


def is_within_token_limit(prompt: str, max_tokens: int = 4000) -> bool:
    """Leave 20% of the budget for the response."""
    return estimate_tokens(prompt) < max_tokens * 0.8


def truncate_prompt(prompt: str, max_tokens: int = 4000) -> str:
    max_chars = int(max_tokens * 4 * 0.8)
    if len(prompt) <= max_chars:
        return prompt

    logger.warning("Prompt truncated due to length: original=%d truncated=%d", len(prompt), max_chars)
    return prompt[:max_chars] + TRUNCATION_MARKER
