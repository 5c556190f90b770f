"""
Generative model client adapter.

The recommendation pipeline only depends on the `GenerationClient` protocol;
`OpenAIGenerationClient` is the production implementation.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from openai import AsyncOpenAI

from config import require_openai_api_key, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationOptions:
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    system_prompt: Optional[str] = None


@dataclass(frozen=True)
class GenerationResult:
    content: str
    model: str
    duration_ms: int
    tokens_used: Optional[int] = None


class GenerationClient(Protocol):
    async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
        ...


def get_openai_client(api_key: str, base_url: Optional[str] = None) -> Optional[AsyncOpenAI]:
    """Get OpenAI client, handling placeholders."""
    if not api_key or "your_" in api_key or api_key == "test-key":
        return None
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=settings.AI_REQUEST_TIMEOUT_SECONDS,
        max_retries=0,  # retries are owned by generation.retry
    )


class OpenAIGenerationClient:
    """Chat-completions backed generation."""

    def __init__(self, client: AsyncOpenAI, default_model: Optional[str] = None):
        self.client = client
        self.default_model = default_model or settings.AI_MODEL

    async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
        model = options.model or self.default_model
        temperature = (
            options.temperature if options.temperature is not None else settings.AI_TEMPERATURE_ANALYTICAL
        )
        max_tokens = options.max_tokens or settings.AI_MAX_TOKENS

        messages = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})

        started = time.monotonic()
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        duration_ms = int((time.monotonic() - started) * 1000)

        content = response.choices[0].message.content or ""
        tokens_used = response.usage.total_tokens if response.usage else None

        logger.info(
            "Generation completed model=%s tokens=%s duration_ms=%d prompt_len=%d response_len=%d",
            model,
            tokens_used,
            duration_ms,
            len(prompt),
            len(content),
        )
        return GenerationResult(
            content=content,
            model=model,
            duration_ms=duration_ms,
            tokens_used=tokens_used,
        )


def create_generation_client() -> OpenAIGenerationClient:
    """Build the production client from settings; raises ValueError when unconfigured."""
    client = get_openai_client(require_openai_api_key(), settings.OPENAI_BASE_URL)
    if client is None:
        raise ValueError("OPENAI_API_KEY is not configured")
    return OpenAIGenerationClient(client)
