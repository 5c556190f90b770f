"""
Retry wrapper around a generation client.

Waits 2^attempt * base_delay seconds between attempts (2s, 4s, ... with the
default 1s base) and raises GenerationError once attempts are exhausted.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception_type, stop_after_attempt

from .client import GenerationClient, GenerationOptions, GenerationResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


class GenerationError(RuntimeError):
    """Terminal generation failure after all retries."""

    def __init__(self, attempts: int, cause: Optional[BaseException]):
        self.attempts = attempts
        self.cause = cause
        message = str(cause) if cause is not None else "unknown error"
        super().__init__(f"AI generation failed after {attempts} attempts: {message}")


def _backoff(base_delay_seconds: float) -> Callable[[RetryCallState], float]:
    def wait(retry_state: RetryCallState) -> float:
        return (2 ** retry_state.attempt_number) * base_delay_seconds

    return wait


def _log_failed_attempt(max_retries: int) -> Callable[[RetryCallState], None]:
    def after(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "AI generation attempt %d/%d failed: %s",
            retry_state.attempt_number,
            max_retries,
            exc,
        )

    return after


async def generate_with_retry(
    client: GenerationClient,
    prompt: str,
    options: Optional[GenerationOptions] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    *,
    base_delay_seconds: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> GenerationResult:
    """
    Call `client.generate` until it succeeds or `max_retries` attempts fail.

    Only raised exceptions are retried; a successful response is returned as-is
    even when its content is poor (see generation.validation). Cancellation
    propagates immediately without further attempts.
    """
    options = options or GenerationOptions()
    max_retries = max(1, int(max_retries))

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries),
        wait=_backoff(base_delay_seconds),
        retry=retry_if_exception_type(Exception),
        after=_log_failed_attempt(max_retries),
        sleep=sleep,
    )

    try:
        async for attempt in retrying:
            with attempt:
                return await client.generate(prompt, options)
    except RetryError as exc:
        cause = exc.last_attempt.exception()
        raise GenerationError(max_retries, cause) from cause

    # AsyncRetrying always either returns from the block or raises
    raise GenerationError(max_retries, None)
