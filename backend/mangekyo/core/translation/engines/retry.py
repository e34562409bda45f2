"""Shared retry/backoff policy for engine calls.

Transient failures (rate limited, timeout, 5xx) are retried with
`base * 2^attempt` exponential backoff plus random jitter, up to a fixed
number of attempts. A provider Retry-After hint raises the wait to at least
that many seconds. Every other error is raised on the first failure.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)
from tenacity.wait import wait_base

from ..errors import TranslationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryConfig(BaseModel):
    """Backoff settings for one engine."""

    max_attempts: int = Field(default=3, ge=1, description="Total attempts, first call included")
    base_delay: float = Field(default=1.0, ge=0, description="Seconds for the first backoff")
    max_delay: float = Field(default=15.0, ge=0)
    jitter: float = Field(default=1.0, ge=0, description="Upper bound of random extra delay")
    max_retry_after: float = Field(
        default=60.0, ge=0, description="Cap on a provider Retry-After hint"
    )


def is_transient_error(exc: BaseException) -> bool:
    return isinstance(exc, TranslationError) and exc.is_transient


class wait_retry_after(wait_base):
    """Wait at least as long as the failed call's Retry-After hint."""

    def __init__(self, fallback: wait_base, cap: float):
        self.fallback = fallback
        self.cap = cap

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self.fallback(retry_state)
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(exc, "retry_after", None)
        if retry_after:
            delay = max(delay, min(float(retry_after), self.cap))
        return delay


def build_retrying(
    config: RetryConfig,
    engine: str,
    on_retry: Optional[Callable[[RetryCallState], None]] = None,
) -> AsyncRetrying:
    """Create a tenacity AsyncRetrying for an engine call."""

    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            f"[Retry] {engine}: attempt {state.attempt_number}/{config.max_attempts} "
            f"failed ({exc}), retrying in {state.next_action.sleep if state.next_action else 0:.2f}s"
        )
        if on_retry is not None:
            on_retry(state)

    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_retry_after(
            wait_exponential(multiplier=config.base_delay, max=config.max_delay)
            + wait_random(0, config.jitter),
            config.max_retry_after,
        ),
        retry=retry_if_exception(is_transient_error),
        before_sleep=before_sleep,
        reraise=True,
    )


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig,
    engine: str,
    on_retry: Optional[Callable[[RetryCallState], None]] = None,
) -> T:
    """Run fn under the retry policy.

    Raises:
        TranslationError: The last error once attempts are exhausted, or the
            first non-transient error
    """
    async for attempt in build_retrying(config, engine, on_retry):
        with attempt:
            return await fn()
    raise RuntimeError("retry loop exited without a result")  # pragma: no cover
