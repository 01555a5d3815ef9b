"""
Retry Policy
============

One retry policy applied uniformly to every AI service call: bounded
attempts, exponential backoff, and a predicate selecting which errors are
worth retrying (rate limiting by default). Built on tenacity.

With the default settings a rate-limited call is retried after 2s and
then 4s before the last error is re-raised to the caller.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from setup_assistant.config.settings import Settings
from setup_assistant.utils.errors import RateLimitError
from setup_assistant.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential-backoff retry.

    Attributes:
        max_attempts: Total attempts including the first call
        initial_wait: Seconds before the first retry, doubled after each
        max_wait: Upper bound for a single wait
        retry_on: Exception types that trigger a retry; anything else
            propagates immediately
    """

    max_attempts: int = 3
    initial_wait: float = 2.0
    max_wait: float = 8.0
    retry_on: tuple[type[BaseException], ...] = (RateLimitError,)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.ai_max_attempts,
            initial_wait=settings.ai_backoff_initial_seconds,
            max_wait=settings.ai_backoff_max_seconds,
        )

    def backoff_schedule(self) -> list[float]:
        """Waits (seconds) between consecutive attempts."""
        return [
            min(self.max_wait, self.initial_wait * 2**attempt)
            for attempt in range(self.max_attempts - 1)
        ]

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Call ``fn(*args, **kwargs)`` under this policy.

        Raises:
            The last exception once attempts are exhausted, or the first
            non-retryable exception.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.initial_wait,
                min=self.initial_wait,
                max=self.max_wait,
            ),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await fn(*args, **kwargs)
        return result


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retry_policy.retrying",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(error) if error else None,
        error_type=type(error).__name__ if error else None,
    )
