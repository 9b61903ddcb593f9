"""
Retry Module - Bounded retry with linear backoff for network calls.
===================================================================

One reusable policy applied at the platform session boundary instead of
per-call try/except blocks. Only NetworkError kinds classified as
retryable (connection, timeout, rate_limit) are retried; the last error
is re-raised unchanged.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from campusbot.shared.errors import NetworkError
from campusbot.shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Whether an exception should trigger another attempt."""
    return isinstance(exc, NetworkError) and exc.is_retryable


@dataclass
class RetryPolicy:
    """
    Bounded retry parameters.

    Attributes:
        max_attempts: Total attempts including the first call
        backoff: Linear backoff step in seconds (wait = backoff * attempt)
        max_wait: Upper bound for any single wait, including Retry-After
    """

    max_attempts: int = 3
    backoff: float = 1.0
    max_wait: float = 10.0

    def wait_seconds(self, retry_state: RetryCallState) -> float:
        """Linear backoff, stretched to honor a server Retry-After."""
        wait = self.backoff * retry_state.attempt_number
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exc = outcome.exception()
            if isinstance(exc, NetworkError) and exc.retry_after:
                wait = max(wait, exc.retry_after)
        return min(wait, self.max_wait)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Retry {retry_state.attempt_number}/{self.max_attempts} after {exc}"
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Await fn(*args, **kwargs) under this policy.

        Raises:
            NetworkError: The last retryable failure once attempts run out
            Exception: Any non-retryable failure, immediately
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=self.wait_seconds,
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await fn(*args, **kwargs)
        raise AssertionError("unreachable: tenacity re-raises on exhaustion")  # pragma: no cover
