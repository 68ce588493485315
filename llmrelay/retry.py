"""
Bounded async retry with exponential backoff.

Only errors classified as ``retryable`` are retried; cancellation is re-raised
immediately and backoff waits are themselves cancellable.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .cancellation import AbortHandle
from .errors import LLMRelayError, RequestCancelledError, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy: ``max_attempts`` total tries, delay ``base_delay_s * 2**attempt``."""

    max_attempts: int = 4
    base_delay_s: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.base_delay_s < 0:
            raise ValueError("RetryPolicy.base_delay_s must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows failed attempt ``attempt`` (0-based)."""
        return self.base_delay_s * (2 ** attempt)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    abort: AbortHandle,
    policy: Optional[RetryPolicy] = None,
) -> T:
    """
    Run ``operation`` with retries.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        abort: Abort handle of the current request; also guards backoff sleeps.
        policy: Retry policy. Defaults to 4 attempts with 1s, 2s, 4s backoff.

    Returns:
        The operation's result.

    Raises:
        RequestCancelledError: Immediately, without retrying.
        LLMRelayError: The last error once attempts are exhausted, or the
            first non-retryable error.
    """
    policy = policy or RetryPolicy()
    last_error: Optional[LLMRelayError] = None

    for attempt in range(policy.max_attempts):
        abort.raise_if_aborted()
        try:
            return await operation()
        except RequestCancelledError:
            raise
        except LLMRelayError as exc:
            if classify_error(exc) != "retryable":
                raise
            last_error = exc

        if attempt + 1 >= policy.max_attempts:
            break

        delay = policy.delay_for(attempt)
        logger.warning(
            "Request failed (attempt %d/%d): %s; retrying in %.1fs",
            attempt + 1, policy.max_attempts, last_error, delay,
        )
        await abort.run(asyncio.sleep(delay))

    assert last_error is not None
    raise last_error
