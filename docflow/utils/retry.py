"""Bounded async retry with exponential backoff.

Transport-level retries only. Workflow failure routing is handled by the
engine and never by this module.

Example:
    >>> config = RetryConfig(max_attempts=3, base_delay_seconds=1.0,
    ...                      retryable_exceptions=(APIClientError,))
    >>> response = await retry_async(lambda: client.get(url), config)
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry logic.

    Attributes:
        max_attempts: Maximum number of attempts (including the first)
        base_delay_seconds: Delay before the first retry
        max_delay_seconds: Upper bound for a single delay
        exponential_base: Delay for attempt ``n`` is ``base_delay * base ** n``
        jitter: Scale each delay by a random factor in [0.5, 1.5)
        retryable_exceptions: Exception types that trigger another attempt
        sleep: Awaitable sleep, replaceable in tests
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = False
    retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)

    def delay_for(self, attempt: int) -> float:
        """Delay after the zero-based ``attempt`` failed."""
        delay = min(
            self.base_delay_seconds * (self.exponential_base ** attempt),
            self.max_delay_seconds,
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


async def retry_async(
    operation: Callable[[], Awaitable[Any]],
    config: RetryConfig,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
) -> Any:
    """Await ``operation`` until it succeeds or attempts are exhausted.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        config: Retry configuration
        should_retry: Optional predicate further filtering retryable exceptions

    Returns:
        Result of the first successful attempt

    Raises:
        The last exception when all attempts fail, or immediately for a
        non-retryable exception.
    """
    attempts = max(1, config.max_attempts)

    for attempt in range(attempts):
        try:
            return await operation()
        except config.retryable_exceptions as e:
            if should_retry is not None and not should_retry(e):
                raise

            if attempt == attempts - 1:
                LOGGER.error(
                    f"All {attempts} attempts failed",
                    extra={"exception": str(e)},
                )
                raise

            delay = config.delay_for(attempt)
            LOGGER.warning(
                f"Attempt {attempt + 1}/{attempts} failed: {type(e).__name__}: {e}. "
                f"Retrying in {delay:.2f}s...",
                extra={
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                    "delay_seconds": delay,
                    "exception_type": type(e).__name__,
                },
            )
            await config.sleep(delay)
