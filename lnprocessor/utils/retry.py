"""Retry with exponential backoff and jitter for backend calls.

Retry policy is a provider concern: the processor never loops, it only
distinguishes "failed" from "not yet known". Providers wrap their
transport calls with ``retry_async`` and translate whatever is still
failing afterwards.

Usage:
    result = await retry_async(
        lambda: client.get(url),
        config=RetryConfig(max_retries=2, retryable_exceptions=(httpx.TransportError,)),
    )
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from lnprocessor.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Backoff policy for one kind of backend call.

    ``max_retries`` counts retries after the first attempt. Delays grow by
    ``backoff_factor`` from ``base_delay`` up to ``max_delay``; with ``jitter``
    each delay moves randomly by up to ``jitter_range`` of itself. Only
    ``retryable_exceptions`` are retried, anything else propagates at once.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.1
    retryable_exceptions: tuple[type[Exception], ...] = field(default_factory=lambda: (Exception,))

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay is smaller than base_delay")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor below 1 would shrink delays")
        if not 0 <= self.jitter_range <= 1:
            raise ValueError("jitter_range is a fraction in [0, 1]")

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0-indexed)."""
        delay = min(self.base_delay * (self.backoff_factor**attempt), self.max_delay)

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay = max(0, delay + random.uniform(-jitter_amount, jitter_amount))

        return delay


async def retry_async(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[Exception, int], Awaitable[None]] | None = None,
) -> T:
    """Await ``func`` until it succeeds or the policy gives up.

    Args:
        func: Zero-argument coroutine factory, called once per attempt
        config: Backoff policy, ``RetryConfig()`` when omitted
        on_retry: Awaited with the error and the retry number before sleeping

    Returns:
        Whatever the first successful attempt returned

    Raises:
        The last exception if all retries are exhausted, or immediately
        for exceptions not listed in ``retryable_exceptions``
    """
    config = config or RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return await func()

        except Exception as e:
            if not isinstance(e, config.retryable_exceptions):
                raise

            if attempt >= config.max_retries:
                logger.warning(
                    "retry_exhausted",
                    attempts=attempt + 1,
                    exception=type(e).__name__,
                    error=str(e),
                )
                raise

            delay = config.calculate_delay(attempt)
            logger.debug(
                "retry_scheduled",
                attempt=attempt + 1,
                max_retries=config.max_retries,
                delay_seconds=round(delay, 3),
                exception=type(e).__name__,
            )

            if on_retry is not None:
                await on_retry(e, attempt + 1)

            await asyncio.sleep(delay)

    # The loop always returns or raises
    raise RuntimeError("retry_async exited without result")
