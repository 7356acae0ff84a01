"""Retry and backoff utilities for calls to external HTTP services.

Used by the forecast client so a single flaky Open-Meteo response does
not cost a recipient their weather story.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from dailybrief.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 10.0
    jitter: bool = True
    retryable_exceptions: tuple[type[Exception], ...] = field(
        default_factory=lambda: (httpx.TransportError, httpx.HTTPStatusError)
    )


def backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at backoff_max."""
    delay = min(config.backoff_base * (2**attempt), config.backoff_max)
    if config.jitter:
        delay *= 0.5 + random.random()
    return delay


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
) -> T:
    """
    Execute async function with exponential backoff retry.

    Each retry waits for min(backoff_base * 2^attempt, backoff_max) seconds,
    with random jitter applied if enabled. Exceptions outside
    ``retryable_exceptions`` propagate immediately.

    Args:
        fn: Async function to execute (no arguments)
        config: Retry configuration, uses defaults if not provided
        operation_name: Name for logging purposes

    Returns:
        Result of fn()

    Raises:
        Exception: The last exception if all retries are exhausted

    Example:
        ```python
        result = await retry_with_backoff(
            lambda: client.get(url, params=params),
            config=RetryConfig(max_attempts=2),
            operation_name="open_meteo_forecast",
        )
        ```
    """
    config = config or RetryConfig()

    for attempt in range(config.max_attempts):
        try:
            return await fn()
        except config.retryable_exceptions as e:
            if attempt + 1 >= config.max_attempts:
                logger.bind(
                    operation=operation_name,
                    attempts=config.max_attempts,
                    error=str(e),
                ).error("retry_exhausted")
                raise

            delay = backoff_delay(attempt, config)
            logger.bind(
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 2),
                error=str(e),
            ).warning("retry_attempt")
            await asyncio.sleep(delay)

    raise RuntimeError(f"retry_with_backoff called with max_attempts={config.max_attempts}")
