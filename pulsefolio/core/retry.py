"""
Retry with bounded exponential backoff.

Upstream price, logo and RPC calls are wrapped in a RetryStrategy so a
429 or a dropped connection costs a short wait instead of a missing price.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, Optional, TypeVar

from ..config import settings
from ..errors import RateLimitError, is_recoverable

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 8.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay_seconds=settings.retry_initial_delay_seconds,
            max_delay_seconds=settings.retry_max_delay_seconds,
        )

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number."""
        delay = min(
            self.initial_delay_seconds * (self.exponential_base ** attempt),
            self.max_delay_seconds,
        )
        if self.jitter:
            jitter_range = delay * self.jitter_factor
            delay += random.uniform(-jitter_range, jitter_range)
        return max(delay, 0)


class RetryStrategy:
    """
    Retries recoverable errors up to ``max_attempts`` times.

    Unrecoverable errors (validation, 4xx other than 429) propagate on the
    first failure. The last error is re-raised once attempts are exhausted.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig.from_settings()
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep

    async def execute(self, operation: Callable[[], Coroutine[Any, Any, T]]) -> T:
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_attempts):
            try:
                return await operation()
            except Exception as e:
                last_error = e

                if not self.should_retry(e, attempt):
                    raise

                delay = self._get_delay(e, attempt)
                self.logger.warning(
                    "Attempt %d/%d failed: %s. Retrying in %.1fs",
                    attempt + 1,
                    self.config.max_attempts,
                    e,
                    delay,
                )
                await self._sleep(delay)

        raise last_error or RuntimeError("All retry attempts exhausted")

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.config.max_attempts - 1:
            return False
        return is_recoverable(error)

    def _get_delay(self, error: Exception, attempt: int) -> float:
        if isinstance(error, RateLimitError) and error.retry_after:
            return min(error.retry_after, self.config.max_delay_seconds)
        return self.config.get_delay(attempt)


__all__ = ["RetryConfig", "RetryStrategy"]
