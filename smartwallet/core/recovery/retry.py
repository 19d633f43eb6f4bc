"""
Bounded retry policy with exponential backoff.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, Optional, TypeVar

from .errors import RecoverableError, UnrecoverableError, classify_error

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay_seconds: float = 0.5
    max_delay_seconds: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

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


class RetryPolicy:
    """
    Retries recoverable errors up to `max_attempts` times.

    Unrecoverable errors are raised immediately; foreign exceptions are
    classified by `classify_error`. The number of attempts made by the last
    `execute` call is available as `attempts`.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self.attempts = 0

    async def execute(self, operation: Callable[[], Coroutine[Any, Any, T]]) -> T:
        self.attempts = 0

        for attempt in range(self.config.max_attempts):
            self.attempts = attempt + 1
            try:
                return await operation()
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise

                delay = self._get_delay(e, attempt)
                self.logger.warning(
                    f"Attempt {attempt + 1}/{self.config.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                await self._sleep(delay)

        # should_retry refuses the last attempt, so the loop always returns or raises
        raise RuntimeError("All retry attempts exhausted")

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.config.max_attempts - 1:
            return False

        if isinstance(error, UnrecoverableError):
            return False

        if isinstance(error, RecoverableError):
            return True

        return classify_error(error).recoverable

    def _get_delay(self, error: Exception, attempt: int) -> float:
        delay = self.config.get_delay(attempt)
        if isinstance(error, RecoverableError) and error.retry_after:
            return min(max(delay, error.retry_after), self.config.max_delay_seconds)
        return delay
