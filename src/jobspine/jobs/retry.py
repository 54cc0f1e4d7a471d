"""Retry strategies for failed jobs.

A strategy answers two questions for :meth:`JobQueue.retry_job`: may a job
that failed on its Nth attempt run again, and how long should it wait first.
Retries are re-deferred through the queue's delayed set, never slept on.

Example:
    >>> from jobspine.jobs.retry import ExponentialBackoff
    >>>
    >>> strategy = ExponentialBackoff(max_retries=5, base_delay=1.0, max_delay=60.0, jitter=False)
    >>> [strategy.next_delay(n) for n in range(4)]
    [1.0, 2.0, 4.0, 8.0]
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from jobspine.core.config.settings import JobSpineSettings


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before next retry attempt.

        Args:
            attempt: Zero-based retry number (0 = first retry)

        Returns:
            Delay in seconds before next attempt
        """
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: str | None = None) -> bool:
        """Determine if another retry should be attempted.

        Args:
            attempt: Zero-based retry number that would be scheduled
            error: Last error recorded on the job
        """
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) +/- jitter

    Attributes:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness to prevent thundering herd
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 3600.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.1

    def next_delay(self, attempt: int) -> float:
        delay = min(
            self.base_delay * (self.multiplier ** attempt),
            self.max_delay,
        )
        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.0, delay)
        return delay

    def should_retry(self, attempt: int, error: str | None = None) -> bool:
        return attempt < self.max_retries


@dataclass
class ConstantBackoff(RetryStrategy):
    """Constant delay between retries."""

    max_retries: int = 2
    delay: float = 1.0

    def next_delay(self, attempt: int) -> float:
        return self.delay

    def should_retry(self, attempt: int, error: str | None = None) -> bool:
        return attempt < self.max_retries


@dataclass
class NoRetry(RetryStrategy):
    """No retry - a failure goes straight to the dead-letter queue."""

    def next_delay(self, attempt: int) -> float:
        return 0.0

    def should_retry(self, attempt: int, error: str | None = None) -> bool:
        return False


def retry_strategy_from_settings(settings: "JobSpineSettings") -> RetryStrategy:
    """Exponential backoff allowing ``retry_max_attempts`` total runs."""
    retries = settings.retry_max_attempts - 1
    if retries <= 0:
        return NoRetry()
    return ExponentialBackoff(
        max_retries=retries,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
    )


__all__ = [
    "ConstantBackoff",
    "ExponentialBackoff",
    "NoRetry",
    "RetryStrategy",
    "retry_strategy_from_settings",
]
