"""Retry/backoff decisions for failed queue jobs"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from applyflow.core.config import settings
from applyflow.models.base import utcnow


@dataclass(frozen=True)
class RetryDecision:
    """What to do with a job after a failed attempt"""
    retry: bool
    attempt_count: int
    delay: float = 0.0
    available_at: Optional[datetime] = None


class RetryPolicy:
    """
    Exponential backoff with a ceiling

    Pure decision logic: the worker pool applies the decision to the store.
    """

    def __init__(self, base_delay: float = None, max_delay: float = None):
        """
        Initialize retry policy

        Args:
            base_delay: Delay in seconds before the first retry
            max_delay: Ceiling on any computed delay in seconds
        """
        self.base_delay = settings.QUEUE_RETRY_BASE_DELAY_SECONDS if base_delay is None else base_delay
        self.max_delay = settings.QUEUE_RETRY_MAX_DELAY_SECONDS if max_delay is None else max_delay

    def backoff(self, attempt_count: int) -> float:
        """
        Delay before the next attempt, given attempts already consumed

        Args:
            attempt_count: Attempt count before the failure being handled

        Returns:
            Delay in seconds: base * 2^attempt_count, capped at max_delay
        """
        # Cap the exponent so huge counts cannot overflow the float
        exponent = min(max(attempt_count, 0), 62)
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def decide(
        self,
        attempt_count: int,
        max_attempts: int,
        retry: Optional[bool] = None,
        retry_delay: Optional[float] = None,
        now: Optional[datetime] = None
    ) -> RetryDecision:
        """
        Decide between rescheduling and permanent failure

        Args:
            attempt_count: Attempts consumed before this failure
            max_attempts: Attempts allowed in total
            retry: Handler hint; False fails the job immediately
            retry_delay: Handler-supplied delay in seconds, overriding backoff
            now: Reference time for `available_at`

        Returns:
            RetryDecision; `attempt_count` is the count to persist either way
        """
        next_count = attempt_count + 1

        if retry is False or next_count >= max_attempts:
            return RetryDecision(retry=False, attempt_count=next_count)

        delay = retry_delay if retry_delay is not None else self.backoff(attempt_count)
        delay = max(delay, 0.0)
        return RetryDecision(
            retry=True,
            attempt_count=next_count,
            delay=delay,
            available_at=(now or utcnow()) + timedelta(seconds=delay),
        )
