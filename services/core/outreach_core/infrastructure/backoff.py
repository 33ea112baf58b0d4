"""Exponential backoff for explicitly retried jobs.

Jobs are admitted with a single attempt by default. Only the retry
endpoints admit jobs with more attempts; between those attempts the
ledger reschedules the job using this strategy.

Usage:
    backoff = BackoffStrategy(base_delay=2.0)
    if backoff.should_retry(error.retryable, attempt=job.attempts, max_attempts=job.max_attempts):
        run_at = now + timedelta(seconds=backoff.get_delay(job.attempts))
"""

import random
from dataclasses import dataclass


@dataclass
class BackoffStrategy:
    """Exponential backoff strategy for retries.

    Attributes:
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay in seconds.
        multiplier: Multiplier for exponential increase.
        jitter: Whether to add random jitter.
    """

    base_delay: float = 2.0
    max_delay: float = 300.0  # 5 minutes
    multiplier: float = 2.0
    jitter: bool = True

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a retry attempt.

        Args:
            attempt: The attempt number that just failed (1-based).

        Returns:
            Delay in seconds before next attempt.
        """
        delay = self.base_delay * (self.multiplier ** (attempt - 1))

        if self.jitter:
            # Add +/- 25% jitter before capping
            jitter_range = delay * 0.25
            delay = delay + random.uniform(-jitter_range, jitter_range)

        delay = min(delay, self.max_delay)

        return max(0.1, delay)

    def should_retry(self, retryable: bool, attempt: int, max_attempts: int) -> bool:
        """Determine if a failed attempt should be rescheduled.

        Args:
            retryable: Whether the failure is transient.
            attempt: The attempt number that just failed (1-based).
            max_attempts: Attempt budget of the job.

        Returns:
            True if another attempt should be scheduled.
        """
        if not retryable:
            return False
        return attempt < max_attempts


JOB_RETRY_BACKOFF = BackoffStrategy(base_delay=2.0, max_delay=300.0)
