"""
Rate-limit retry policy for platform connectors.

The policy is an explicit object handed to a connector at construction time.
Its clock, sleep and jitter sources are injectable so that tests can drive
retries deterministically.
"""

import logging
import random
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

RATE_LIMIT = "rate_limit"
ABUSE = "abuse"


class RateLimitSignal:
    """A classified rate-limit response."""

    def __init__(self, kind: str, retry_after: Optional[float] = None):
        if kind not in (RATE_LIMIT, ABUSE):
            raise ValueError(f"Unknown rate limit kind: {kind}")
        self.kind = kind
        self.retry_after = retry_after

    def __repr__(self):
        return f"RateLimitSignal(kind={self.kind!r}, retry_after={self.retry_after!r})"


class RetriesExhausted(Exception):
    """Raised when a rate-limited call is still failing after all allowed retries."""

    def __init__(self, description: str, signal: RateLimitSignal, cause: Exception):
        super().__init__(f"{description}: {signal.kind} persisted after retries ({cause})")
        self.description = description
        self.signal = signal
        self.cause = cause


class RetryPolicy:
    """
    Bounded retry policy for general rate limits and abuse-detection signals.

    Args:
        max_rate_limit_retries: Retries allowed for general rate-limit responses
        max_abuse_retries: Retries allowed for abuse-detection responses
        default_wait_seconds: Wait used when the response carries no hint
        max_jitter_seconds: Upper bound of the random jitter added to every wait
        sleep: Callable used to wait, defaults to time.sleep
        now: Callable returning the current epoch time, defaults to time.time
        jitter: Callable returning the jitter in seconds
    """

    def __init__(
        self,
        max_rate_limit_retries: int = 1,
        max_abuse_retries: int = 1,
        default_wait_seconds: float = 60.0,
        max_jitter_seconds: float = 1.0,
        sleep: Optional[Callable[[float], Any]] = None,
        now: Optional[Callable[[], float]] = None,
        jitter: Optional[Callable[[], float]] = None,
    ):
        if max_rate_limit_retries < 0 or max_abuse_retries < 0:
            raise ValueError("Retry counts must be non-negative")

        self.max_rate_limit_retries = max_rate_limit_retries
        self.max_abuse_retries = max_abuse_retries
        self.default_wait_seconds = default_wait_seconds
        self.max_jitter_seconds = max_jitter_seconds
        self.sleep = sleep or time.sleep
        self.now = now or time.time
        self.jitter = jitter or (lambda: random.uniform(0, self.max_jitter_seconds))

    def allows_retry(self, kind: str, retries_so_far: int) -> bool:
        """Whether another retry is permitted for this kind of signal."""
        limit = self.max_abuse_retries if kind == ABUSE else self.max_rate_limit_retries
        return retries_so_far < limit

    def backoff(self, retry_after: Optional[float]) -> float:
        """Seconds to wait before the next attempt."""
        wait = self.default_wait_seconds if retry_after is None else max(retry_after, 0.0)
        return wait + self.jitter()

    def call(
        self,
        func: Callable[[], Any],
        classify: Callable[[Exception], Optional[RateLimitSignal]],
        description: str = "request",
    ) -> Any:
        """
        Invoke func, retrying on classified rate-limit failures.

        Args:
            func: Zero-argument callable performing the request
            classify: Maps an exception to a RateLimitSignal, or None when the
                      exception is not a rate-limit response
            description: Human readable label used in log messages

        Returns:
            Whatever func returns

        Raises:
            RetriesExhausted: when the retry budget for the signal kind is spent
            Exception: any unclassified exception raised by func, unchanged
        """
        retries = {RATE_LIMIT: 0, ABUSE: 0}

        while True:
            try:
                return func()
            except Exception as e:
                signal = classify(e)
                if signal is None:
                    raise

                if signal.kind == ABUSE:
                    logger.warning(f"Abuse detected for request {description}")
                else:
                    logger.warning(f"Request quota exhausted for request {description}")

                if not self.allows_retry(signal.kind, retries[signal.kind]):
                    raise RetriesExhausted(description, signal, e) from e

                retries[signal.kind] += 1
                seconds = self.backoff(signal.retry_after)
                logger.info(f"Retrying after {seconds:.1f} seconds!")
                self.sleep(seconds)
