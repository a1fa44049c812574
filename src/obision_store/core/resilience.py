"""
Retry and circuit-breaker helpers for the Flathub API client.

A search typed into the store fires one request per keystroke pause, so a
flaky or rate-limiting catalog must degrade quickly: a few jittered retries,
then the endpoint is skipped for a while and searches return empty.
"""

import logging
import random
import time
from collections import defaultdict
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Backoff:
    """Exponential retry delays with ±25% jitter."""

    def __init__(
        self,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        max_retries: int = 2,
        rand: Callable[[], float] = random.random,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_retries = max_retries
        self._rand = rand

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_retries

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        jitter = delay * 0.25 * (self._rand() * 2 - 1)
        return max(0.0, delay + jitter)

    def retry_after(self, header: str | None, attempt: int) -> float:
        """Honor a Retry-After header (seconds), capped at ``max_delay``."""
        try:
            return min(float(header), self.max_delay) if header else self.delay(attempt)
        except ValueError:
            return self.delay(attempt)


class CircuitBreaker:
    """
    Per-endpoint circuit breaker.

    After ``failure_threshold`` consecutive failures an endpoint is refused
    until ``reset_timeout`` seconds have passed; the next request after that
    is let through as a probe.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self.failures: dict[str, int] = defaultdict(int)
        self.opened_at: dict[str, float] = {}

    def allow(self, endpoint: str) -> bool:
        """Whether a request to ``endpoint`` may be attempted now."""
        opened = self.opened_at.get(endpoint)
        if opened is None:
            return True

        if self._clock() - opened >= self.reset_timeout:
            del self.opened_at[endpoint]
            self.failures[endpoint] = 0
            logger.info(f"Circuit half-open for {endpoint}, probing")
            return True
        return False

    def record_failure(self, endpoint: str) -> None:
        self.failures[endpoint] += 1
        if self.failures[endpoint] >= self.failure_threshold and endpoint not in self.opened_at:
            self.opened_at[endpoint] = self._clock()
            logger.warning(f"Circuit open for {endpoint} ({self.failures[endpoint]} failures)")

    def record_success(self, endpoint: str) -> None:
        self.failures[endpoint] = 0
        if self.opened_at.pop(endpoint, None) is not None:
            logger.info(f"Circuit closed for {endpoint}")
