"""
Bounded-deadline retry around a day's summarization attempt.

Network and rate-limit failures each get their own deadline, fixed when the
day's first attempt starts. Anything else is returned immediately.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..config.constants import (
    DEFAULT_NETWORK_RETRY_WINDOW_MINUTES,
    DEFAULT_RATE_LIMIT_RETRY_WINDOW_MINUTES,
    RETRY_WINDOW_RANGE,
)
from ..config.settings import clamp
from ..exceptions import FailureKind, classify_failure
from ..models.day import SummarizationOutcome

logger = logging.getLogger(__name__)

NETWORK_BASE_DELAY = 5.0
NETWORK_MAX_EXPONENT = 4
NETWORK_MAX_DELAY = 30.0
RATE_LIMIT_BASE_DELAY = 3.0
RATE_LIMIT_MAX_EXPONENT = 20
MIN_DELAY = 1.0


def network_delay(attempt: int, remaining: float) -> float:
    """Exponential network backoff capped at 30s and clipped to the deadline."""
    delay = min(NETWORK_BASE_DELAY * 2 ** min(attempt, NETWORK_MAX_EXPONENT), NETWORK_MAX_DELAY)
    return _clip(delay, remaining)


def rate_limit_delay(attempt: int, remaining: float) -> float:
    """Exponential rate-limit backoff clipped only by the deadline."""
    delay = RATE_LIMIT_BASE_DELAY * 2 ** min(attempt, RATE_LIMIT_MAX_EXPONENT)
    return _clip(delay, remaining)


def _clip(delay: float, remaining: float) -> float:
    if delay > remaining:
        return max(MIN_DELAY, remaining)
    return delay


@dataclass
class RetryDeadlines:
    """Absolute deadlines for one day's attempt, in clock seconds."""
    network: float
    rate_limit: float


class RetryPolicy:
    """Retries network and rate-limit failures until their deadlines pass."""

    def __init__(self,
                 network_window_minutes: int = DEFAULT_NETWORK_RETRY_WINDOW_MINUTES,
                 rate_limit_window_minutes: int = DEFAULT_RATE_LIMIT_RETRY_WINDOW_MINUTES,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.network_window_minutes = clamp(network_window_minutes, RETRY_WINDOW_RANGE)
        self.rate_limit_window_minutes = clamp(rate_limit_window_minutes, RETRY_WINDOW_RANGE)
        self._clock = clock
        self._sleep = sleep

    def start(self) -> RetryDeadlines:
        now = self._clock()
        return RetryDeadlines(
            network=now + self.network_window_minutes * 60,
            rate_limit=now + self.rate_limit_window_minutes * 60,
        )

    async def run(self,
                  attempt: Callable[[], Awaitable[SummarizationOutcome]],
                  on_retry: Optional[Callable[[str], None]] = None,
                  provider_name: str = "provider") -> SummarizationOutcome:
        """
        Run attempt until it succeeds, fails non-retryably, or its deadline passes.

        Args:
            attempt: Coroutine factory performing one full day attempt
            on_retry: Receives a status message before each backoff
            provider_name: Name shown in rate-limit status messages

        Returns:
            The first successful or non-retryable outcome, or the last failure
            once the matching deadline is exhausted
        """
        deadlines = self.start()
        network_attempts = 0
        rate_limit_attempts = 0

        while True:
            outcome = await attempt()
            if outcome.success:
                return outcome

            kind = outcome.failure_kind or classify_failure(outcome.error_message)
            if kind is FailureKind.NON_RETRYABLE:
                return outcome

            now = self._clock()
            if kind is FailureKind.NETWORK:
                remaining = deadlines.network - now
                if remaining <= 0:
                    logger.error(f"Network retry window exhausted: {outcome.error_message}")
                    return outcome
                delay = network_delay(network_attempts, remaining)
                network_attempts += 1
                message = (
                    f"Network issue detected. Retrying in {math.ceil(delay)}s "
                    f"(up to {math.ceil(remaining / 60)} more min)..."
                )
            else:
                remaining = deadlines.rate_limit - now
                if remaining <= 0:
                    logger.error(f"Rate-limit retry window exhausted: {outcome.error_message}")
                    return outcome
                delay = rate_limit_delay(rate_limit_attempts, remaining)
                rate_limit_attempts += 1
                message = (
                    f"Rate-limited by {provider_name}. Retrying in {math.ceil(delay)}s "
                    f"(up to {math.ceil(remaining / 60)} more min)..."
                )

            logger.warning(f"{message} Last error: {outcome.error_message}")
            if on_retry is not None:
                on_retry(message)
            await self._sleep(delay)
