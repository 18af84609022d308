"""
Sliding one-minute rate budget shared by every live completion call.

Callers reserve request, input-token and output-token capacity before each
call. A reservation counts against its (provider, model) window for 60
seconds. Every limit is scaled by a safety factor so the provider's own
limiter should never trip.
"""

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
SAFETY_FACTOR = 0.8
IDLE_POLL_SECONDS = 0.3
EXPIRY_JITTER_SECONDS = 0.05
DEFAULT_SPLIT_FACTOR = 3
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class RateLimits:
    """Per-minute limits for one provider/model pair."""
    requests_per_minute: int
    input_tokens_per_minute: int
    output_tokens_per_minute: int

    def safe(self) -> "RateLimits":
        """The same limits scaled by the safety factor, never below one."""
        return RateLimits(
            requests_per_minute=_safe_limit(self.requests_per_minute),
            input_tokens_per_minute=_safe_limit(self.input_tokens_per_minute),
            output_tokens_per_minute=_safe_limit(self.output_tokens_per_minute),
        )


@dataclass(frozen=True)
class RateBudgetReservation:
    """A time-stamped claim against the per-minute budget."""
    timestamp: float
    provider_id: str
    model: str
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class CallBudget:
    """Token sizes one call may safely use."""
    max_input_tokens: int
    max_output_tokens: int


def _safe_limit(limit: int) -> int:
    return max(1, int(math.floor(limit * SAFETY_FACTOR)))


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token estimate at four characters per token."""
    if not text:
        return 0
    return max(1, len(text) // CHARS_PER_TOKEN)


def default_limits(provider_id: str, model: str) -> RateLimits:
    """Conservative default limits for a provider and model."""
    provider = (provider_id or "").lower()
    name = (model or "").lower()

    if provider == "anthropic":
        if "haiku" in name:
            return RateLimits(50, 50_000, 10_000)
        if "sonnet" in name or "opus" in name:
            return RateLimits(50, 30_000, 8_000)
        return RateLimits(40, 20_000, 6_000)

    return RateLimits(30, 20_000, 6_000)


class RateBudget:
    """Admission controller over a sliding one-minute window."""

    def __init__(self,
                 limits_overrides: Optional[Dict[Tuple[str, str], RateLimits]] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._overrides = {
            (provider.lower(), model.lower()): limits
            for (provider, model), limits in (limits_overrides or {}).items()
        }
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._reservations: List[RateBudgetReservation] = []

    def resolve_limits(self, provider_id: str, model: str) -> RateLimits:
        key = ((provider_id or "").lower(), (model or "").lower())
        return self._overrides.get(key) or default_limits(provider_id, model)

    def plan_call_budget(self, provider_id: str, model: str, requested_max_output_tokens: int,
                         split_factor: int = DEFAULT_SPLIT_FACTOR) -> CallBudget:
        """
        Size one call so a single caller cannot take the whole window.

        Args:
            provider_id: Provider identifier
            model: Model name
            requested_max_output_tokens: Output tokens the caller would like
            split_factor: Share of the per-minute budget one call may use

        Returns:
            Safe maximum input and output tokens for one call
        """
        split = max(1, split_factor)
        safe = self.resolve_limits(provider_id, model).safe()
        max_input = max(1, safe.input_tokens_per_minute // split)
        max_output = max(1, safe.output_tokens_per_minute // split)
        if requested_max_output_tokens > 0:
            max_output = min(max_output, requested_max_output_tokens)
        return CallBudget(max_input_tokens=max_input, max_output_tokens=max_output)

    def try_reserve(self, provider_id: str, model: str,
                    estimated_input_tokens: int, reserved_output_tokens: int) -> Optional[float]:
        """
        Attempt one admission without waiting.

        Returns:
            None when the reservation was granted, otherwise seconds to wait
            before trying again
        """
        safe = self.resolve_limits(provider_id, model).safe()
        # A single oversized call is clamped so it can still be admitted
        input_tokens = min(max(0, estimated_input_tokens), safe.input_tokens_per_minute)
        output_tokens = min(max(0, reserved_output_tokens), safe.output_tokens_per_minute)
        provider_key = (provider_id or "").lower()
        model_key = (model or "").lower()

        with self._lock:
            now = self._clock()
            self._prune(now)
            active = [
                r for r in self._reservations
                if r.provider_id == provider_key and r.model == model_key
            ]
            used_requests = len(active)
            used_input = sum(r.input_tokens for r in active)
            used_output = sum(r.output_tokens for r in active)

            if (used_requests + 1 <= safe.requests_per_minute
                    and used_input + input_tokens <= safe.input_tokens_per_minute
                    and used_output + output_tokens <= safe.output_tokens_per_minute):
                self._reservations.append(RateBudgetReservation(
                    timestamp=now,
                    provider_id=provider_key,
                    model=model_key,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                ))
                return None

            if not active:
                return IDLE_POLL_SECONDS
            earliest = min(r.timestamp for r in active)
            wait = earliest + WINDOW_SECONDS - now
            if wait <= 0:
                return IDLE_POLL_SECONDS
            return wait + EXPIRY_JITTER_SECONDS

    async def acquire(self, provider_id: str, model: str,
                      estimated_input_tokens: int, reserved_output_tokens: int) -> None:
        """Wait until the window has room for this call, then reserve it."""
        waited = 0.0
        while True:
            delay = self.try_reserve(provider_id, model, estimated_input_tokens, reserved_output_tokens)
            if delay is None:
                if waited > 0:
                    logger.info(f"Rate budget granted for {provider_id}/{model} after {waited:.1f}s")
                return
            if waited == 0:
                logger.info(f"Rate budget full for {provider_id}/{model}; waiting {delay:.2f}s")
            waited += delay
            await self._sleep(delay)

    def usage(self, provider_id: str, model: str) -> Tuple[int, int, int]:
        """Active (requests, input tokens, output tokens) for a pair."""
        provider_key = (provider_id or "").lower()
        model_key = (model or "").lower()
        with self._lock:
            self._prune(self._clock())
            active = [
                r for r in self._reservations
                if r.provider_id == provider_key and r.model == model_key
            ]
            return (
                len(active),
                sum(r.input_tokens for r in active),
                sum(r.output_tokens for r in active),
            )

    def _prune(self, now: float) -> None:
        self._reservations = [
            r for r in self._reservations if now - r.timestamp < WINDOW_SECONDS
        ]
