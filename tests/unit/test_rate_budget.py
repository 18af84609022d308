"""
Tests for the sliding-window rate budget.
"""

import pytest

from devchronicle.summarization.rate_budget import (
    EXPIRY_JITTER_SECONDS,
    RateBudget,
    RateLimits,
    default_limits,
    estimate_tokens,
)

PAIR = ("openai", "gpt-4o-mini")


def make_budget(clock, limits=RateLimits(10, 1000, 500)):
    return RateBudget({PAIR: limits}, clock=clock, sleep=clock.sleep)


class TestRateLimits:
    """Tests for limit resolution."""

    def test_safe_limits_scale_down(self):
        safe = RateLimits(10, 1000, 500).safe()
        assert safe == RateLimits(8, 800, 400)

    def test_safe_limit_never_below_one(self):
        assert RateLimits(1, 1, 1).safe() == RateLimits(1, 1, 1)

    def test_default_limits_by_provider(self):
        assert default_limits("anthropic", "claude-3-5-haiku-latest").requests_per_minute == 50
        assert default_limits("openai", "gpt-4o").requests_per_minute == 30

    def test_override_is_case_insensitive(self, clock):
        budget = RateBudget({("OpenAI", "GPT-4o-Mini"): RateLimits(5, 50, 50)}, clock=clock)
        assert budget.resolve_limits("openai", "gpt-4o-mini") == RateLimits(5, 50, 50)

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abc") == 1
        assert estimate_tokens("a" * 400) == 100


class TestCallBudget:
    """Tests for per-call sizing."""

    def test_plan_splits_safe_budget(self, clock):
        budget = make_budget(clock)
        plan = budget.plan_call_budget(*PAIR, requested_max_output_tokens=10_000)
        assert plan.max_input_tokens == 800 // 3
        assert plan.max_output_tokens == 400 // 3

    def test_plan_respects_smaller_request(self, clock):
        budget = make_budget(clock)
        plan = budget.plan_call_budget(*PAIR, requested_max_output_tokens=50)
        assert plan.max_output_tokens == 50


class TestReservations:
    """Tests for admission against the window."""

    def test_grants_until_request_limit(self, clock):
        budget = make_budget(clock)
        for _ in range(8):
            assert budget.try_reserve(*PAIR, 10, 10) is None
        delay = budget.try_reserve(*PAIR, 10, 10)
        assert delay == pytest.approx(60 + EXPIRY_JITTER_SECONDS)

    def test_usage_never_exceeds_safe_limits(self, clock):
        budget = make_budget(clock)
        for _ in range(20):
            budget.try_reserve(*PAIR, 300, 100)
            clock.now += 1
            requests, input_tokens, output_tokens = budget.usage(*PAIR)
            assert requests <= 8
            assert input_tokens <= 800
            assert output_tokens <= 400

    def test_delay_counts_from_earliest_reservation(self, clock):
        budget = make_budget(clock)
        assert budget.try_reserve(*PAIR, 800, 10) is None
        clock.now += 20
        delay = budget.try_reserve(*PAIR, 1, 10)
        assert delay == pytest.approx(40 + EXPIRY_JITTER_SECONDS)

    def test_oversized_call_is_clamped_and_admitted(self, clock):
        budget = make_budget(clock)
        assert budget.try_reserve(*PAIR, 50_000, 50_000) is None
        assert budget.usage(*PAIR) == (1, 800, 400)

    def test_reservations_expire_after_window(self, clock):
        budget = make_budget(clock)
        budget.try_reserve(*PAIR, 800, 400)
        clock.now += 59
        assert budget.usage(*PAIR)[0] == 1
        clock.now += 1
        assert budget.usage(*PAIR) == (0, 0, 0)

    def test_pairs_are_independent(self, clock):
        budget = RateBudget({PAIR: RateLimits(1, 100, 100)}, clock=clock)
        assert budget.try_reserve(*PAIR, 1, 1) is None
        assert budget.try_reserve(*PAIR, 1, 1) is not None
        assert budget.try_reserve("anthropic", "claude-3-5-haiku-latest", 1, 1) is None

    @pytest.mark.asyncio
    async def test_acquire_waits_for_window(self, clock):
        budget = make_budget(clock, RateLimits(2, 1000, 1000))
        await budget.acquire(*PAIR, 10, 10)
        await budget.acquire(*PAIR, 10, 10)
        assert clock.sleeps == [pytest.approx(60 + EXPIRY_JITTER_SECONDS)]
        assert budget.usage(*PAIR)[0] == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
