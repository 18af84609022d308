"""
Tests for failure classification and the bounded retry policy.
"""

import pytest

from devchronicle.exceptions import (
    AuthenticationError,
    FailureKind,
    NetworkError,
    ProviderAPIError,
    ProviderTimeoutError,
    RateLimitError,
    classify_failure,
)
from devchronicle.models.day import SummarizationOutcome
from devchronicle.summarization.retry import RetryPolicy, network_delay, rate_limit_delay


class TestClassifyFailure:
    """Tests for retry classification."""

    @pytest.mark.parametrize("message", [
        "No such host is known. (api.openai.com:443)",
        "Connection refused",
        "An error occurred while sending the request.",
        "Unable to read data from the transport connection",
    ])
    def test_network_markers(self, message):
        assert classify_failure(message) is FailureKind.NETWORK

    @pytest.mark.parametrize("message", [
        "HTTP 429 from provider",
        "Rate limit reached for gpt-4o-mini",
        "Service temporarily unavailable",
        "The operation hit a Timeout",
    ])
    def test_rate_limit_markers(self, message):
        assert classify_failure(message) is FailureKind.RATE_LIMIT

    def test_network_checked_before_rate_limit(self):
        assert classify_failure("HttpClient timeout") is FailureKind.NETWORK

    def test_other_errors_are_not_retryable(self):
        assert classify_failure("Invalid model name") is FailureKind.NON_RETRYABLE
        assert classify_failure("") is FailureKind.NON_RETRYABLE

    def test_typed_errors_win_over_text(self):
        assert classify_failure("ignored", NetworkError("OpenAI", "reset")) is FailureKind.NETWORK
        assert classify_failure("ignored", RateLimitError("OpenAI")) is FailureKind.RATE_LIMIT
        assert classify_failure("ignored", ProviderTimeoutError("OpenAI", 30)) is FailureKind.RATE_LIMIT
        assert classify_failure("429", AuthenticationError("OpenAI")) is FailureKind.NON_RETRYABLE

    def test_untyped_provider_error_uses_text(self):
        error = ProviderAPIError("OpenAI", "Too Many Requests")
        assert classify_failure(error.message, error) is FailureKind.RATE_LIMIT


class TestBackoff:
    """Tests for delay schedules."""

    def test_network_delay_doubles_and_caps(self):
        assert [network_delay(a, 1000) for a in range(5)] == [5, 10, 20, 30, 30]

    def test_rate_limit_delay_has_no_cap(self):
        assert rate_limit_delay(0, 1000) == 3
        assert rate_limit_delay(5, 1000) == 96

    def test_delay_clipped_to_remaining(self):
        assert network_delay(3, 12) == 12
        assert rate_limit_delay(10, 0.4) == 1


class TestRetryPolicy:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, clock):
        policy = RetryPolicy(1, 1, clock=clock, sleep=clock.sleep)

        async def attempt():
            return SummarizationOutcome.succeeded(["- ok"])

        outcome = await policy.run(attempt)
        assert outcome.success
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_non_retryable_returns_immediately(self, clock):
        policy = RetryPolicy(1, 1, clock=clock, sleep=clock.sleep)
        calls = []

        async def attempt():
            calls.append(1)
            return SummarizationOutcome.failed("Invalid API key", FailureKind.NON_RETRYABLE)

        outcome = await policy.run(attempt)
        assert not outcome.success
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_network_retries_until_one_minute_deadline(self, clock):
        policy = RetryPolicy(network_window_minutes=1, rate_limit_window_minutes=1,
                             clock=clock, sleep=clock.sleep)
        messages = []

        async def attempt():
            return SummarizationOutcome.failed("Connection reset by peer")

        outcome = await policy.run(attempt, on_retry=messages.append)
        assert not outcome.success
        assert clock.sleeps == [5, 10, 20, 25]
        assert sum(clock.sleeps) == 60
        assert messages[0] == "Network issue detected. Retrying in 5s (up to 1 more min)..."

    @pytest.mark.asyncio
    async def test_rate_limit_recovers(self, clock):
        policy = RetryPolicy(1, 5, clock=clock, sleep=clock.sleep)
        results = [
            SummarizationOutcome.failed("429 Too Many Requests", FailureKind.RATE_LIMIT),
            SummarizationOutcome.failed("429 Too Many Requests", FailureKind.RATE_LIMIT),
            SummarizationOutcome.succeeded(["- done"]),
        ]
        messages = []

        async def attempt():
            return results.pop(0)

        outcome = await policy.run(attempt, on_retry=messages.append, provider_name="OpenAI")
        assert outcome.success
        assert clock.sleeps == [3, 6]
        assert messages[0].startswith("Rate-limited by OpenAI. Retrying in 3s")

    @pytest.mark.asyncio
    async def test_windows_are_independent(self, clock):
        policy = RetryPolicy(1, 10, clock=clock, sleep=clock.sleep)
        results = [
            SummarizationOutcome.failed("network is unreachable"),
            SummarizationOutcome.failed("rate limit"),
            SummarizationOutcome.succeeded(["- ok"]),
        ]

        async def attempt():
            return results.pop(0)

        outcome = await policy.run(attempt)
        assert outcome.success
        assert clock.sleeps == [5, 3]

    def test_windows_are_clamped(self, clock):
        policy = RetryPolicy(0, 500, clock=clock)
        assert policy.network_window_minutes == 1
        assert policy.rate_limit_window_minutes == 60


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
