"""
Tests for the summarization runner state machine.
"""

import asyncio
import json
from datetime import date

import pytest

from devchronicle.batch.manager import BatchLifecycleManager
from devchronicle.config.constants import BATCH_MAX_DAYS_KEY, PENDING_MODE_KEY
from devchronicle.exceptions import AuthenticationError, NetworkError, ProviderAPIError, RateLimitError
from devchronicle.models.operation import OperationState
from devchronicle.orchestration import (
    BatchMonitor,
    BatchMonitorRegistry,
    SessionContext,
    SummarizationRunner,
)
from devchronicle.summarization import DaySummarizer, RateBudget
from devchronicle.summarization.rate_budget import RateLimits

DAYS = [date(2024, 6, 3), date(2024, 6, 4)]


def finish_submitted(batch_provider, drop_last=False):
    """Complete every unfinished provider batch with one bullet per request."""
    for batch_id, snapshot in list(batch_provider.batches.items()):
        if snapshot.status != "validating":
            continue
        requests = [json.loads(line) for line in batch_provider.files[snapshot.input_file_id].splitlines()]
        if drop_last:
            requests = requests[:-1]
        output = "\n".join(json.dumps({
            "custom_id": request["custom_id"],
            "response": {"status_code": 200, "body": {"choices": [{"message": {"content": "- done"}}]}},
        }) for request in requests)
        batch_provider.finish(batch_id, output=output)


def parking_sleep(parked):
    """A sleep that signals it was entered and never returns on its own."""
    async def sleep(seconds):
        parked.set()
        await asyncio.Event().wait()
    return sleep


@pytest.fixture
def build_runner(repos, settings_service, batch_provider, clock, scripted):
    def build(*steps, monitor_sleep=None, session_id=None, sleep=None, budget=None):
        provider, registry = scripted(*steps)
        summarizer = DaySummarizer(repos.evidence, repos.summaries, registry,
                                   budget or RateBudget(clock=clock, sleep=clock.sleep))
        manager = BatchLifecycleManager(repos.batches, repos.days, repos.summaries, summarizer,
                                        batch_provider)
        monitor = BatchMonitor(manager, BatchMonitorRegistry(), sleep=monitor_sleep or clock.sleep)
        runner = SummarizationRunner(
            session_context=SessionContext(session_id),
            settings_service=settings_service,
            days=repos.days,
            summarizer=summarizer,
            batch_manager=manager,
            monitor=monitor,
            clock=clock,
            sleep=sleep or clock.sleep,
        )
        return runner, provider
    return build


class TestNeedsInput:
    """Tests for operations that cannot start."""

    @pytest.mark.asyncio
    async def test_no_session(self, build_runner):
        runner, _ = build_runner()
        status = await runner.summarize_pending_days()
        assert status.state is OperationState.NEEDS_INPUT
        assert status.message == "No session selected."
        assert status.recover_action == "Open a session and retry."

    @pytest.mark.asyncio
    async def test_no_pending_days_changes_nothing(self, build_runner, repos, session, batch_provider):
        runner, provider = build_runner(session_id=session.id)
        status = await runner.summarize_pending_days()
        assert status.state is OperationState.NEEDS_INPUT
        assert status.message == "No pending days to summarize."
        assert status.recover_action == "Mine or select a session with pending days."
        assert provider.requests == []
        assert batch_provider.uploads == []
        assert await repos.batches.list_non_terminal_batches() == []

    @pytest.mark.asyncio
    async def test_selected_day_not_found(self, build_runner, session):
        runner, _ = build_runner(session_id=session.id)
        status = await runner.summarize_selected_day(DAYS[0])
        assert status.state is OperationState.NEEDS_INPUT
        assert status.message == "Day not found."


class TestLiveMode:
    """Tests for sequential live summarization."""

    @pytest.mark.asyncio
    async def test_summarizes_all_days(self, build_runner, settings_service, session, mined_day,
                                       reply, clock):
        await settings_service.set(PENDING_MODE_KEY, "Live")
        for day in DAYS:
            await mined_day(session.id, day)
        runner, provider = build_runner(reply("- first"), reply("- second"), session_id=session.id)
        statuses = []
        runner.subscribe(statuses.append)
        notified = []
        runner.on_day_summarized(notified.append)

        status = await runner.summarize_pending_days()

        assert status.state is OperationState.SUCCESS
        assert status.message == "Completed: 2 days summarized."
        assert notified == DAYS
        assert runner.days_summarized == 2
        assert runner.pending_days == 0
        assert clock.sleeps == [2.0]
        assert statuses[0].message == "Summarizing 2024-06-03 (0/2)"
        assert len(provider.requests) == 2

    @pytest.mark.asyncio
    async def test_failed_day_stops_run(self, build_runner, settings_service, session, mined_day):
        await settings_service.set(PENDING_MODE_KEY, "Live")
        for day in DAYS:
            await mined_day(session.id, day)
        runner, provider = build_runner(AuthenticationError("OpenAI", "bad key"), session_id=session.id)

        status = await runner.summarize_pending_days()

        assert status.state is OperationState.ERROR
        assert status.message.startswith("Failed to summarize 2024-06-03:")
        assert status.recover_action == "Fix the summarization issue and retry."
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_network_failure_is_retried(self, build_runner, settings_service, session, mined_day,
                                              reply, clock):
        await settings_service.set(PENDING_MODE_KEY, "Live")
        await mined_day(session.id, DAYS[0])
        runner, _ = build_runner(NetworkError("OpenAI", "connection reset"), reply("- ok"),
                                 session_id=session.id)
        messages = []
        runner.subscribe(lambda status: messages.append(status.message))

        status = await runner.summarize_pending_days()

        assert status.state is OperationState.SUCCESS
        assert clock.sleeps == [5.0]
        assert any(m.startswith("Network issue detected. Retrying in 5s") for m in messages)

    @pytest.mark.asyncio
    async def test_rate_limit_message_names_provider(self, build_runner, settings_service, session,
                                                     mined_day, reply, clock):
        await settings_service.set(PENDING_MODE_KEY, "Live")
        await mined_day(session.id, DAYS[0])
        runner, _ = build_runner(RateLimitError("OpenAI"), reply("- ok"), session_id=session.id)
        messages = []
        runner.subscribe(lambda status: messages.append(status.message))

        status = await runner.summarize_pending_days()

        assert status.state is OperationState.SUCCESS
        assert clock.sleeps == [3.0]
        assert any(m.startswith("Rate-limited by OpenAI. Retrying in 3s") for m in messages)

    @pytest.mark.asyncio
    async def test_selected_day(self, build_runner, session, mined_day, reply):
        await mined_day(session.id, DAYS[1])
        runner, _ = build_runner(reply("- a\n- b"), session_id=session.id)
        notified = []
        runner.on_day_summarized(notified.append)

        status = await runner.summarize_selected_day(DAYS[1])

        assert status.state is OperationState.SUCCESS
        assert status.message == "Summarized 2024-06-04: 2 bullet(s)."
        assert notified == [DAYS[1]]

    @pytest.mark.asyncio
    async def test_selected_day_failure(self, build_runner, session, mined_day):
        await mined_day(session.id, DAYS[1])
        runner, _ = build_runner(AuthenticationError("OpenAI"), session_id=session.id)

        status = await runner.summarize_selected_day(DAYS[1])

        assert status.state is OperationState.ERROR
        assert status.recover_action == "Fix the issue and retry selected day."


class TestLiveCancellation:
    """Tests for stopping a live run while it is suspended."""

    @pytest.mark.asyncio
    async def test_stop_during_retry_backoff(self, build_runner, settings_service, session, mined_day,
                                             reply, repos):
        await settings_service.set(PENDING_MODE_KEY, "Live")
        await mined_day(session.id, DAYS[0])
        backing_off = asyncio.Event()
        runner, provider = build_runner(NetworkError("OpenAI", "connection reset"), reply("- ok"),
                                        session_id=session.id, sleep=parking_sleep(backing_off))
        task = asyncio.create_task(runner.summarize_pending_days())
        await asyncio.wait_for(backing_off.wait(), 5)

        assert await runner.stop() == 0
        final = await task

        assert final.state is OperationState.CANCELED
        assert final.message == "Stopped and canceled 0 active batch job(s)."
        assert len(provider.requests) == 1
        assert await repos.days.count_pending_days(session.id) == 1

    @pytest.mark.asyncio
    async def test_stop_during_rate_budget_wait(self, build_runner, settings_service, session, mined_day,
                                                reply, repos, clock):
        await settings_service.set(PENDING_MODE_KEY, "Live")
        await mined_day(session.id, DAYS[0])
        waiting = asyncio.Event()
        budget = RateBudget({("openai", "gpt-4o-mini"): RateLimits(1, 100_000, 100_000)},
                            clock=clock, sleep=parking_sleep(waiting))
        assert budget.try_reserve("openai", "gpt-4o-mini", 1, 1) is None
        runner, provider = build_runner(reply("- ok"), session_id=session.id, budget=budget)
        task = asyncio.create_task(runner.summarize_pending_days())
        await asyncio.wait_for(waiting.wait(), 5)

        await runner.stop()
        final = await task

        assert final.state is OperationState.CANCELED
        assert provider.requests == []
        assert await repos.days.count_pending_days(session.id) == 1


class TestBatchMode:
    """Tests for batch-mode summarization."""

    @pytest.mark.asyncio
    async def test_batch_round_trip(self, build_runner, session, mined_day, batch_provider, repos):
        for day in DAYS:
            await mined_day(session.id, day)

        async def monitor_sleep(seconds):
            finish_submitted(batch_provider)

        runner, provider = build_runner(monitor_sleep=monitor_sleep, session_id=session.id)
        notified = []
        runner.on_day_summarized(notified.append)

        status = await runner.summarize_pending_days()

        assert status.state is OperationState.SUCCESS
        assert status.message == "Completed: 2 days summarized."
        assert notified == DAYS
        assert provider.requests == []
        assert await repos.days.count_pending_days(session.id) == 0

    @pytest.mark.asyncio
    async def test_batch_chunks_until_done(self, build_runner, settings_service, session, mined_day,
                                           batch_provider):
        await settings_service.set(BATCH_MAX_DAYS_KEY, 1)
        for day in DAYS:
            await mined_day(session.id, day)

        async def monitor_sleep(seconds):
            finish_submitted(batch_provider)

        runner, _ = build_runner(monitor_sleep=monitor_sleep, session_id=session.id)
        status = await runner.summarize_pending_days()

        assert status.state is OperationState.SUCCESS
        assert len(batch_provider.uploads) == 2
        assert status.message == "Completed: 2 days summarized."

    @pytest.mark.asyncio
    async def test_batch_partial_failure(self, build_runner, session, mined_day, batch_provider):
        for day in DAYS:
            await mined_day(session.id, day)

        async def monitor_sleep(seconds):
            finish_submitted(batch_provider, drop_last=True)

        runner, _ = build_runner(monitor_sleep=monitor_sleep, session_id=session.id)
        status = await runner.summarize_pending_days()

        assert status.state is OperationState.ERROR
        assert status.message == "Partial Failure: 1 succeeded, 1 failed."
        assert status.recover_action == "Retry pending batch."
        assert runner.days_summarized == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_foreground_and_batches(self, build_runner, session, mined_day,
                                                       batch_provider, repos):
        for day in DAYS:
            await mined_day(session.id, day)

        async def monitor_sleep(seconds):
            await asyncio.Event().wait()

        runner, _ = build_runner(monitor_sleep=monitor_sleep, session_id=session.id)
        task = asyncio.create_task(runner.summarize_pending_days())
        for _ in range(200):
            if await repos.batches.list_active_batches(session.id):
                break
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.05)

        canceled = await runner.stop()
        final = await task

        assert canceled == 1
        assert final.state is OperationState.CANCELED
        assert final.message == "Stopped and canceled 1 active batch job(s)."
        assert await repos.batches.list_active_batches(session.id) == []

    @pytest.mark.asyncio
    async def test_foreground_takes_over_when_background_monitor_dies(self, build_runner, session,
                                                                      mined_day, batch_provider, repos,
                                                                      settings_service):
        for day in DAYS:
            await mined_day(session.id, day)
        parked = asyncio.Event()
        release = asyncio.Event()

        async def monitor_sleep(seconds):
            parked.set()
            await release.wait()
            finish_submitted(batch_provider)

        runner, _ = build_runner(monitor_sleep=monitor_sleep, session_id=session.id)
        settings = await settings_service.load_summarization_settings()
        await runner.batch_manager.submit_pending_days(session.id, settings)
        assert await runner.resume_active_batches() == 1
        await asyncio.wait_for(parked.wait(), 5)

        foreground = asyncio.create_task(runner.summarize_pending_days())
        for _ in range(200):
            if runner.status.message.startswith("Waiting for active batch"):
                break
            await asyncio.sleep(0.01)
        assert runner.status.message.startswith("Waiting for active batch")

        batch_provider.get_errors.append(ProviderAPIError("OpenAI", "boom", status_code=500))
        release.set()
        status = await asyncio.wait_for(foreground, 5)

        assert status.state is OperationState.SUCCESS
        assert status.message == "Completed: 2 days summarized."
        assert await repos.days.count_pending_days(session.id) == 0
        assert await runner.monitor.registry.active_ids() == set()

    @pytest.mark.asyncio
    async def test_resume_monitors_existing_batches(self, build_runner, session, mined_day,
                                                    batch_provider, repos, settings_service):
        for day in DAYS:
            await mined_day(session.id, day)

        async def monitor_sleep(seconds):
            finish_submitted(batch_provider)

        runner, _ = build_runner(monitor_sleep=monitor_sleep, session_id=session.id)
        settings = await settings_service.load_summarization_settings()
        await runner.batch_manager.submit_pending_days(session.id, settings)
        notified = []
        runner.on_day_summarized(notified.append)

        assert await runner.resume_active_batches() == 1
        await runner.wait_for_background()

        assert notified == DAYS
        assert await repos.batches.list_non_terminal_batches() == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
