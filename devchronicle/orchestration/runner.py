"""
Summarization runner: the top-level state machine exposed to the CLI.

It chooses live or batch mode, drives the chosen pipeline, and reports an
OperationStatus. One foreground operation runs at a time; batch monitors
started by the resume sweep run in the background and are stopped through
the batch cancel path.
"""

import asyncio
import logging
import time
from datetime import date
from typing import Awaitable, Callable, Coroutine, List, Optional, Set

from ..batch.manager import BatchLifecycleManager
from ..config.constants import DEFAULT_INTER_DAY_DELAY_SECONDS
from ..config.settings import SettingsService, SummarizationSettings
from ..data.base import DayRepository
from ..exceptions import DevChronicleException
from ..models.base import format_day
from ..models.batch import BatchApplyResult
from ..models.day import SummarizationOutcome
from ..models.operation import OperationState, OperationStatus
from ..summarization.engine import DaySummarizer, provider_display_name
from ..summarization.retry import RetryPolicy
from .monitor import BATCH_RECOVER_ACTION, BatchMonitor, MonitorResult, result_for_terminal_batch
from .session import SessionContext
from .state import OperationTracker, StatusObserver

logger = logging.getLogger(__name__)

NO_SESSION_MESSAGE = "No session selected."
NO_SESSION_RECOVER = "Open a session and retry."
NO_PENDING_MESSAGE = "No pending days to summarize."
NO_PENDING_RECOVER = "Mine or select a session with pending days."
DAY_NOT_FOUND_MESSAGE = "Day not found."
DAY_NOT_FOUND_RECOVER = "Select a mined day and retry."
SUMMARIZATION_RECOVER = "Fix the summarization issue and retry."
SUMMARIZATION_CANCEL_RECOVER = "Retry summarization."
SELECTED_DAY_RECOVER = "Fix the issue and retry selected day."
SELECTED_DAY_CANCEL_RECOVER = "Retry selected day summarization."
STOP_RECOVER = "Retry stop or wait for completion."
CANCELED_MESSAGE = "Summarization canceled."

DayCallback = Callable[[date], None]


class SummarizationRunner:
    """Coordinates live and batch summarization for the current session."""

    def __init__(self,
                 session_context: SessionContext,
                 settings_service: SettingsService,
                 days: DayRepository,
                 summarizer: DaySummarizer,
                 batch_manager: BatchLifecycleManager,
                 monitor: BatchMonitor,
                 inter_day_delay: float = DEFAULT_INTER_DAY_DELAY_SECONDS,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.session_context = session_context
        self.settings_service = settings_service
        self.days = days
        self.summarizer = summarizer
        self.batch_manager = batch_manager
        self.monitor = monitor
        self.inter_day_delay = inter_day_delay
        self._clock = clock
        self._sleep = sleep

        self.tracker = OperationTracker()
        self.pending_days = 0
        self.days_summarized = 0
        self._day_callbacks: List[DayCallback] = []
        self._foreground: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._stop_requested = False
        self._stop_finished = asyncio.Event()

    @property
    def status(self) -> OperationStatus:
        return self.tracker.status

    @property
    def is_busy(self) -> bool:
        return self._foreground is not None and not self._foreground.done()

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        return self.tracker.subscribe(observer)

    def on_day_summarized(self, callback: DayCallback) -> None:
        self._day_callbacks.append(callback)

    async def summarize_pending_days(self) -> OperationStatus:
        """Summarize every pending day of the current session in the configured mode."""
        return await self._run_foreground(
            self._summarize_pending_days(), SUMMARIZATION_CANCEL_RECOVER, SUMMARIZATION_RECOVER
        )

    async def summarize_selected_day(self, day: date) -> OperationStatus:
        """Summarize (or re-summarize) one day through the live path."""
        return await self._run_foreground(
            self._summarize_selected_day(day), SELECTED_DAY_CANCEL_RECOVER, SELECTED_DAY_RECOVER
        )

    async def stop(self) -> int:
        """
        Cancel the foreground operation and every active batch of the session.

        Returns:
            Number of provider batches that were canceled
        """
        self._stop_requested = True
        self._stop_finished.clear()
        try:
            task = self._foreground
            if task is not None and not task.done():
                task.cancel()
                await asyncio.wait({task})

            session_id = self.session_context.session_id
            try:
                canceled = 0
                if session_id:
                    canceled = await self.batch_manager.cancel_active_batches_for_session(session_id)
            except DevChronicleException as e:
                logger.error(f"Stop failed: {e.message}")
                self.tracker.fail(f"Stop failed: {e.user_message}", STOP_RECOVER)
                return 0

            self.tracker.cancel(f"Stopped and canceled {canceled} active batch job(s).")
            return canceled
        finally:
            self._stop_finished.set()

    async def resume_active_batches(self) -> int:
        """
        Start background monitors for every non-terminal batch.

        Returns:
            Number of monitors started
        """
        settings = await self.settings_service.load_summarization_settings()
        started = 0
        for batch in await self.batch_manager.list_non_terminal_batches():
            if await self.monitor.registry.is_monitoring(batch.id):
                continue
            task = asyncio.create_task(
                self._background_monitor(batch.id, settings.batch_poll_interval_seconds),
                name=f"batch-monitor-{batch.id}",
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            started += 1

        if started:
            logger.info(f"Resumed monitoring of {started} batch job(s)")
        return started

    async def wait_for_background(self) -> None:
        """Wait until every background monitor has finished."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel the foreground operation and background monitors."""
        tasks = list(self._background)
        if self._foreground is not None:
            tasks.append(self._foreground)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_foreground(self, operation: Coroutine, cancel_recover: str,
                              error_recover: str) -> OperationStatus:
        if self.is_busy:
            operation.close()
            logger.warning("A summarization operation is already running")
            return self.status

        self._stop_requested = False
        task = asyncio.ensure_future(operation)
        self._foreground = task
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                if not self._stop_requested:
                    self.tracker.cancel(CANCELED_MESSAGE, cancel_recover)
                raise
            if self._stop_requested:
                # stop() publishes the final status once batches are canceled
                await self._stop_finished.wait()
            else:
                self.tracker.cancel(CANCELED_MESSAGE, cancel_recover)
        except DevChronicleException as e:
            logger.error(f"Summarization failed: {e.message}")
            self.tracker.fail(e.user_message, error_recover)
        except Exception as e:
            logger.exception("Unexpected summarization failure")
            self.tracker.fail(str(e) or type(e).__name__, error_recover)
        finally:
            if self._foreground is task:
                self._foreground = None
        return self.status

    async def _summarize_pending_days(self) -> None:
        session_id = self.session_context.session_id
        if not session_id:
            self.tracker.needs_input(NO_SESSION_MESSAGE, NO_SESSION_RECOVER)
            return

        pending = await self.days.count_pending_days(session_id)
        self.pending_days = pending
        if pending == 0:
            self.tracker.needs_input(NO_PENDING_MESSAGE, NO_PENDING_RECOVER)
            return

        settings = await self.settings_service.load_summarization_settings()
        if settings.is_batch_mode:
            await self._run_batch(session_id, settings, pending)
        else:
            await self._run_live(session_id, settings)

    async def _run_live(self, session_id: str, settings: SummarizationSettings) -> None:
        pending = await self.days.list_pending_days(session_id)
        total = len(pending)

        for index, day in enumerate(pending):
            if index > 0 and self.inter_day_delay > 0:
                await self._sleep(self.inter_day_delay)

            self.tracker.progress(f"Summarizing {day.day_key}", index, total)
            outcome = await self._summarize_with_retry(session_id, day.day, settings)
            if not outcome.success:
                self.tracker.fail(
                    f"Failed to summarize {day.day_key}: {outcome.error_message}",
                    SUMMARIZATION_RECOVER,
                )
                return

            self.pending_days = max(0, self.pending_days - 1)
            self._notify_day(day.day)

        self.tracker.succeed(f"Completed: {total} days summarized.")

    async def _run_batch(self, session_id: str, settings: SummarizationSettings, total: int) -> None:
        verb = "Summarizing pending days in batch mode"
        summarized = 0
        self.tracker.progress(verb, 0, total)

        while True:
            batch = await self.batch_manager.get_active_batch_for_session(session_id)
            if batch is None:
                batch = await self.batch_manager.submit_pending_days(session_id, settings)
                if batch is None:
                    break
                self.tracker.message(f"Submitted batch {batch.provider_batch_id}. Waiting for results...")
            else:
                self.tracker.message(f"Waiting for active batch {batch.provider_batch_id}...")

            result = await self._monitor_foreground(batch.id, settings)
            if result.apply_result is not None:
                summarized += len(result.apply_result.succeeded_days)
            if not result.succeeded:
                self.tracker.finish(result.state, result.message, result.recover_action)
                return

            remaining = await self.days.count_pending_days(session_id)
            self.pending_days = remaining
            self.tracker.progress(verb, total - remaining, total)
            if remaining == 0:
                break

        self.tracker.succeed(f"Completed: {summarized} days summarized.")

    async def _summarize_selected_day(self, day: date) -> None:
        session_id = self.session_context.session_id
        if not session_id:
            self.tracker.needs_input(NO_SESSION_MESSAGE, NO_SESSION_RECOVER)
            return

        if await self.days.get_day(session_id, day) is None:
            self.tracker.needs_input(DAY_NOT_FOUND_MESSAGE, DAY_NOT_FOUND_RECOVER)
            return

        settings = await self.settings_service.load_summarization_settings()
        day_key = format_day(day)
        self.tracker.progress(f"Summarizing {day_key}")

        outcome = await self._summarize_with_retry(session_id, day, settings)
        if not outcome.success:
            self.tracker.fail(f"Failed to summarize {day_key}: {outcome.error_message}", SELECTED_DAY_RECOVER)
            return

        self.pending_days = await self.days.count_pending_days(session_id)
        self._notify_day(day)
        self.tracker.succeed(f"Summarized {day_key}: {len(outcome.bullets)} bullet(s).")

    async def _summarize_with_retry(self, session_id: str, day: date,
                                    settings: SummarizationSettings) -> SummarizationOutcome:
        policy = RetryPolicy(
            settings.network_retry_window_minutes,
            settings.rate_limit_retry_window_minutes,
            clock=self._clock,
            sleep=self._sleep,
        )
        return await policy.run(
            lambda: self.summarizer.summarize_day(session_id, day, settings),
            on_retry=self.tracker.message,
            provider_name=provider_display_name(settings.model),
        )

    async def _monitor_foreground(self, batch_id: str, settings: SummarizationSettings) -> MonitorResult:
        while True:
            result = await self.monitor.run(
                batch_id,
                settings.batch_poll_interval_seconds,
                on_status=self.tracker.message,
                on_applied=self._on_batch_applied,
            )
            if result is not None:
                return result

            # Another monitor owns the batch; take over if it stops before the batch ends
            await self._sleep(settings.batch_poll_interval_seconds)
            batch = await self.batch_manager.batches.get_batch(batch_id)
            if batch is None:
                return MonitorResult(OperationState.ERROR, "Batch disappeared while waiting.", BATCH_RECOVER_ACTION)
            if batch.is_terminal:
                return result_for_terminal_batch(batch)

    async def _background_monitor(self, batch_id: str, poll_interval_seconds: int) -> None:
        try:
            result = await self.monitor.run(batch_id, poll_interval_seconds, on_applied=self._on_batch_applied)
        except DevChronicleException as e:
            logger.error(f"Background monitor for batch {batch_id} stopped: {e.message}")
            return
        except Exception:
            logger.exception(f"Background monitor for batch {batch_id} failed unexpectedly")
            return
        if result is not None:
            logger.info(f"Background monitor for batch {batch_id}: {result.message}")

    async def _on_batch_applied(self, result: BatchApplyResult) -> None:
        for day in result.succeeded_days:
            self._notify_day(day)

    def _notify_day(self, day: date) -> None:
        self.days_summarized += 1
        for callback in list(self._day_callbacks):
            try:
                callback(day)
            except Exception:
                logger.exception(f"day_summarized callback failed for {format_day(day)}")
