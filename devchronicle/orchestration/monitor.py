"""
Batch monitoring.

The registry guarantees at most one polling loop per batch id, whether the
loop was started right after a submission or by the startup resume sweep.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Set

from ..batch.manager import BatchLifecycleManager
from ..config.constants import BATCH_POLL_INTERVAL_RANGE
from ..config.settings import clamp
from ..exceptions import DevChronicleException, FailureKind, classify_failure
from ..models.batch import BatchApplyResult, BatchStatus, SummarizationBatch
from ..models.operation import OperationState

logger = logging.getLogger(__name__)

NETWORK_PAUSE_MESSAGE = "Batch polling paused due to network issue. Retrying..."
BATCH_RECOVER_ACTION = "Fix the batch issue and retry."
PARTIAL_FAILURE_RECOVER_ACTION = "Retry pending batch."


@dataclass(frozen=True)
class MonitorResult:
    """Terminal outcome of monitoring one batch."""
    state: OperationState
    message: str
    recover_action: Optional[str] = None
    apply_result: Optional[BatchApplyResult] = None

    @property
    def succeeded(self) -> bool:
        return self.state is OperationState.SUCCESS


def partial_failure_message(succeeded: int, failed: int) -> str:
    return f"Partial Failure: {succeeded} succeeded, {failed} failed."


def result_for_terminal_batch(batch: SummarizationBatch) -> MonitorResult:
    """Describe a batch that some other monitor drove to a terminal state."""
    if batch.status is BatchStatus.COMPLETED:
        return MonitorResult(OperationState.SUCCESS, "Batch completed.")
    if batch.status is BatchStatus.PARTIAL_FAILURE:
        return MonitorResult(
            OperationState.ERROR,
            f"Batch finished with failures: {batch.last_error or 'Unknown error'}",
            PARTIAL_FAILURE_RECOVER_ACTION,
        )
    if batch.status is BatchStatus.CANCELED:
        return MonitorResult(OperationState.CANCELED, "Batch canceled.")
    return MonitorResult(
        OperationState.ERROR,
        f"Batch failed: {batch.last_error or 'Unknown error'}",
        BATCH_RECOVER_ACTION,
    )


class BatchMonitorRegistry:
    """Set of batch ids currently being polled."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._active: Set[str] = set()

    async def try_acquire(self, batch_id: str) -> bool:
        """Claim a batch id; False when another monitor already owns it."""
        async with self._lock:
            if batch_id in self._active:
                return False
            self._active.add(batch_id)
            return True

    async def release(self, batch_id: str) -> None:
        async with self._lock:
            self._active.discard(batch_id)

    async def is_monitoring(self, batch_id: str) -> bool:
        async with self._lock:
            return batch_id in self._active

    async def active_ids(self) -> Set[str]:
        async with self._lock:
            return set(self._active)

    @asynccontextmanager
    async def claim(self, batch_id: str):
        """Yield True while this caller owns the batch id, False if it is taken."""
        acquired = await self.try_acquire(batch_id)
        try:
            yield acquired
        finally:
            if acquired:
                await self.release(batch_id)


StatusCallback = Callable[[str], None]
AppliedCallback = Callable[[BatchApplyResult], Awaitable[None]]


class BatchMonitor:
    """Polls one batch until it reaches a terminal state."""

    def __init__(self,
                 manager: BatchLifecycleManager,
                 registry: BatchMonitorRegistry,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.manager = manager
        self.registry = registry
        self._sleep = sleep

    async def run(self, batch_id: str, poll_interval_seconds: int,
                  on_status: Optional[StatusCallback] = None,
                  on_applied: Optional[AppliedCallback] = None) -> Optional[MonitorResult]:
        """
        Monitor a batch unless another loop already owns it.

        Args:
            batch_id: Local batch id
            poll_interval_seconds: Delay between polls, clamped to [5, 300]
            on_status: Receives progress messages
            on_applied: Awaited after results were applied

        Returns:
            The terminal result, or None when the batch is already monitored
        """
        async with self.registry.claim(batch_id) as acquired:
            if not acquired:
                logger.info(f"Batch {batch_id} is already being monitored")
                return None
            return await self._poll_until_terminal(
                batch_id, clamp(poll_interval_seconds, BATCH_POLL_INTERVAL_RANGE), on_status, on_applied
            )

    async def _poll_until_terminal(self, batch_id: str, interval: int,
                                   on_status: Optional[StatusCallback],
                                   on_applied: Optional[AppliedCallback]) -> MonitorResult:
        while True:
            try:
                result = await self._tick(batch_id, on_status, on_applied)
            except DevChronicleException as e:
                if classify_failure(e.message, e) is not FailureKind.NETWORK:
                    raise
                logger.warning(f"Polling batch {batch_id} hit a network error: {e.message}")
                _notify(on_status, NETWORK_PAUSE_MESSAGE)
                result = None

            if result is not None:
                logger.info(f"Batch {batch_id} finished: {result.state.value} - {result.message}")
                return result
            await self._sleep(interval)

    async def _tick(self, batch_id: str,
                    on_status: Optional[StatusCallback],
                    on_applied: Optional[AppliedCallback]) -> Optional[MonitorResult]:
        batch = await self.manager.refresh_batch(batch_id)
        status = batch.status

        if status in (BatchStatus.COMPLETED, BatchStatus.APPLYING, BatchStatus.PARTIAL_FAILURE):
            applied = await self.manager.apply_batch_results(batch_id)
            if applied.results_not_ready:
                _notify(on_status, "Waiting for batch result files...")
                return None
            if applied.error_message:
                return MonitorResult(OperationState.ERROR, applied.error_message, BATCH_RECOVER_ACTION, applied)
            if on_applied is not None:
                await on_applied(applied)
            if applied.has_failures:
                return MonitorResult(
                    OperationState.ERROR,
                    partial_failure_message(applied.succeeded, applied.failed),
                    PARTIAL_FAILURE_RECOVER_ACTION,
                    applied,
                )
            return MonitorResult(
                OperationState.SUCCESS,
                f"Batch completed: {applied.succeeded} days summarized.",
                apply_result=applied,
            )

        if status is BatchStatus.CANCELED:
            return MonitorResult(OperationState.CANCELED, "Batch canceled.")

        if status is BatchStatus.FAILED:
            return MonitorResult(
                OperationState.ERROR,
                f"Batch failed: {batch.last_error or 'Unknown error'}",
                BATCH_RECOVER_ACTION,
            )

        _notify(on_status, f"Batch {status.value.lower()}; checking again shortly...")
        return None


def _notify(callback: Optional[StatusCallback], message: str) -> None:
    if callback is not None:
        callback(message)
