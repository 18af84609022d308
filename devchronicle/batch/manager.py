"""
Batch lifecycle: submit pending days as one provider batch, refresh its
status, apply its results to day summaries, and cancel it.

Applying is idempotent. A day summary is always written before its batch
item is marked Succeeded, and items never leave Succeeded or Failed once
they get there, so re-running apply after a crash is safe.
"""

import logging
from typing import List, Optional

from ..config.settings import SummarizationSettings
from ..data.base import BatchRepository, DayRepository, DaySummaryRepository
from ..exceptions import (
    BatchError,
    BatchNotFoundError,
    ConfigurationError,
    DevChronicleException,
    EvidenceError,
    create_error_context,
)
from ..models.batch import (
    BatchApplyResult,
    BatchItemStatus,
    BatchStatus,
    NO_ITEMS_MESSAGE,
    RESULTS_NOT_READY_MESSAGE,
    SummarizationBatch,
    SummarizationBatchItem,
    build_custom_id,
    new_run_id,
)
from ..models.day import DaySummary
from ..summarization.bullets import validate_bullets
from ..summarization.engine import DaySummarizer, provider_id_for_model
from .client import BatchProvider, BatchRequestLine, BatchSnapshot, CancelResult
from .results import BatchResults, parse_error_jsonl, parse_output_jsonl

logger = logging.getLogger(__name__)

MISSING_OUTPUT_ERROR = "Missing output for custom_id."
NO_VALID_BULLETS_ERROR = "No valid bullet output."
ITEMS_FAILED_ERROR = "One or more batch items failed."
CANCELED_BY_USER = "Canceled by user."
TERMINAL_BEFORE_CANCEL = "Batch became terminal before cancel completed."


class BatchLifecycleManager:
    """Owns SummarizationBatch rows from submission to a terminal state."""

    def __init__(self,
                 batches: BatchRepository,
                 days: DayRepository,
                 summaries: DaySummaryRepository,
                 summarizer: DaySummarizer,
                 provider: BatchProvider):
        self.batches = batches
        self.days = days
        self.summaries = summaries
        self.summarizer = summarizer
        self.provider = provider

    async def submit_pending_days(self, session_id: str,
                                  settings: SummarizationSettings) -> Optional[SummarizationBatch]:
        """
        Submit the next chunk of pending days as one provider batch.

        Args:
            session_id: Session whose pending days are submitted
            settings: Resolved settings (model, chunk size, bullet budget)

        Returns:
            The persisted batch, or None when no days are pending

        Raises:
            ConfigurationError: If the model is not served by the batch provider
            EvidenceError: If none of the pending days has evidence
        """
        if provider_id_for_model(settings.model) != self.provider.provider_id:
            raise ConfigurationError(
                f"Model '{settings.model}' is not available through the {self.provider.provider_id} batch API",
                config_key="summarization.model",
                user_message="Switch pending mode to Live or choose a batch-capable model.",
            )

        pending = await self.days.list_pending_days(session_id, limit=settings.batch_max_days)
        if not pending:
            return None

        run_id = new_run_id()
        lines: List[str] = []
        items: List[SummarizationBatchItem] = []

        for day in pending:
            try:
                payload = await self.summarizer.build_payload(session_id, day.day, settings)
            except EvidenceError as e:
                logger.warning(f"Skipping {day.day_key} in batch submission: {e.message}")
                continue

            custom_id = build_custom_id(session_id, day.day, run_id)
            lines.append(BatchRequestLine.for_prompt(
                custom_id=custom_id,
                model=payload.model,
                master_prompt=payload.master_prompt,
                prompt=payload.prompt,
                max_completion_tokens=payload.max_completion_tokens,
            ).model_dump_json())
            items.append(SummarizationBatchItem(
                batch_id="",
                session_id=session_id,
                day=day.day,
                custom_id=custom_id,
                model=payload.model,
                prompt_version=payload.prompt_version,
                input_hash=payload.input_hash,
                max_bullets=payload.max_bullets,
            ))

        if not items:
            raise EvidenceError(
                "None of the pending days has commit evidence to summarize",
                context=create_error_context(session_id=session_id, operation="batch_submit"),
            )

        input_file_id = await self.provider.upload_batch_input_file("\n".join(lines) + "\n")
        snapshot = await self.provider.create_batch(input_file_id)

        batch = SummarizationBatch(
            session_id=session_id,
            provider_batch_id=snapshot.id,
            status=BatchStatus.from_provider(snapshot.status),
            input_file_id=snapshot.input_file_id or input_file_id,
        )
        for item in items:
            item.batch_id = batch.id

        await self.batches.create_batch(batch, items)
        logger.info(
            f"Submitted batch {batch.id} (provider {batch.provider_batch_id}) "
            f"with {len(items)} day(s) for session {session_id}"
        )
        return batch

    async def refresh_batch(self, batch_id: str, force: bool = False) -> SummarizationBatch:
        """
        Pull the provider's view of a batch into the local row.

        Args:
            batch_id: Local batch id
            force: Refresh even when the local batch is already terminal

        Returns:
            The updated batch
        """
        batch = await self._require_batch(batch_id)
        if batch.is_terminal and not force:
            return batch

        snapshot = await self.provider.get_batch(batch.provider_batch_id)
        self._apply_snapshot(batch, snapshot)
        await self.batches.update_batch(batch)
        return batch

    async def apply_batch_results(self, batch_id: str) -> BatchApplyResult:
        """
        Apply downloaded results to the items of a batch.

        Returns:
            Success and failure counts. ``results_not_ready`` is set when the
            provider has not produced result files yet.
        """
        items = await self.batches.get_items(batch_id)
        if not items:
            return BatchApplyResult(succeeded=0, failed=0, error_message=NO_ITEMS_MESSAGE)

        batch = await self.refresh_batch(batch_id, force=True)
        if not batch.has_result_files:
            return BatchApplyResult(succeeded=0, failed=0, error_message=RESULTS_NOT_READY_MESSAGE)

        results = await self._download_results(batch)
        if results.is_empty:
            return BatchApplyResult(succeeded=0, failed=0, error_message=RESULTS_NOT_READY_MESSAGE)

        succeeded = 0
        failed = 0
        succeeded_days = []

        for item in items:
            if item.status is BatchItemStatus.SUCCEEDED:
                succeeded += 1
                continue
            if item.status is BatchItemStatus.FAILED:
                failed += 1
                continue

            output = results.output_for(item.custom_id)
            if output is None:
                await self._fail_item(item, results.error_for(item.custom_id) or MISSING_OUTPUT_ERROR)
                failed += 1
                continue

            bullets = validate_bullets(output, item.max_bullets)
            if not bullets:
                await self._fail_item(item, NO_VALID_BULLETS_ERROR)
                failed += 1
                continue

            await self.summaries.store_day_summary(DaySummary(
                session_id=item.session_id,
                day=item.day,
                bullets=bullets,
                model=item.model,
                prompt_version=item.prompt_version,
                input_hash=item.input_hash,
            ))
            item.status = BatchItemStatus.SUCCEEDED
            item.error = None
            await self.batches.update_item(item)
            succeeded += 1
            succeeded_days.append(item.day)

        if batch.status not in (BatchStatus.CANCELED, BatchStatus.FAILED):
            batch.status = BatchStatus.PARTIAL_FAILURE if failed else BatchStatus.COMPLETED
        if failed and not batch.last_error:
            batch.last_error = ITEMS_FAILED_ERROR
        await self.batches.update_batch(batch)

        logger.info(f"Applied batch {batch.id}: {succeeded} succeeded, {failed} failed")
        return BatchApplyResult(
            succeeded=succeeded,
            failed=failed,
            succeeded_days=tuple(succeeded_days),
        )

    async def cancel_batch(self, batch_id: str) -> bool:
        """
        Cancel a batch at the provider and fail its pending items.

        Returns:
            True when this call canceled the batch; False when the batch was
            missing, already terminal, or finished at the provider first
        """
        batch = await self.batches.get_batch(batch_id)
        if batch is None or batch.is_terminal:
            return False

        result = await self.provider.cancel_batch(batch.provider_batch_id)

        if result is CancelResult.ALREADY_TERMINAL:
            logger.info(f"Batch {batch_id} finished before it could be canceled")
            try:
                await self.refresh_batch(batch_id, force=True)
            except DevChronicleException as e:
                logger.warning(f"Could not refresh batch {batch_id} after cancel race: {e.message}")
            await self._fail_pending_items(batch_id, TERMINAL_BEFORE_CANCEL)
            await self._try_apply(batch_id)
            return False

        batch.status = BatchStatus.CANCELED
        batch.last_error = CANCELED_BY_USER
        await self.batches.update_batch(batch)
        await self._fail_pending_items(batch_id, CANCELED_BY_USER)
        await self._try_apply(batch_id)
        logger.info(f"Canceled batch {batch_id}")
        return True

    async def cancel_active_batches_for_session(self, session_id: str) -> int:
        """Cancel every non-terminal batch of a session; returns how many were canceled."""
        canceled = 0
        failures = []
        for batch in await self.batches.list_active_batches(session_id):
            try:
                if await self.cancel_batch(batch.id):
                    canceled += 1
            except DevChronicleException as e:
                logger.error(f"Failed to cancel batch {batch.id}: {e.message}")
                failures.append(batch.id)

        if failures:
            raise BatchError(
                f"Canceled {canceled} batch job(s) but failed to cancel {len(failures)}",
                context=create_error_context(session_id=session_id, batch_ids=failures),
            )
        return canceled

    async def get_active_batch_for_session(self, session_id: str) -> Optional[SummarizationBatch]:
        active = await self.batches.list_active_batches(session_id)
        return active[0] if active else None

    async def list_non_terminal_batches(self) -> List[SummarizationBatch]:
        return await self.batches.list_non_terminal_batches()

    async def _require_batch(self, batch_id: str) -> SummarizationBatch:
        batch = await self.batches.get_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def _apply_snapshot(self, batch: SummarizationBatch, snapshot: BatchSnapshot) -> None:
        status = BatchStatus.from_provider(snapshot.status)
        # PartialFailure refines the provider's "completed"
        if not (batch.status is BatchStatus.PARTIAL_FAILURE and status is BatchStatus.COMPLETED):
            batch.status = status
        if snapshot.output_file_id:
            batch.output_file_id = snapshot.output_file_id
        if snapshot.error_file_id:
            batch.error_file_id = snapshot.error_file_id
        if snapshot.last_error:
            batch.last_error = snapshot.last_error

    async def _download_results(self, batch: SummarizationBatch) -> BatchResults:
        results = BatchResults()
        if batch.output_file_id:
            parse_output_jsonl(await self.provider.download_file_content(batch.output_file_id), results)
        if batch.error_file_id:
            parse_error_jsonl(await self.provider.download_file_content(batch.error_file_id), results)
        return results

    async def _fail_item(self, item: SummarizationBatchItem, error: str) -> None:
        item.status = BatchItemStatus.FAILED
        item.error = error
        await self.batches.update_item(item)
        logger.warning(f"Batch item {item.custom_id} failed: {error}")

    async def _fail_pending_items(self, batch_id: str, error: str) -> None:
        for item in await self.batches.get_items(batch_id):
            if item.is_pending:
                await self._fail_item(item, error)

    async def _try_apply(self, batch_id: str) -> None:
        """Apply whatever results exist; never raises."""
        try:
            result = await self.apply_batch_results(batch_id)
        except Exception as e:
            logger.warning(f"Best-effort apply of batch {batch_id} failed: {e}")
            return
        if result.results_not_ready:
            logger.debug(f"No results to salvage for batch {batch_id}")
