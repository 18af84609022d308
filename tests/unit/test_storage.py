"""
Tests for the SQLite repositories.
"""

from datetime import date

import pytest

from devchronicle.data import RepositoryFactory
from devchronicle.exceptions import StorageError
from devchronicle.models.batch import (
    BatchItemStatus,
    BatchStatus,
    SummarizationBatch,
    SummarizationBatchItem,
    build_custom_id,
)
from devchronicle.models.day import DayStatus, DaySummary

DAY = date(2024, 3, 11)


def summary(session_id, bullets):
    return DaySummary(session_id=session_id, day=DAY, bullets=bullets, model="gpt-4o-mini",
                      prompt_version="v2", input_hash="abc")


class TestDayStorage:
    """Tests for days, evidence and summaries."""

    @pytest.mark.asyncio
    async def test_pending_days_are_ordered_and_limited(self, repos, session, mined_day):
        for day in (date(2024, 3, 13), date(2024, 3, 11), date(2024, 3, 12)):
            await mined_day(session.id, day)

        pending = await repos.days.list_pending_days(session.id, limit=2)

        assert [d.day for d in pending] == [date(2024, 3, 11), date(2024, 3, 12)]
        assert await repos.days.count_pending_days(session.id) == 3

    @pytest.mark.asyncio
    async def test_evidence_for_day(self, repos, session, mined_day):
        await mined_day(session.id, DAY, commits=2)
        evidence = await repos.evidence.get_commit_evidence_for_day(session.id, DAY)
        assert len(evidence.commits) == 2
        assert evidence.branch_labels == ["main"]
        assert evidence.commits[1].files == ["src/module_1.py"]

    @pytest.mark.asyncio
    async def test_store_summary_marks_day_summarized(self, repos, session, mined_day):
        await mined_day(session.id, DAY)
        await repos.summaries.store_day_summary(summary(session.id, ["- one"]))

        day = await repos.days.get_day(session.id, DAY)
        stored = await repos.summaries.get_summary(session.id, DAY)
        assert day.status is DayStatus.SUMMARIZED
        assert stored.bullets == ["- one"]

    @pytest.mark.asyncio
    async def test_store_summary_is_upsert_and_keeps_approved(self, repos, session, mined_day):
        await mined_day(session.id, DAY)
        await repos.days.update_day_status(session.id, DAY, DayStatus.APPROVED)

        await repos.summaries.store_day_summary(summary(session.id, ["- one"]))
        await repos.summaries.store_day_summary(summary(session.id, ["- two", "- three"]))

        day = await repos.days.get_day(session.id, DAY)
        stored = await repos.summaries.get_summary(session.id, DAY)
        assert day.status is DayStatus.APPROVED
        assert stored.bullets == ["- two", "- three"]
        assert await repos.summaries.count_summaries(session.id) == 1


class TestConnection:
    """Tests for opening the database."""

    @pytest.mark.asyncio
    async def test_unusable_path_is_storage_error(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        factory = RepositoryFactory(backend="sqlite", db_path=str(blocker / "devchronicle.db"))

        with pytest.raises(StorageError):
            await factory.create_repositories()


class TestBatchStorage:
    """Tests for batch and batch item persistence."""

    @pytest.mark.asyncio
    async def test_active_batches_exclude_terminal(self, repos, session):
        running = SummarizationBatch(session_id=session.id, provider_batch_id="batch_a",
                                     status=BatchStatus.RUNNING)
        done = SummarizationBatch(session_id=session.id, provider_batch_id="batch_b",
                                  status=BatchStatus.COMPLETED)
        await repos.batches.create_batch(running, [])
        await repos.batches.create_batch(done, [])

        active = await repos.batches.list_active_batches(session.id)

        assert [b.id for b in active] == [running.id]
        assert [b.id for b in await repos.batches.list_non_terminal_batches()] == [running.id]
        assert (await repos.batches.get_batch_by_provider_id("batch_b")).id == done.id

    @pytest.mark.asyncio
    async def test_items_round_trip(self, repos, session):
        batch = SummarizationBatch(session_id=session.id, provider_batch_id="batch_c")
        item = SummarizationBatchItem(
            batch_id=batch.id, session_id=session.id, day=DAY,
            custom_id=build_custom_id(session.id, DAY, "run1"),
            model="gpt-4o-mini", prompt_version="v2", input_hash="abc", max_bullets=4,
        )
        await repos.batches.create_batch(batch, [item])

        item.status = BatchItemStatus.FAILED
        item.error = "bad"
        await repos.batches.update_item(item)
        batch.status = BatchStatus.PARTIAL_FAILURE
        batch.last_error = "One or more batch items failed."
        await repos.batches.update_batch(batch)

        items = await repos.batches.get_items(batch.id)
        stored = await repos.batches.get_batch(batch.id)
        assert items[0].status is BatchItemStatus.FAILED
        assert items[0].error == "bad"
        assert items[0].custom_id == f"session:{session.id}:day:2024-03-11:run:run1"
        assert stored.status is BatchStatus.PARTIAL_FAILURE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
