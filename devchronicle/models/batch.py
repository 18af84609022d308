"""
Provider batch job models.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Tuple

from .base import BaseModel, generate_id, utc_now, format_day


class BatchStatus(Enum):
    """Local lifecycle of a provider batch job."""
    SUBMITTING = "Submitting"
    QUEUED = "Queued"
    RUNNING = "Running"
    APPLYING = "Applying"
    COMPLETED = "Completed"
    PARTIAL_FAILURE = "PartialFailure"
    FAILED = "Failed"
    CANCELED = "Canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_BATCH_STATUSES

    @classmethod
    def from_provider(cls, provider_status: Optional[str]) -> "BatchStatus":
        """Map a provider-native status string onto the local enum."""
        normalized = (provider_status or "").strip().lower()
        return _PROVIDER_STATUS_MAP.get(normalized, cls.QUEUED)


TERMINAL_BATCH_STATUSES = frozenset({
    BatchStatus.COMPLETED,
    BatchStatus.PARTIAL_FAILURE,
    BatchStatus.FAILED,
    BatchStatus.CANCELED,
})

_PROVIDER_STATUS_MAP = {
    "validating": BatchStatus.SUBMITTING,
    "in_progress": BatchStatus.RUNNING,
    "finalizing": BatchStatus.APPLYING,
    "completed": BatchStatus.COMPLETED,
    "failed": BatchStatus.FAILED,
    "expired": BatchStatus.FAILED,
    "cancelled": BatchStatus.CANCELED,
    "cancelling": BatchStatus.CANCELED,
}


class BatchItemStatus(Enum):
    """Per-day status inside a batch."""
    PENDING = "Pending"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


def new_run_id() -> str:
    """Random run id shared by every item of one submission."""
    return uuid.uuid4().hex


def build_custom_id(session_id: str, day: date, run_id: str) -> str:
    """Deterministic idempotency key correlating a request line to its item."""
    return f"session:{session_id}:day:{format_day(day)}:run:{run_id}"


@dataclass
class SummarizationBatch(BaseModel):
    """Local record of one provider batch job."""
    session_id: str
    provider_batch_id: str
    status: BatchStatus = BatchStatus.SUBMITTING
    input_file_id: Optional[str] = None
    output_file_id: Optional[str] = None
    error_file_id: Optional[str] = None
    last_error: Optional[str] = None
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def has_result_files(self) -> bool:
        return bool(self.output_file_id or self.error_file_id)

    def touch(self) -> None:
        self.updated_at = utc_now()


@dataclass
class SummarizationBatchItem(BaseModel):
    """One day submitted inside a batch."""
    batch_id: str
    session_id: str
    day: date
    custom_id: str
    model: str
    prompt_version: str
    input_hash: str
    max_bullets: int
    status: BatchItemStatus = BatchItemStatus.PENDING
    error: Optional[str] = None
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return self.status is BatchItemStatus.PENDING


@dataclass(frozen=True)
class BatchApplyResult:
    """Counts produced by applying a batch's result files."""
    succeeded: int
    failed: int
    error_message: Optional[str] = None
    succeeded_days: Tuple[date, ...] = ()

    @property
    def results_not_ready(self) -> bool:
        return self.error_message == RESULTS_NOT_READY_MESSAGE

    @property
    def has_failures(self) -> bool:
        return self.failed > 0


RESULTS_NOT_READY_MESSAGE = "Batch result files are not ready yet."
NO_ITEMS_MESSAGE = "No batch items to apply."
