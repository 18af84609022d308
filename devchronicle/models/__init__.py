"""
Data models for DevChronicle.
"""

from .base import BaseModel, generate_id, utc_now, format_day, parse_day
from .day import (
    DayStatus,
    Session,
    Day,
    CommitEvidence,
    DayEvidence,
    DaySummary,
    PendingDayWorkItem,
    DaySummarizationPayload,
    SummarizationOutcome,
)
from .batch import (
    BatchStatus,
    BatchItemStatus,
    SummarizationBatch,
    SummarizationBatchItem,
    BatchApplyResult,
    TERMINAL_BATCH_STATUSES,
    RESULTS_NOT_READY_MESSAGE,
    NO_ITEMS_MESSAGE,
    build_custom_id,
    new_run_id,
)
from .operation import OperationState, OperationStatus, format_progress

__all__ = [
    'BaseModel',
    'generate_id',
    'utc_now',
    'format_day',
    'parse_day',
    'DayStatus',
    'Session',
    'Day',
    'CommitEvidence',
    'DayEvidence',
    'DaySummary',
    'PendingDayWorkItem',
    'DaySummarizationPayload',
    'SummarizationOutcome',
    'BatchStatus',
    'BatchItemStatus',
    'SummarizationBatch',
    'SummarizationBatchItem',
    'BatchApplyResult',
    'TERMINAL_BATCH_STATUSES',
    'RESULTS_NOT_READY_MESSAGE',
    'NO_ITEMS_MESSAGE',
    'build_custom_id',
    'new_run_id',
    'OperationState',
    'OperationStatus',
    'format_progress',
]
