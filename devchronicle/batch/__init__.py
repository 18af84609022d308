"""
Provider batch jobs for summarizing many days at once.
"""

from .client import (
    BatchProvider,
    BatchSnapshot,
    BatchRequestLine,
    CancelResult,
    OpenAIBatchClient,
)
from .manager import BatchLifecycleManager
from .results import BatchResults, parse_output_jsonl, parse_error_jsonl

__all__ = [
    'BatchProvider',
    'BatchSnapshot',
    'BatchRequestLine',
    'CancelResult',
    'OpenAIBatchClient',
    'BatchLifecycleManager',
    'BatchResults',
    'parse_output_jsonl',
    'parse_error_jsonl',
]
