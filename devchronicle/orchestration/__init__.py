"""
Orchestration of summarization runs: session selection, operation state,
batch monitors and the runner that ties them together.
"""

from .monitor import BatchMonitor, BatchMonitorRegistry, MonitorResult, result_for_terminal_batch
from .runner import SummarizationRunner
from .session import SessionContext
from .state import OperationTracker

__all__ = [
    'BatchMonitor',
    'BatchMonitorRegistry',
    'MonitorResult',
    'result_for_terminal_batch',
    'SummarizationRunner',
    'SessionContext',
    'OperationTracker',
]
