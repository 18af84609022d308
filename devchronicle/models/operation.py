"""
Observable operation status reported by the summarization runner.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


class OperationState(Enum):
    """States of a user-visible operation."""
    IDLE = "Idle"
    RUNNING = "Running"
    SUCCESS = "Success"
    CANCELED = "Canceled"
    ERROR = "Error"
    NEEDS_INPUT = "NeedsInput"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationState.SUCCESS, OperationState.CANCELED,
                        OperationState.ERROR, OperationState.NEEDS_INPUT)


def format_progress(verb: str, current: Optional[int] = None, total: Optional[int] = None) -> str:
    """Format a progress message.

    Returns "verb (current/total)" when a positive total is known, otherwise
    "verb...". The current step is clamped into [0, total].
    """
    if total is not None and total > 0:
        clamped = max(0, min(current or 0, total))
        return f"{verb} ({clamped}/{total})"
    return f"{verb}..."


@dataclass(frozen=True)
class OperationStatus:
    """Snapshot of an operation's state; replaced, never mutated."""
    state: OperationState = OperationState.IDLE
    message: str = ""
    current_step: Optional[int] = None
    total_steps: Optional[int] = None
    recover_action: Optional[str] = None

    @classmethod
    def idle(cls) -> "OperationStatus":
        return cls()

    @classmethod
    def running(cls, verb: str, current: Optional[int] = None,
                total: Optional[int] = None) -> "OperationStatus":
        if total is not None and total > 0:
            current = max(0, min(current or 0, total))
        else:
            current, total = None, None
        return cls(
            state=OperationState.RUNNING,
            message=format_progress(verb, current, total),
            current_step=current,
            total_steps=total,
        )

    @classmethod
    def terminal(cls, state: OperationState, message: str,
                 recover_action: Optional[str] = None) -> "OperationStatus":
        return cls(state=state, message=message, recover_action=recover_action)

    def with_message(self, message: str) -> "OperationStatus":
        return replace(self, message=message)
