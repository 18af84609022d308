"""
Operation state owned by the runner and broadcast to observers.
"""

import logging
from typing import Callable, List, Optional

from ..models.operation import OperationState, OperationStatus

logger = logging.getLogger(__name__)

StatusObserver = Callable[[OperationStatus], None]


class OperationTracker:
    """Single owner of the current OperationStatus."""

    def __init__(self):
        self._status = OperationStatus.idle()
        self._observers: List[StatusObserver] = []

    @property
    def status(self) -> OperationStatus:
        return self._status

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def reset(self) -> None:
        self._publish(OperationStatus.idle())

    def progress(self, verb: str, current: Optional[int] = None, total: Optional[int] = None) -> None:
        self._publish(OperationStatus.running(verb, current, total))

    def message(self, text: str) -> None:
        """Replace the message of a running operation, keeping its step counts."""
        if self._status.state is OperationState.RUNNING:
            self._publish(self._status.with_message(text))
        else:
            self._publish(OperationStatus(state=OperationState.RUNNING, message=text))

    def succeed(self, message: str) -> None:
        self._publish(OperationStatus.terminal(OperationState.SUCCESS, message))

    def cancel(self, message: str, recover_action: Optional[str] = None) -> None:
        self._publish(OperationStatus.terminal(OperationState.CANCELED, message, recover_action))

    def fail(self, message: str, recover_action: str) -> None:
        self._publish(OperationStatus.terminal(OperationState.ERROR, message, recover_action))

    def needs_input(self, message: str, recover_action: str) -> None:
        self._publish(OperationStatus.terminal(OperationState.NEEDS_INPUT, message, recover_action))

    def finish(self, state: OperationState, message: str, recover_action: Optional[str] = None) -> None:
        self._publish(OperationStatus.terminal(state, message, recover_action))

    def _publish(self, status: OperationStatus) -> None:
        self._status = status
        for observer in list(self._observers):
            try:
                observer(status)
            except Exception:
                logger.exception("Operation status observer raised")
