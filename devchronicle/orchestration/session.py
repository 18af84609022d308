"""
Current session selection.
"""

from typing import Optional


class SessionContext:
    """Holds the session the user is working in."""

    def __init__(self, session_id: Optional[str] = None):
        self._session_id = session_id

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def select(self, session_id: str) -> None:
        self._session_id = session_id
