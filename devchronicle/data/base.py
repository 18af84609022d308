"""
Abstract repository interfaces for the data access layer.

The summarization core only depends on these interfaces; the SQLite
implementations in ``sqlite.py`` are one concrete backend.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional

from ..models.day import Session, Day, DayStatus, DaySummary, DayEvidence, CommitEvidence
from ..models.batch import SummarizationBatch, SummarizationBatchItem


class SessionRepository(ABC):
    """Abstract repository for mining sessions."""

    @abstractmethod
    async def save_session(self, session: Session) -> str:
        """Insert or replace a session and return its id."""
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        """Fetch a session by id."""
        pass

    @abstractmethod
    async def list_sessions(self) -> List[Session]:
        """List sessions, newest first."""
        pass


class DayRepository(ABC):
    """Abstract repository for mined days."""

    @abstractmethod
    async def save_day(self, day: Day) -> None:
        """Insert or update a day row."""
        pass

    @abstractmethod
    async def get_day(self, session_id: str, day: date) -> Optional[Day]:
        """Fetch one day of a session."""
        pass

    @abstractmethod
    async def list_pending_days(self, session_id: str, limit: Optional[int] = None) -> List[Day]:
        """
        List days still waiting for a summary, oldest first.

        Args:
            session_id: Session to look in
            limit: Maximum number of days to return

        Returns:
            Days with status Mined
        """
        pass

    @abstractmethod
    async def count_pending_days(self, session_id: str) -> int:
        """Count days still waiting for a summary."""
        pass

    @abstractmethod
    async def update_day_status(self, session_id: str, day: date, status: DayStatus) -> None:
        """Set the status of one day."""
        pass


class DaySummaryRepository(ABC):
    """Abstract repository for day summaries."""

    @abstractmethod
    async def store_day_summary(self, summary: DaySummary) -> None:
        """
        Upsert a day summary and mark the day Summarized.

        The summary row is written before the day status changes so a
        crash between the two leaves the day pending, never summarized
        without content.

        Args:
            summary: Summary to persist
        """
        pass

    @abstractmethod
    async def get_summary(self, session_id: str, day: date) -> Optional[DaySummary]:
        """Fetch the summary of one day."""
        pass

    @abstractmethod
    async def count_summaries(self, session_id: str) -> int:
        """Count stored summaries for a session."""
        pass


class EvidenceRepository(ABC):
    """Abstract source of commit evidence for a day."""

    @abstractmethod
    async def save_commit(self, commit: CommitEvidence) -> None:
        """Persist one mined commit."""
        pass

    @abstractmethod
    async def get_commit_evidence_for_day(self, session_id: str, day: date) -> DayEvidence:
        """
        Compile the evidence bundle for one day.

        Args:
            session_id: Session the day belongs to
            day: Calendar day

        Returns:
            Evidence bundle, empty when nothing was mined for the day
        """
        pass


class BatchRepository(ABC):
    """Abstract repository for summarization batches and their items."""

    @abstractmethod
    async def create_batch(self, batch: SummarizationBatch, items: List[SummarizationBatchItem]) -> None:
        """Persist a new batch together with all of its items."""
        pass

    @abstractmethod
    async def get_batch(self, batch_id: str) -> Optional[SummarizationBatch]:
        """Fetch a batch by local id."""
        pass

    @abstractmethod
    async def get_batch_by_provider_id(self, provider_batch_id: str) -> Optional[SummarizationBatch]:
        """Fetch a batch by the provider's batch id."""
        pass

    @abstractmethod
    async def update_batch(self, batch: SummarizationBatch) -> None:
        """Persist status, file ids and last error of a batch."""
        pass

    @abstractmethod
    async def get_items(self, batch_id: str) -> List[SummarizationBatchItem]:
        """List the items of a batch ordered by day."""
        pass

    @abstractmethod
    async def update_item(self, item: SummarizationBatchItem) -> None:
        """Persist status and error of an item."""
        pass

    @abstractmethod
    async def list_active_batches(self, session_id: str) -> List[SummarizationBatch]:
        """List non-terminal batches of one session, newest first."""
        pass

    @abstractmethod
    async def list_non_terminal_batches(self) -> List[SummarizationBatch]:
        """List non-terminal batches across every session."""
        pass


class SettingsRepository(ABC):
    """Abstract key/value store for raw setting values."""

    @abstractmethod
    async def get_value(self, key: str) -> Optional[str]:
        """Return the raw stored value for key."""
        pass

    @abstractmethod
    async def set_value(self, key: str, value: str) -> None:
        """Store a raw value for key."""
        pass


class DatabaseConnection(ABC):
    """Abstract database connection interface."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish database connection."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close database connection."""
        pass

    @abstractmethod
    async def execute(self, query: str, params: Optional[tuple] = None) -> Any:
        """
        Execute a database query.

        Args:
            query: SQL query to execute
            params: Query parameters

        Returns:
            Query result
        """
        pass

    @abstractmethod
    async def fetch_one(self, query: str, params: Optional[tuple] = None) -> Optional[Dict[str, Any]]:
        """Fetch a single row as a dictionary, or None."""
        pass

    @abstractmethod
    async def fetch_all(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Fetch all rows as dictionaries."""
        pass
