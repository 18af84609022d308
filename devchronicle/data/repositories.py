"""
Repository factory for the configured storage backend.
"""

from dataclasses import dataclass
from typing import Optional

from .base import (
    SessionRepository,
    DayRepository,
    DaySummaryRepository,
    EvidenceRepository,
    BatchRepository,
    SettingsRepository,
)
from .sqlite import (
    SQLiteConnection,
    SQLiteSessionRepository,
    SQLiteDayRepository,
    SQLiteDaySummaryRepository,
    SQLiteEvidenceRepository,
    SQLiteBatchRepository,
    SQLiteSettingsRepository,
)
from .migrations import run_migrations


@dataclass
class Repositories:
    """Every repository the application uses, sharing one connection."""
    sessions: SessionRepository
    days: DayRepository
    summaries: DaySummaryRepository
    evidence: EvidenceRepository
    batches: BatchRepository
    settings: SettingsRepository


class RepositoryFactory:
    """Factory for creating repository instances."""

    def __init__(self, backend: str = "sqlite", **config):
        """
        Initialize repository factory.

        Args:
            backend: Database backend to use (only 'sqlite' is supported)
            **config: Backend-specific configuration options
        """
        self.backend = backend
        self.config = config
        self._connection: Optional[SQLiteConnection] = None

    async def get_connection(self) -> SQLiteConnection:
        """Get or create the database connection, running migrations once."""
        if self._connection is None:
            if self.backend != "sqlite":
                raise ValueError(f"Unsupported backend: {self.backend}")
            connection = SQLiteConnection(
                self.config.get("db_path", "data/devchronicle.db"),
                self.config.get("pool_size", 3),
            )
            await connection.connect()
            await run_migrations(connection)
            self._connection = connection

        return self._connection

    async def create_repositories(self) -> Repositories:
        connection = await self.get_connection()
        return Repositories(
            sessions=SQLiteSessionRepository(connection),
            days=SQLiteDayRepository(connection),
            summaries=SQLiteDaySummaryRepository(connection),
            evidence=SQLiteEvidenceRepository(connection),
            batches=SQLiteBatchRepository(connection),
            settings=SQLiteSettingsRepository(connection),
        )

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.disconnect()
            self._connection = None
