"""
Data access layer for DevChronicle.

Public Interface:
    - Abstract repositories consumed by the summarization core
    - SQLite implementations backed by aiosqlite
    - Schema migrations and a repository factory

Example Usage:
    ```python
    from devchronicle.data import RepositoryFactory

    factory = RepositoryFactory(db_path="data/devchronicle.db")
    repos = await factory.create_repositories()
    pending = await repos.days.list_pending_days(session_id)
    ```
"""

from .base import (
    SessionRepository,
    DayRepository,
    DaySummaryRepository,
    EvidenceRepository,
    BatchRepository,
    SettingsRepository,
    DatabaseConnection,
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
from .repositories import Repositories, RepositoryFactory

__all__ = [
    'SessionRepository',
    'DayRepository',
    'DaySummaryRepository',
    'EvidenceRepository',
    'BatchRepository',
    'SettingsRepository',
    'DatabaseConnection',
    'SQLiteConnection',
    'SQLiteSessionRepository',
    'SQLiteDayRepository',
    'SQLiteDaySummaryRepository',
    'SQLiteEvidenceRepository',
    'SQLiteBatchRepository',
    'SQLiteSettingsRepository',
    'run_migrations',
    'Repositories',
    'RepositoryFactory',
]
