"""
SQLite implementation of data repositories using aiosqlite.

This module provides SQLite support with a small connection pool,
transactions, and async database operations.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from .base import (
    SessionRepository,
    DayRepository,
    DaySummaryRepository,
    EvidenceRepository,
    BatchRepository,
    SettingsRepository,
    DatabaseConnection,
)
from ..exceptions import StorageError
from ..models.base import format_day, parse_day, utc_now
from ..models.day import Session, Day, DayStatus, DaySummary, DayEvidence, CommitEvidence
from ..models.batch import (
    SummarizationBatch,
    SummarizationBatchItem,
    BatchStatus,
    BatchItemStatus,
    TERMINAL_BATCH_STATUSES,
)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


_TERMINAL_STATUS_VALUES = tuple(status.value for status in TERMINAL_BATCH_STATUSES)
_TERMINAL_PLACEHOLDERS = ", ".join("?" for _ in _TERMINAL_STATUS_VALUES)


class SQLiteConnection(DatabaseConnection):
    """SQLite database connection with connection pooling."""

    def __init__(self, db_path: str, pool_size: int = 3):
        self.db_path = db_path
        self.pool_size = pool_size
        self._connections: List[aiosqlite.Connection] = []
        self._available: asyncio.Queue = asyncio.Queue(maxsize=pool_size)
        self._lock = asyncio.Lock()
        self._initialized = False

    async def connect(self) -> None:
        """Establish database connection pool."""
        async with self._lock:
            if self._initialized:
                return

            try:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

                for _ in range(self.pool_size):
                    conn = await aiosqlite.connect(self.db_path, timeout=30)
                    conn.row_factory = aiosqlite.Row
                    await conn.execute("PRAGMA journal_mode=WAL")
                    await conn.execute("PRAGMA foreign_keys=ON")
                    self._connections.append(conn)
                    await self._available.put(conn)
            except (aiosqlite.Error, OSError) as e:
                raise StorageError(
                    f"Could not open database at {self.db_path}: {e}",
                    user_message="Could not open the DevChronicle database.",
                    cause=e,
                )

            self._initialized = True

    async def disconnect(self) -> None:
        """Close all database connections."""
        async with self._lock:
            if not self._initialized:
                return

            for conn in self._connections:
                await conn.close()

            self._connections.clear()
            self._available = asyncio.Queue(maxsize=self.pool_size)
            self._initialized = False

    @asynccontextmanager
    async def _get_connection(self):
        """Get a connection from the pool."""
        if not self._initialized:
            await self.connect()

        conn = await self._available.get()
        try:
            yield conn
        finally:
            await self._available.put(conn)

    @asynccontextmanager
    async def transaction(self):
        """Run several statements on one connection atomically."""
        async with self._get_connection() as conn:
            await conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()

    async def execute(self, query: str, params: Optional[tuple] = None) -> Any:
        """Execute a database query."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params or ())
            await conn.commit()
            return cursor

    async def fetch_one(self, query: str, params: Optional[tuple] = None) -> Optional[Dict[str, Any]]:
        """Fetch a single row from the database."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params or ())
            row = await cursor.fetchone()
            if row:
                return dict(row)
            return None

    async def fetch_all(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Fetch all rows from the database."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params or ())
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]


class SQLiteSessionRepository(SessionRepository):
    """SQLite implementation of session repository."""

    def __init__(self, connection: SQLiteConnection):
        self.connection = connection

    async def save_session(self, session: Session) -> str:
        query = """
        INSERT OR REPLACE INTO sessions (id, name, repo_path, created_at)
        VALUES (?, ?, ?, ?)
        """
        await self.connection.execute(
            query, (session.id, session.name, session.repo_path, session.created_at.isoformat())
        )
        return session.id

    async def get_session(self, session_id: str) -> Optional[Session]:
        row = await self.connection.fetch_one("SELECT * FROM sessions WHERE id = ?", (session_id,))
        return self._row_to_session(row) if row else None

    async def list_sessions(self) -> List[Session]:
        rows = await self.connection.fetch_all("SELECT * FROM sessions ORDER BY created_at DESC")
        return [self._row_to_session(row) for row in rows]

    def _row_to_session(self, row: Dict[str, Any]) -> Session:
        return Session(
            id=row['id'],
            name=row['name'],
            repo_path=row['repo_path'],
            created_at=_parse_datetime(row['created_at']),
        )


class SQLiteDayRepository(DayRepository):
    """SQLite implementation of day repository."""

    def __init__(self, connection: SQLiteConnection):
        self.connection = connection

    async def save_day(self, day: Day) -> None:
        query = """
        INSERT INTO days (session_id, day, status, commit_count, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(session_id, day) DO UPDATE SET
            status = excluded.status,
            commit_count = excluded.commit_count,
            updated_at = excluded.updated_at
        """
        await self.connection.execute(query, (
            day.session_id,
            format_day(day.day),
            day.status.value,
            day.commit_count,
            day.updated_at.isoformat(),
        ))

    async def get_day(self, session_id: str, day: date) -> Optional[Day]:
        row = await self.connection.fetch_one(
            "SELECT * FROM days WHERE session_id = ? AND day = ?",
            (session_id, format_day(day))
        )
        return self._row_to_day(row) if row else None

    async def list_pending_days(self, session_id: str, limit: Optional[int] = None) -> List[Day]:
        query = "SELECT * FROM days WHERE session_id = ? AND status = ? ORDER BY day ASC"
        params: List[Any] = [session_id, DayStatus.MINED.value]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = await self.connection.fetch_all(query, tuple(params))
        return [self._row_to_day(row) for row in rows]

    async def count_pending_days(self, session_id: str) -> int:
        row = await self.connection.fetch_one(
            "SELECT COUNT(*) AS pending FROM days WHERE session_id = ? AND status = ?",
            (session_id, DayStatus.MINED.value)
        )
        return int(row['pending']) if row else 0

    async def update_day_status(self, session_id: str, day: date, status: DayStatus) -> None:
        await self.connection.execute(
            "UPDATE days SET status = ?, updated_at = ? WHERE session_id = ? AND day = ?",
            (status.value, utc_now().isoformat(), session_id, format_day(day))
        )

    def _row_to_day(self, row: Dict[str, Any]) -> Day:
        return Day(
            session_id=row['session_id'],
            day=parse_day(row['day']),
            status=DayStatus(row['status']),
            commit_count=row['commit_count'],
            updated_at=_parse_datetime(row['updated_at']),
        )


class SQLiteDaySummaryRepository(DaySummaryRepository):
    """SQLite implementation of day summary repository."""

    def __init__(self, connection: SQLiteConnection):
        self.connection = connection

    async def store_day_summary(self, summary: DaySummary) -> None:
        day_key = format_day(summary.day)
        async with self.connection.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO day_summaries (
                    session_id, day, bullets, model, prompt_version, input_hash, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id, day) DO UPDATE SET
                    bullets = excluded.bullets,
                    model = excluded.model,
                    prompt_version = excluded.prompt_version,
                    input_hash = excluded.input_hash,
                    created_at = excluded.created_at
                """,
                (
                    summary.session_id,
                    day_key,
                    json.dumps(summary.bullets),
                    summary.model,
                    summary.prompt_version,
                    summary.input_hash,
                    summary.created_at.isoformat(),
                )
            )
            # Approved days keep their status
            await conn.execute(
                "UPDATE days SET status = ?, updated_at = ? WHERE session_id = ? AND day = ? AND status = ?",
                (
                    DayStatus.SUMMARIZED.value,
                    summary.created_at.isoformat(),
                    summary.session_id,
                    day_key,
                    DayStatus.MINED.value,
                )
            )

    async def get_summary(self, session_id: str, day: date) -> Optional[DaySummary]:
        row = await self.connection.fetch_one(
            "SELECT * FROM day_summaries WHERE session_id = ? AND day = ?",
            (session_id, format_day(day))
        )
        return self._row_to_summary(row) if row else None

    async def count_summaries(self, session_id: str) -> int:
        row = await self.connection.fetch_one(
            "SELECT COUNT(*) AS total FROM day_summaries WHERE session_id = ?", (session_id,)
        )
        return int(row['total']) if row else 0

    def _row_to_summary(self, row: Dict[str, Any]) -> DaySummary:
        return DaySummary(
            session_id=row['session_id'],
            day=parse_day(row['day']),
            bullets=json.loads(row['bullets']),
            model=row['model'],
            prompt_version=row['prompt_version'],
            input_hash=row['input_hash'],
            created_at=_parse_datetime(row['created_at']),
        )


class SQLiteEvidenceRepository(EvidenceRepository):
    """SQLite implementation of the commit evidence source."""

    def __init__(self, connection: SQLiteConnection):
        self.connection = connection

    async def save_commit(self, commit: CommitEvidence) -> None:
        query = """
        INSERT OR REPLACE INTO commits (
            sha, session_id, day, subject, author, additions, deletions, files, branches, is_merge
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        await self.connection.execute(query, (
            commit.sha,
            commit.session_id,
            format_day(commit.day),
            commit.subject,
            commit.author,
            commit.additions,
            commit.deletions,
            json.dumps(commit.files),
            json.dumps(commit.branches),
            1 if commit.is_merge else 0,
        ))

    async def get_commit_evidence_for_day(self, session_id: str, day: date) -> DayEvidence:
        rows = await self.connection.fetch_all(
            "SELECT * FROM commits WHERE session_id = ? AND day = ? ORDER BY sha ASC",
            (session_id, format_day(day))
        )
        return DayEvidence(
            session_id=session_id,
            day=day,
            commits=[self._row_to_commit(row) for row in rows],
        )

    def _row_to_commit(self, row: Dict[str, Any]) -> CommitEvidence:
        return CommitEvidence(
            sha=row['sha'],
            session_id=row['session_id'],
            day=parse_day(row['day']),
            subject=row['subject'],
            author=row['author'],
            additions=row['additions'],
            deletions=row['deletions'],
            files=json.loads(row['files'] or '[]'),
            branches=json.loads(row['branches'] or '[]'),
            is_merge=bool(row['is_merge']),
        )


class SQLiteBatchRepository(BatchRepository):
    """SQLite implementation of batch repository."""

    def __init__(self, connection: SQLiteConnection):
        self.connection = connection

    async def create_batch(self, batch: SummarizationBatch, items: List[SummarizationBatchItem]) -> None:
        async with self.connection.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO summarization_batches (
                    id, session_id, provider_batch_id, status, input_file_id,
                    output_file_id, error_file_id, last_error, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    batch.id,
                    batch.session_id,
                    batch.provider_batch_id,
                    batch.status.value,
                    batch.input_file_id,
                    batch.output_file_id,
                    batch.error_file_id,
                    batch.last_error,
                    batch.created_at.isoformat(),
                    batch.updated_at.isoformat(),
                )
            )
            for item in items:
                await conn.execute(
                    """
                    INSERT INTO summarization_batch_items (
                        batch_id, session_id, day, custom_id, model, prompt_version,
                        input_hash, max_bullets, status, error, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item.batch_id,
                        item.session_id,
                        format_day(item.day),
                        item.custom_id,
                        item.model,
                        item.prompt_version,
                        item.input_hash,
                        item.max_bullets,
                        item.status.value,
                        item.error,
                        item.updated_at.isoformat(),
                    )
                )

    async def get_batch(self, batch_id: str) -> Optional[SummarizationBatch]:
        row = await self.connection.fetch_one(
            "SELECT * FROM summarization_batches WHERE id = ?", (batch_id,)
        )
        return self._row_to_batch(row) if row else None

    async def get_batch_by_provider_id(self, provider_batch_id: str) -> Optional[SummarizationBatch]:
        row = await self.connection.fetch_one(
            "SELECT * FROM summarization_batches WHERE provider_batch_id = ?", (provider_batch_id,)
        )
        return self._row_to_batch(row) if row else None

    async def update_batch(self, batch: SummarizationBatch) -> None:
        batch.touch()
        await self.connection.execute(
            """
            UPDATE summarization_batches SET
                status = ?, input_file_id = ?, output_file_id = ?,
                error_file_id = ?, last_error = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                batch.status.value,
                batch.input_file_id,
                batch.output_file_id,
                batch.error_file_id,
                batch.last_error,
                batch.updated_at.isoformat(),
                batch.id,
            )
        )

    async def get_items(self, batch_id: str) -> List[SummarizationBatchItem]:
        rows = await self.connection.fetch_all(
            "SELECT * FROM summarization_batch_items WHERE batch_id = ? ORDER BY day ASC",
            (batch_id,)
        )
        return [self._row_to_item(row) for row in rows]

    async def update_item(self, item: SummarizationBatchItem) -> None:
        item.updated_at = utc_now()
        await self.connection.execute(
            """
            UPDATE summarization_batch_items SET status = ?, error = ?, updated_at = ?
            WHERE batch_id = ? AND custom_id = ?
            """,
            (item.status.value, item.error, item.updated_at.isoformat(), item.batch_id, item.custom_id)
        )

    async def list_active_batches(self, session_id: str) -> List[SummarizationBatch]:
        rows = await self.connection.fetch_all(
            f"""
            SELECT * FROM summarization_batches
            WHERE session_id = ? AND status NOT IN ({_TERMINAL_PLACEHOLDERS})
            ORDER BY created_at DESC
            """,
            (session_id, *_TERMINAL_STATUS_VALUES)
        )
        return [self._row_to_batch(row) for row in rows]

    async def list_non_terminal_batches(self) -> List[SummarizationBatch]:
        rows = await self.connection.fetch_all(
            f"""
            SELECT * FROM summarization_batches
            WHERE status NOT IN ({_TERMINAL_PLACEHOLDERS})
            ORDER BY created_at ASC
            """,
            _TERMINAL_STATUS_VALUES
        )
        return [self._row_to_batch(row) for row in rows]

    def _row_to_batch(self, row: Dict[str, Any]) -> SummarizationBatch:
        return SummarizationBatch(
            id=row['id'],
            session_id=row['session_id'],
            provider_batch_id=row['provider_batch_id'],
            status=BatchStatus(row['status']),
            input_file_id=row['input_file_id'],
            output_file_id=row['output_file_id'],
            error_file_id=row['error_file_id'],
            last_error=row['last_error'],
            created_at=_parse_datetime(row['created_at']),
            updated_at=_parse_datetime(row['updated_at']),
        )

    def _row_to_item(self, row: Dict[str, Any]) -> SummarizationBatchItem:
        return SummarizationBatchItem(
            batch_id=row['batch_id'],
            session_id=row['session_id'],
            day=parse_day(row['day']),
            custom_id=row['custom_id'],
            model=row['model'],
            prompt_version=row['prompt_version'],
            input_hash=row['input_hash'],
            max_bullets=row['max_bullets'],
            status=BatchItemStatus(row['status']),
            error=row['error'],
            updated_at=_parse_datetime(row['updated_at']),
        )


class SQLiteSettingsRepository(SettingsRepository):
    """SQLite implementation of the settings store."""

    def __init__(self, connection: SQLiteConnection):
        self.connection = connection

    async def get_value(self, key: str) -> Optional[str]:
        row = await self.connection.fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
        return row['value'] if row else None

    async def set_value(self, key: str, value: str) -> None:
        await self.connection.execute(
            "INSERT INTO app_settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value)
        )
