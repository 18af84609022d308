"""
Schema creation for the SQLite backend.
"""

import logging

from .sqlite import SQLiteConnection

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        repo_path TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS days (
        session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
        day TEXT NOT NULL,
        status TEXT NOT NULL,
        commit_count INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (session_id, day)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_days_status ON days(session_id, status)",
    """
    CREATE TABLE IF NOT EXISTS day_summaries (
        session_id TEXT NOT NULL,
        day TEXT NOT NULL,
        bullets TEXT NOT NULL,
        model TEXT NOT NULL,
        prompt_version TEXT NOT NULL,
        input_hash TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (session_id, day)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS commits (
        sha TEXT NOT NULL,
        session_id TEXT NOT NULL,
        day TEXT NOT NULL,
        subject TEXT NOT NULL,
        author TEXT NOT NULL DEFAULT '',
        additions INTEGER NOT NULL DEFAULT 0,
        deletions INTEGER NOT NULL DEFAULT 0,
        files TEXT NOT NULL DEFAULT '[]',
        branches TEXT NOT NULL DEFAULT '[]',
        is_merge INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (session_id, sha)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_commits_day ON commits(session_id, day)",
    """
    CREATE TABLE IF NOT EXISTS summarization_batches (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        provider_batch_id TEXT NOT NULL,
        status TEXT NOT NULL,
        input_file_id TEXT,
        output_file_id TEXT,
        error_file_id TEXT,
        last_error TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_batches_session ON summarization_batches(session_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_batches_provider ON summarization_batches(provider_batch_id)",
    """
    CREATE TABLE IF NOT EXISTS summarization_batch_items (
        batch_id TEXT NOT NULL REFERENCES summarization_batches(id) ON DELETE CASCADE,
        session_id TEXT NOT NULL,
        day TEXT NOT NULL,
        custom_id TEXT NOT NULL,
        model TEXT NOT NULL,
        prompt_version TEXT NOT NULL,
        input_hash TEXT NOT NULL,
        max_bullets INTEGER NOT NULL,
        status TEXT NOT NULL,
        error TEXT,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (batch_id, custom_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS app_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
]


async def run_migrations(connection: SQLiteConnection) -> None:
    """Create every table the application needs; safe to run repeatedly."""
    for statement in SCHEMA_STATEMENTS:
        await connection.execute(statement)

    row = await connection.fetch_one("SELECT MAX(version) AS version FROM schema_version")
    current = row["version"] if row and row["version"] is not None else 0
    if current < SCHEMA_VERSION:
        await connection.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        logger.info(f"Database schema migrated to version {SCHEMA_VERSION}")
