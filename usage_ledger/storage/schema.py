"""
Schema creation and additive migrations.

The base table and index are created idempotently on every startup.
Columns added after the first release are applied with ALTER TABLE; a
column that already exists is not an error.
"""

import logging
import sqlite3
from typing import List, Tuple

from .db import StorageHandle
from .errors import MigrationWarning, SchemaError

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS usage_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp DATETIME,
    api_key TEXT,
    model TEXT,
    input_tokens INTEGER,
    output_tokens INTEGER,
    total_tokens INTEGER,
    is_failure BOOLEAN,
    source TEXT,
    duration_ms INTEGER,
    prompt_text TEXT,
    completion_text TEXT,
    cost_usd REAL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_timestamp ON usage_logs(timestamp DESC);
"""

# (column, definition) pairs applied in order to databases created by
# earlier releases
MIGRATIONS: List[Tuple[str, str]] = [
    ("cost_usd", "REAL DEFAULT 0"),
]


def _is_duplicate_column(error: sqlite3.Error) -> bool:
    """Whether an ALTER TABLE failed only because the column exists."""
    return "duplicate column name" in str(error).lower()


def ensure_schema(handle: StorageHandle) -> List[MigrationWarning]:
    """Create the usage table and apply additive migrations.

    Args:
        handle: Open storage handle

    Returns:
        Warnings for migrations that failed for a reason other than the
        column already existing

    Raises:
        SchemaError: If the base table or index cannot be created
    """
    with handle.connection() as conn:
        try:
            conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            raise SchemaError(f"Failed to create usage_logs table: {e}") from e

        warnings: List[MigrationWarning] = []
        for column, definition in MIGRATIONS:
            try:
                conn.execute(f"ALTER TABLE usage_logs ADD COLUMN {column} {definition}")
                logger.info("Added column %s to usage_logs", column)
            except sqlite3.Error as e:
                if _is_duplicate_column(e):
                    continue
                warning = MigrationWarning(f"Migration adding column {column} failed: {e}")
                logger.warning("%s", warning)
                warnings.append(warning)
    return warnings
