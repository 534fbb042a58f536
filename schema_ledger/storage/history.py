"""
Persistent migration history for Schema Ledger.

The history lives in a single `migrations` table whose layout is fixed for
compatibility with databases migrated by earlier tooling:

    migrations(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        path TEXT NOT NULL,
        ran BOOLEAN NOT NULL,
        timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )

HistoryStore never opens, commits or rolls back transactions. Every
statement runs on the caller's connection so history writes land in the
same transaction (and savepoint) as the migration they describe.

Security:
    - ALL queries use parameterized statements
"""

import logging
import sqlite3

from ..config.constants import HISTORY_TABLE
from ..engine.models import MigrationRecord
from ..exceptions import HistoryReadError, HistoryWriteError

logger = logging.getLogger(__name__)

CREATE_HISTORY_TABLE_SQL = f"""
    CREATE TABLE IF NOT EXISTS {HISTORY_TABLE} (
        id INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        path TEXT NOT NULL,
        ran BOOLEAN NOT NULL,
        timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""


class HistoryStore:
    """
    Read and write the migrations history table on an open connection.

    Example:
        >>> store = HistoryStore(conn)
        >>> store.ensure_schema()
        True
        >>> store.insert("0001_init.sql", "migrations/0001_init.sql", ran=True)
        1
        >>> [r.name for r in store.load_all()]
        ['0001_init.sql']
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def ensure_schema(self) -> bool:
        """
        Create the history table if it doesn't exist.

        Idempotent. Failure is logged and reported, not raised: a genuinely
        missing table makes load_all() fail loudly right afterwards.

        Returns:
            True if the table exists after the call, False if creation failed
        """
        try:
            self.conn.execute(CREATE_HISTORY_TABLE_SQL)
        except sqlite3.Error as e:
            logger.error(
                f"Could not create the {HISTORY_TABLE} table: {e}", exc_info=True
            )
            return False
        return True

    def table_exists(self) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (HISTORY_TABLE,),
        ).fetchone()
        return row is not None

    def load_all(self) -> list[MigrationRecord]:
        """
        Return every history record, oldest first.

        Raises:
            HistoryReadError: If the table cannot be queried
        """
        try:
            rows = self.conn.execute(
                f"SELECT id, name, path, ran, timestamp FROM {HISTORY_TABLE} ORDER BY id"
            ).fetchall()
        except sqlite3.Error as e:
            raise HistoryReadError(f"Could not get migrations history: {e}") from e

        return [
            MigrationRecord(
                id=row[0],
                name=row[1],
                path=row[2],
                ran=bool(row[3]),
                timestamp=row[4],
            )
            for row in rows
        ]

    def insert(self, name: str, path: str, ran: bool) -> int:
        """
        Append a new history record.

        Args:
            name: Migration file name
            path: Migration file path at time of recording
            ran: Whether the migration has been executed

        Returns:
            Number of affected rows (1)

        Raises:
            HistoryWriteError: If the insert fails
        """
        try:
            cursor = self.conn.execute(
                f"INSERT INTO {HISTORY_TABLE} (name, path, ran) VALUES (?, ?, ?)",
                (name, path, ran),
            )
        except sqlite3.Error as e:
            raise HistoryWriteError(
                f"Could not save migration {name} into the history: {e}",
                migration_name=name,
            ) from e
        return cursor.rowcount

    def mark_ran(self, record_id: int) -> int:
        """
        Set ran = true on an existing record.

        Returns:
            Number of affected rows (0 if no record has this id)

        Raises:
            HistoryWriteError: If the update fails
        """
        try:
            cursor = self.conn.execute(
                f"UPDATE {HISTORY_TABLE} SET ran = 1 WHERE id = ?",
                (record_id,),
            )
        except sqlite3.Error as e:
            raise HistoryWriteError(
                f"Could not update migration record {record_id} in the history: {e}"
            ) from e
        return cursor.rowcount

    def last_insert_id(self) -> int | None:
        """Id of the row inserted last on this connection."""
        row = self.conn.execute("SELECT last_insert_rowid()").fetchone()
        return row[0] if row and row[0] else None
