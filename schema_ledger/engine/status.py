"""
Read-only view of migration state.

collect_status() answers "what would `migrate` do?" without creating the
database, the history table, or opening a write transaction. It applies the
same skip policy as the runner so the two never disagree.
"""

import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..config.schema import MigratorConfig
from ..exceptions import DatabaseConnectionError, HistoryReadError
from ..storage.db import MEMORY_DATABASE, resolve_database_path
from ..storage.history import HistoryStore
from .discovery import discover_migrations
from .models import MigrationRecord
from .policy import should_skip

logger = logging.getLogger(__name__)


class MigrationState(str, Enum):
    """Where one migration stands relative to the history table."""

    APPLIED = "applied"
    PENDING = "pending"
    PENDING_TEST = "pending (test)"
    MISSING = "missing"


@dataclass
class StatusEntry:
    """
    State of one migration as seen from the directory and the history.

    Attributes:
        name: Migration file name
        state: APPLIED, PENDING (runs next time), PENDING_TEST (test migration
            that only runs in test mode) or MISSING (recorded but the file is gone)
        path: File path, or the recorded path for MISSING entries
        record_id: History record id, if one exists
        recorded_at: Record creation timestamp as stored, if one exists
    """

    name: str
    state: MigrationState
    path: str
    record_id: int | None = None
    recorded_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "path": self.path,
            "record_id": self.record_id,
            "recorded_at": self.recorded_at,
        }


def collect_status(config: MigratorConfig) -> list[StatusEntry]:
    """
    Describe every discovered migration and every orphaned history record.

    Discovered files come first in execution order, followed by MISSING
    records in id order.

    Raises:
        DiscoveryError: If the migrations directory can't be listed
        DatabaseConnectionError: If an existing database can't be opened
        HistoryReadError: If the history table exists but can't be read
    """
    files = discover_migrations(config.migrations_dir)
    records = load_history_readonly(config.database_url)
    by_name = {}
    for record in records:
        by_name.setdefault(record.name, record)

    entries = []
    for migration_file in files:
        record = by_name.get(migration_file.name)
        already_ran = record.ran if record else False

        if already_ran:
            state = MigrationState.APPLIED
        elif should_skip(already_ran, migration_file.name, config.run_test_migrations):
            state = MigrationState.PENDING_TEST
        else:
            state = MigrationState.PENDING

        entries.append(
            StatusEntry(
                name=migration_file.name,
                state=state,
                path=str(migration_file.path),
                record_id=record.id if record else None,
                recorded_at=record.timestamp if record else None,
            )
        )

    discovered = {f.name for f in files}
    for record in by_name.values():
        if record.name not in discovered:
            entries.append(
                StatusEntry(
                    name=record.name,
                    state=MigrationState.MISSING,
                    path=record.path,
                    record_id=record.id,
                    recorded_at=record.timestamp,
                )
            )

    test_pending = sum(1 for e in entries if e.state is MigrationState.PENDING_TEST)
    logger.debug(
        f"Status collected: {len(entries)} entries, {test_pending} pending test migrations"
    )
    return entries


def load_history_readonly(database_url: str) -> list[MigrationRecord]:
    """
    Load history without creating anything.

    A database file that doesn't exist yet, or one without a history table,
    has an empty history.
    """
    db_path = resolve_database_path(database_url)
    if db_path == MEMORY_DATABASE or not Path(db_path).exists():
        return []

    try:
        uri = Path(db_path).resolve().as_uri() + "?mode=ro"
        conn = sqlite3.connect(uri, uri=True)
    except sqlite3.Error as e:
        raise DatabaseConnectionError(f"Error opening database {db_path}: {e}") from e

    try:
        store = HistoryStore(conn)
        try:
            has_table = store.table_exists()
        except sqlite3.Error as e:
            raise HistoryReadError(f"Could not inspect database {db_path}: {e}") from e
        if not has_table:
            return []
        return store.load_all()
    finally:
        conn.close()


def pending_count(entries: list[StatusEntry]) -> int:
    return sum(1 for e in entries if e.state is MigrationState.PENDING)
