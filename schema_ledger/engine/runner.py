"""
Core orchestration engine for Schema Ledger.

This module implements run_migrations(), which applies every pending
migration script exactly once and records it in the history table.

Sequence for one run:
    1. Create the database if it doesn't exist
    2. Open one connection and BEGIN one transaction
    3. Ensure the history table (failure logged, non-fatal)
    4. Load history (fatal on failure)
    5. Discover migration files (fatal on failure)
    6. Bootstrap path (empty history) or incremental path
    7. COMMIT (on failure everything from this run is rolled back)

Per-file isolation:
    Each executed file runs inside its own SAVEPOINT together with the
    history write that records it. A failing file is rolled back to its
    savepoint, reported as FAILED, and the run continues with the next file.
    Files applied before it keep their effects and are committed at the end.

Example:
    >>> from schema_ledger.config.loader import load_config
    >>> report = run_migrations(load_config("ledger.yaml"))
    >>> [o.name for o in report.applied]
    ['0001_init.sql']
    >>> report.mode
    <RunMode.BOOTSTRAP: 'bootstrap'>
"""

import logging
import sqlite3

from ..config.schema import MigratorConfig
from ..exceptions import HistoryWriteError, MigrationExecutionError, TransactionError
from ..storage.db import (
    begin,
    commit,
    connect,
    create_database_if_needed,
    is_transaction_control,
    rollback,
    savepoint,
    split_statements,
)
from ..storage.history import HistoryStore
from ..utils.logging import log_with_context
from ..utils.time import utc_timestamp
from .discovery import discover_migrations
from .models import (
    MigrationFile,
    MigrationOutcome,
    MigrationRecord,
    OutcomeStatus,
    RunMode,
    RunReport,
)
from .policy import should_skip, skip_reason

logger = logging.getLogger(__name__)


class MigrationRunner:
    """
    Applies discovered migration files on a connection with an open transaction.

    The runner never begins or commits the outer transaction; run_migrations()
    owns that. It only creates and releases per-file savepoints.

    Attributes:
        conn: Connection with an open transaction
        run_test_migrations: Test-mode flag handed to the skip policy
        history: HistoryStore bound to the same connection
    """

    def __init__(self, conn: sqlite3.Connection, run_test_migrations: bool = False):
        self.conn = conn
        self.run_test_migrations = run_test_migrations
        self.history = HistoryStore(conn)
        self._savepoint_seq = 0

    def run_bootstrap(self, files: list[MigrationFile]) -> list[MigrationOutcome]:
        """
        First run against an empty history: every file is a candidate.

        The skip policy sees each file's own ran flag (always False here),
        so only the test-name rule can skip anything. Applied files are
        inserted as new history records.
        """
        outcomes = []
        for migration_file in files:
            if should_skip(migration_file.ran, migration_file.name, self.run_test_migrations):
                outcomes.append(self._skipped(migration_file, migration_file.ran))
                continue
            outcomes.append(self.apply(migration_file))
        return outcomes

    def run_incremental(
        self, files: list[MigrationFile], records: list[MigrationRecord]
    ) -> list[MigrationOutcome]:
        """
        Reconcile discovered files against existing history by name.

        A matching record supplies the real ran flag and the record id; when
        such a file is executed its existing record is updated with
        mark_ran() instead of inserting a new one. Files without a record
        are handled exactly like in bootstrap mode.
        """
        by_name = _index_by_name(records)

        outcomes = []
        for migration_file in files:
            record = by_name.get(migration_file.name)
            if record is None:
                already_ran = migration_file.ran
                record_id = None
            else:
                already_ran = record.ran
                record_id = record.id

            if should_skip(already_ran, migration_file.name, self.run_test_migrations):
                outcomes.append(self._skipped(migration_file, already_ran, record_id))
                continue
            outcomes.append(self.apply(migration_file, record_id))
        return outcomes

    def apply(
        self, migration_file: MigrationFile, record_id: int | None = None
    ) -> MigrationOutcome:
        """
        Execute one migration file and record it, inside a savepoint.

        Args:
            migration_file: File to execute
            record_id: Existing history record to mark as ran, or None to
                insert a new record

        Returns:
            APPLIED outcome, or FAILED outcome with the error as reason

        Raises:
            TransactionError: If SQLite aborted the whole transaction while
                running this file (nothing from the run can be committed)
        """
        self._savepoint_seq += 1
        name = f"migration_{self._savepoint_seq}"

        try:
            with savepoint(self.conn, name):
                statement_count = self.execute_file(migration_file)
                migration_file.ran = True
                if record_id is None:
                    self.history.insert(
                        migration_file.name, str(migration_file.path), migration_file.ran
                    )
                    recorded_id = self.history.last_insert_id()
                else:
                    self.history.mark_ran(record_id)
                    recorded_id = record_id
        except (MigrationExecutionError, HistoryWriteError, sqlite3.Error) as e:
            migration_file.ran = False
            log_with_context(
                logger,
                logging.ERROR,
                f"Could not run migration {migration_file.name}",
                context={
                    "migration": migration_file.name,
                    "path": str(migration_file.path),
                    "error": str(e),
                },
            )
            if not self.conn.in_transaction:
                raise TransactionError(
                    f"Transaction aborted by the database while running "
                    f"{migration_file.name}: {e}"
                ) from e
            return MigrationOutcome(
                name=migration_file.name,
                path=migration_file.path,
                status=OutcomeStatus.FAILED,
                reason=str(e),
                record_id=record_id,
            )

        log_with_context(
            logger,
            logging.INFO,
            f"Applied migration {migration_file.name}",
            context={
                "migration": migration_file.name,
                "path": str(migration_file.path),
                "statements": statement_count,
                "record_id": recorded_id,
            },
        )
        return MigrationOutcome(
            name=migration_file.name,
            path=migration_file.path,
            status=OutcomeStatus.APPLIED,
            record_id=recorded_id,
        )

    def execute_file(self, migration_file: MigrationFile) -> int:
        """
        Read a migration file and execute its SQL on the connection.

        Returns:
            Number of statements executed

        Raises:
            MigrationExecutionError: If the file can't be read or a statement fails
        """
        try:
            script = migration_file.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise MigrationExecutionError(
                f"Error reading migration {migration_file.name}: {e}",
                migration_name=migration_file.name,
                path=str(migration_file.path),
            ) from e

        statements = split_statements(script)
        for index, statement in enumerate(statements, start=1):
            if is_transaction_control(statement):
                raise MigrationExecutionError(
                    f"Migration {migration_file.name} contains a transaction control "
                    f"statement (statement {index}); migrations run inside the "
                    f"runner's transaction and must not manage their own",
                    migration_name=migration_file.name,
                    path=str(migration_file.path),
                )

        for index, statement in enumerate(statements, start=1):
            try:
                self.conn.execute(statement)
            except sqlite3.Error as e:
                raise MigrationExecutionError(
                    f"Error executing migration {migration_file.name} "
                    f"(statement {index} of {len(statements)}): {e}",
                    migration_name=migration_file.name,
                    path=str(migration_file.path),
                ) from e
        return len(statements)

    def _skipped(
        self,
        migration_file: MigrationFile,
        already_ran: bool,
        record_id: int | None = None,
    ) -> MigrationOutcome:
        reason = skip_reason(already_ran, migration_file.name)
        log_with_context(
            logger,
            logging.DEBUG,
            f"Skipping migration {migration_file.name}: {reason}",
            context={"migration": migration_file.name, "path": str(migration_file.path)},
        )
        return MigrationOutcome(
            name=migration_file.name,
            path=migration_file.path,
            status=OutcomeStatus.SKIPPED,
            reason=reason,
            record_id=record_id,
        )


def run_migrations(config: MigratorConfig) -> RunReport:
    """
    Apply all pending migrations described by config in one transaction.

    Args:
        config: Database URL, migrations directory and test-mode flag

    Returns:
        RunReport with one outcome per discovered file. Per-file failures
        are reported there, not raised.

    Raises:
        DatabaseConnectionError: Database can't be created or opened
        TransactionError: BEGIN or COMMIT failed, or SQLite aborted the
            transaction; nothing from the run was persisted
        HistoryReadError: History table can't be read
        DiscoveryError: Migrations directory can't be listed
    """
    started_at = utc_timestamp()
    logger.info(
        f"Starting migrations from {config.migrations_dir} "
        f"(run_test_migrations={config.run_test_migrations})"
    )

    create_database_if_needed(config.database_url)
    conn = connect(config.database_url)
    try:
        begin(conn)
        try:
            runner = MigrationRunner(conn, config.run_test_migrations)
            history_table_ready = runner.history.ensure_schema()
            records = runner.history.load_all()
            files = discover_migrations(config.migrations_dir)

            if not records:
                mode = RunMode.BOOTSTRAP
                outcomes = runner.run_bootstrap(files)
            else:
                mode = RunMode.INCREMENTAL
                outcomes = runner.run_incremental(files, records)
        except BaseException:
            rollback(conn)
            raise

        commit(conn)
    finally:
        conn.close()

    report = RunReport(
        mode=mode,
        database_url=config.database_url,
        migrations_dir=config.migrations_dir,
        run_test_migrations=config.run_test_migrations,
        started_at=started_at,
        finished_at=utc_timestamp(),
        outcomes=outcomes,
        history_table_ready=history_table_ready,
        committed=True,
    )

    logger.info(
        f"Migrations committed ({mode.value}): {len(report.applied)} applied, "
        f"{len(report.skipped)} skipped, {len(report.failed)} failed"
    )
    return report


def _index_by_name(records: list[MigrationRecord]) -> dict[str, MigrationRecord]:
    # The history holds at most one record per name; if a hand-edited table
    # breaks that, the oldest record wins
    by_name: dict[str, MigrationRecord] = {}
    for record in records:
        if record.name in by_name:
            logger.warning(
                f"Duplicate history records for migration {record.name}; "
                f"using record {by_name[record.name].id}"
            )
            continue
        by_name[record.name] = record
    return by_name
