"""
Data types shared by the migration engine.

Key components:
- MigrationFile: A migration script discovered on disk for this run
- MigrationRecord: A row of the persisted `migrations` history table
- RunMode: BOOTSTRAP (empty history) or INCREMENTAL
- OutcomeStatus / MigrationOutcome: What happened to each discovered file
- RunReport: Everything a caller needs to know about one run

MigrationFile and MigrationRecord are reconciled by `name` (the file name).
A MigrationFile lives for one run only; a MigrationRecord is created the
first time its file is applied and afterwards only its `ran` flag changes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from ..utils.time import parse_history_timestamp


@dataclass
class MigrationFile:
    """
    A migration script found in the migrations directory.

    Attributes:
        name: File name, used as the migration's identity (e.g. "0001_init.sql")
        path: Full path to the file
        ran: Set to True only after the file was executed successfully in this run
    """

    name: str
    path: Path
    ran: bool = False

    @classmethod
    def from_path(cls, path: Path) -> "MigrationFile":
        return cls(name=path.name, path=path)


@dataclass(frozen=True)
class MigrationRecord:
    """
    A persisted row of the `migrations` history table.

    Attributes:
        id: Surrogate key assigned by SQLite (AUTOINCREMENT)
        name: Migration file name, unique across the table
        path: Path of the file when it was first recorded
        ran: Whether the migration has been executed
        timestamp: Raw CURRENT_TIMESTAMP value of record creation (UTC)
    """

    id: int
    name: str
    path: str
    ran: bool
    timestamp: str | None = None

    @property
    def created_at(self) -> datetime | None:
        """Record creation time as a timezone-aware UTC datetime."""
        return parse_history_timestamp(self.timestamp)


class RunMode(str, Enum):
    """Execution path chosen once per run from the state of the history table."""

    BOOTSTRAP = "bootstrap"
    INCREMENTAL = "incremental"


class OutcomeStatus(str, Enum):
    """What happened to one migration file during a run."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class MigrationOutcome:
    """
    Result of processing one discovered migration file.

    Attributes:
        name: Migration file name
        path: Migration file path
        status: APPLIED, SKIPPED or FAILED
        reason: Why it was skipped or why it failed (None when applied)
        record_id: History record id after the run (None if no record exists)
    """

    name: str
    path: Path
    status: OutcomeStatus
    reason: str | None = None
    record_id: int | None = None

    @property
    def applied(self) -> bool:
        return self.status is OutcomeStatus.APPLIED

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": str(self.path),
            "status": self.status.value,
            "reason": self.reason,
            "record_id": self.record_id,
        }


@dataclass
class RunReport:
    """
    Summary of one migration run.

    `committed` is True once the run's transaction has been committed. A
    report is only ever returned for committed runs; fatal errors raise
    instead (see exceptions.py).

    Attributes:
        mode: BOOTSTRAP or INCREMENTAL
        database_url: Database the run targeted
        migrations_dir: Directory that was scanned
        run_test_migrations: Test-mode flag the run used
        started_at: ISO 8601 UTC timestamp when the run started
        finished_at: ISO 8601 UTC timestamp when the run finished
        outcomes: One outcome per discovered file, in execution order
        history_table_ready: False if ensuring the history table failed (non-fatal)
        committed: Whether the transaction was committed
    """

    mode: RunMode
    database_url: str
    migrations_dir: str
    run_test_migrations: bool
    started_at: str
    finished_at: str | None = None
    outcomes: list[MigrationOutcome] = field(default_factory=list)
    history_table_ready: bool = True
    committed: bool = False

    def _with_status(self, status: OutcomeStatus) -> list[MigrationOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def applied(self) -> list[MigrationOutcome]:
        return self._with_status(OutcomeStatus.APPLIED)

    @property
    def skipped(self) -> list[MigrationOutcome]:
        return self._with_status(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> list[MigrationOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def attempted_count(self) -> int:
        """Number of files that were executed (applied or failed)."""
        return len(self.applied) + len(self.failed)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "database_url": self.database_url,
            "migrations_dir": self.migrations_dir,
            "run_test_migrations": self.run_test_migrations,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "committed": self.committed,
            "history_table_ready": self.history_table_ready,
            "applied_count": len(self.applied),
            "skipped_count": len(self.skipped),
            "failed_count": len(self.failed),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
