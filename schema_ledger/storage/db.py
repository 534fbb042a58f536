"""
SQLite connection and transaction management for Schema Ledger.

The migration runner owns exactly one connection and one transaction per
invocation. Connections are opened in autocommit mode (isolation_level=None)
so that every transaction boundary is an explicit statement issued from here:

    BEGIN
      SAVEPOINT migration_1 ... RELEASE migration_1
      SAVEPOINT migration_2 ... ROLLBACK TO migration_2; RELEASE migration_2
    COMMIT

This matters because sqlite3's executescript() commits implicitly, which
would break the single-transaction contract. Migration scripts are instead
split with split_statements() and executed one statement at a time.

Accepted database URLs:
    sqlite://relative/app.db     -> relative/app.db
    sqlite:///abs/app.db         -> /abs/app.db
    sqlite:////abs/app.db        -> /abs/app.db
    sqlite:app.db?mode=rwc       -> app.db
    ./data/app.db                -> ./data/app.db
    :memory: / sqlite::memory:   -> in-memory database
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..exceptions import DatabaseConnectionError, TransactionError

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

_SQLITE_PREFIXES = ("sqlite://", "sqlite:")

# Statements a migration may not contain: the runner owns the transaction
TRANSACTION_CONTROL_KEYWORDS = frozenset(
    {"BEGIN", "COMMIT", "END", "ROLLBACK", "SAVEPOINT", "RELEASE"}
)


def resolve_database_path(database_url: str) -> str:
    """
    Turn a database URL into the path sqlite3.connect() expects.

    Args:
        database_url: SQLite URL or bare filesystem path

    Returns:
        Filesystem path string, or ":memory:"

    Raises:
        DatabaseConnectionError: If the URL names a non-SQLite scheme or no path

    Examples:
        >>> resolve_database_path("sqlite:///data/app.db")
        '/data/app.db'
        >>> resolve_database_path("sqlite://data/app.db")
        'data/app.db'
        >>> resolve_database_path("sqlite://app.db?mode=rwc")
        'app.db'
    """
    url = database_url.strip()

    for prefix in _SQLITE_PREFIXES:
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    else:
        if "://" in url:
            scheme = url.split("://", 1)[0]
            raise DatabaseConnectionError(
                f"Unsupported database scheme '{scheme}' in {database_url!r}: "
                f"only sqlite is supported"
            )

    # Query parameters such as ?mode=rwc are driver options, not part of the path
    url = url.split("?", 1)[0]

    # sqlite:////abs/app.db leaves "//abs/app.db" behind
    if url.startswith("//"):
        url = "/" + url.lstrip("/")

    if not url:
        raise DatabaseConnectionError(f"No database path in URL {database_url!r}")

    return url


def create_database_if_needed(database_url: str) -> bool:
    """
    Create the SQLite database file (and parent directories) if missing.

    Args:
        database_url: SQLite URL or bare filesystem path

    Returns:
        True if a new database file was created, False if it already existed
        (always False for in-memory databases)

    Raises:
        DatabaseConnectionError: If the directory or file cannot be created
    """
    db_path = resolve_database_path(database_url)
    if db_path == MEMORY_DATABASE:
        return False

    path = Path(db_path)
    if path.exists():
        logger.debug(f"Database already exists: {path}")
        return False

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Connecting creates the file; closing immediately leaves an empty database
        sqlite3.connect(path).close()
    except (OSError, sqlite3.Error) as e:
        raise DatabaseConnectionError(f"Error creating the database {path}: {e}") from e

    logger.info(f"Created database: {path}")
    return True


def connect(database_url: str) -> sqlite3.Connection:
    """
    Open an autocommit-mode connection for the migration run.

    Rows are returned as sqlite3.Row so columns can be read by name.
    Foreign key enforcement is switched on, matching how applications
    usually open their databases.

    Raises:
        DatabaseConnectionError: If the database cannot be opened
    """
    db_path = resolve_database_path(database_url)
    try:
        conn = sqlite3.connect(db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
    except sqlite3.Error as e:
        raise DatabaseConnectionError(
            f"Error connecting to database {db_path}: {e}"
        ) from e
    return conn


def begin(conn: sqlite3.Connection) -> None:
    """Start the run's transaction."""
    try:
        conn.execute("BEGIN")
    except sqlite3.Error as e:
        raise TransactionError(f"Could not start transaction: {e}") from e


def commit(conn: sqlite3.Connection) -> None:
    """
    Commit the run's transaction.

    On failure the transaction is rolled back so nothing from the run is
    persisted, then TransactionError is raised.
    """
    try:
        conn.execute("COMMIT")
    except sqlite3.Error as e:
        rollback(conn)
        raise TransactionError(f"Could not commit migrations: {e}") from e


def rollback(conn: sqlite3.Connection) -> None:
    """
    Roll back the run's transaction if one is open.

    Errors are logged, not raised: rollback is only called on paths that
    are already failing and must not mask the original error.
    """
    if not conn.in_transaction:
        return
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error as e:
        logger.error(f"Transaction rollback failed: {e}", exc_info=True)


@contextmanager
def savepoint(conn: sqlite3.Connection, name: str) -> Iterator[None]:
    """
    Run a block inside a named savepoint.

    If the block raises, everything it did is undone with ROLLBACK TO and
    the exception propagates. The enclosing transaction stays usable unless
    SQLite already aborted it (conn.in_transaction is then False and there
    is no savepoint left to roll back to).

    Args:
        conn: Connection with an open transaction
        name: Savepoint identifier (must be a valid SQL identifier)

    Example:
        >>> with savepoint(conn, "migration_1"):
        ...     conn.execute("CREATE TABLE foo (id INTEGER)")
    """
    conn.execute(f"SAVEPOINT {name}")
    try:
        yield
    except BaseException:
        if conn.in_transaction:
            conn.execute(f"ROLLBACK TO {name}")
            conn.execute(f"RELEASE {name}")
        raise
    else:
        conn.execute(f"RELEASE {name}")


def leading_keyword(statement: str) -> str:
    """
    Return the first SQL keyword of a statement, upper-cased.

    Leading `--` and `/* */` comments are skipped.

    Example:
        >>> leading_keyword("-- seed data\\n/* v2 */ insert into foo values (1);")
        'INSERT'
    """
    text = statement.lstrip()
    while text.startswith(("--", "/*")):
        if text.startswith("--"):
            newline = text.find("\n")
            text = "" if newline == -1 else text[newline + 1:].lstrip()
        else:
            end = text.find("*/")
            text = "" if end == -1 else text[end + 2:].lstrip()

    keyword = []
    for char in text:
        if not (char.isalpha() or char == "_"):
            break
        keyword.append(char)
    return "".join(keyword).upper()


def is_transaction_control(statement: str) -> bool:
    """True for statements that would end or nest the run's transaction."""
    return leading_keyword(statement) in TRANSACTION_CONTROL_KEYWORDS


def split_statements(script: str) -> list[str]:
    """
    Split a SQL script into individual statements.

    Uses sqlite3.complete_statement() so semicolons inside string literals,
    comments and trigger bodies (BEGIN ... END;) don't end a statement early.
    A trailing statement without a semicolon is kept. Empty statements are
    dropped.

    Args:
        script: Raw SQL text, possibly with several statements

    Returns:
        Statements in source order, stripped of surrounding whitespace

    Example:
        >>> split_statements("CREATE TABLE a (x TEXT); INSERT INTO a VALUES ('1;2');")
        ['CREATE TABLE a (x TEXT);', "INSERT INTO a VALUES ('1;2');"]
    """
    statements: list[str] = []
    buffer = ""

    parts = script.split(";")
    for part in parts[:-1]:
        buffer += part + ";"
        if sqlite3.complete_statement(buffer):
            statement = buffer.strip()
            if statement.rstrip(";").strip():
                statements.append(statement)
            buffer = ""

    tail = (buffer + parts[-1]).strip()
    if tail.rstrip(";").strip():
        statements.append(tail)

    return statements
