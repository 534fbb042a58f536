"""
Tests for storage/db.py module.

Tests cover:
- Database URL resolution (sqlite:// forms, bare paths, :memory:)
- Database file creation and idempotency
- Connection settings (autocommit mode, foreign keys, row factory)
- Explicit transaction helpers (begin, commit, rollback)
- Savepoint isolation
- Statement splitting and transaction-control detection

All tests use temporary or in-memory databases.
"""

import sqlite3

import pytest

from schema_ledger.exceptions import DatabaseConnectionError, TransactionError
from schema_ledger.storage.db import (
    MEMORY_DATABASE,
    begin,
    commit,
    connect,
    create_database_if_needed,
    is_transaction_control,
    leading_keyword,
    resolve_database_path,
    rollback,
    savepoint,
    split_statements,
)

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def conn():
    """In-memory connection with a `items` table, closed after the test."""
    connection = connect(MEMORY_DATABASE)
    connection.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, label TEXT)")
    yield connection
    connection.close()


def count_items(connection) -> int:
    return connection.execute("SELECT COUNT(*) FROM items").fetchone()[0]


# ============================================================================
# URL Resolution Tests
# ============================================================================


class TestResolveDatabasePath:
    """Test resolve_database_path() URL handling."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("sqlite://data/app.db", "data/app.db"),
            ("sqlite:///data/app.db", "/data/app.db"),
            ("sqlite:////var/lib/app.db", "/var/lib/app.db"),
            ("sqlite://app.db", "app.db"),
            ("sqlite:app.db", "app.db"),
            ("sqlite://app.db?mode=rwc", "app.db"),
            ("./data/app.db", "./data/app.db"),
            ("app.db", "app.db"),
            (":memory:", ":memory:"),
            ("sqlite::memory:", ":memory:"),
            ("  sqlite://app.db  ", "app.db"),
        ],
    )
    def test_accepted_forms(self, url, expected):
        assert resolve_database_path(url) == expected

    def test_rejects_other_schemes(self):
        with pytest.raises(DatabaseConnectionError, match="Unsupported database scheme 'postgres'"):
            resolve_database_path("postgres://localhost/app")

    def test_three_and_four_slashes_resolve_to_absolute_path(self, tmp_path):
        db_path = tmp_path / "abs.db"

        assert resolve_database_path(f"sqlite://{db_path}") == str(db_path)
        assert resolve_database_path(f"sqlite:///{db_path}") == str(db_path)

    def test_absolute_url_creates_database_at_absolute_path(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        target = tmp_path / "var" / "app.db"

        create_database_if_needed(f"sqlite://{target}")

        assert target.is_file()
        assert not (tmp_path / str(target).lstrip("/")).exists()

    def test_rejects_empty_path(self):
        with pytest.raises(DatabaseConnectionError, match="No database path"):
            resolve_database_path("sqlite://")


# ============================================================================
# Database Creation Tests
# ============================================================================


def test_create_database_creates_file(tmp_path):
    db_path = tmp_path / "app.db"

    created = create_database_if_needed(f"sqlite:///{db_path}")

    assert created is True
    assert db_path.is_file()


def test_create_database_creates_parent_directories(tmp_path):
    db_path = tmp_path / "nested" / "deeper" / "app.db"

    create_database_if_needed(str(db_path))

    assert db_path.exists()


def test_create_database_is_idempotent(tmp_path):
    """Second call is a no-op and leaves the existing file alone."""
    db_path = tmp_path / "app.db"
    create_database_if_needed(str(db_path))
    with sqlite3.connect(db_path) as existing:
        existing.execute("CREATE TABLE keep_me (id INTEGER)")
    existing.close()

    created = create_database_if_needed(str(db_path))

    assert created is False
    with sqlite3.connect(db_path) as check:
        tables = check.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        ).fetchall()
    check.close()
    assert ("keep_me",) in tables


def test_create_database_skips_memory():
    assert create_database_if_needed(MEMORY_DATABASE) is False


# ============================================================================
# Connection Tests
# ============================================================================


def test_connect_uses_autocommit_mode(conn):
    assert conn.isolation_level is None
    assert conn.in_transaction is False


def test_connect_enables_foreign_keys(conn):
    assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1


def test_connect_returns_rows_by_name(conn):
    conn.execute("INSERT INTO items (label) VALUES ('a')")
    row = conn.execute("SELECT label FROM items").fetchone()
    assert row["label"] == "a"


def test_connect_failure_raises(tmp_path):
    missing_dir = tmp_path / "missing" / "app.db"
    with pytest.raises(DatabaseConnectionError):
        connect(str(missing_dir))


# ============================================================================
# Transaction Helper Tests
# ============================================================================


class TestTransactions:
    """Test begin(), commit() and rollback()."""

    def test_begin_opens_transaction(self, conn):
        begin(conn)
        assert conn.in_transaction is True

    def test_begin_twice_raises(self, conn):
        begin(conn)
        with pytest.raises(TransactionError, match="Could not start transaction"):
            begin(conn)

    def test_commit_persists_changes(self, tmp_path):
        db_path = tmp_path / "app.db"
        connection = connect(str(db_path))
        begin(connection)
        connection.execute("CREATE TABLE t (id INTEGER)")
        connection.execute("INSERT INTO t VALUES (1)")
        commit(connection)
        connection.close()

        with sqlite3.connect(db_path) as check:
            assert check.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 1
        check.close()

    def test_commit_without_transaction_raises(self, conn):
        with pytest.raises(TransactionError, match="Could not commit migrations"):
            commit(conn)

    def test_rollback_discards_changes(self, conn):
        begin(conn)
        conn.execute("INSERT INTO items (label) VALUES ('a')")
        rollback(conn)

        assert conn.in_transaction is False
        assert count_items(conn) == 0

    def test_rollback_without_transaction_is_noop(self, conn):
        rollback(conn)
        assert conn.in_transaction is False


# ============================================================================
# Savepoint Tests
# ============================================================================


class TestSavepoint:
    """Test savepoint() isolation inside an outer transaction."""

    def test_successful_block_is_kept(self, conn):
        begin(conn)
        with savepoint(conn, "sp_1"):
            conn.execute("INSERT INTO items (label) VALUES ('a')")

        assert conn.in_transaction is True
        assert count_items(conn) == 1

    def test_failed_block_is_undone_and_error_propagates(self, conn):
        begin(conn)
        with pytest.raises(ValueError):
            with savepoint(conn, "sp_1"):
                conn.execute("INSERT INTO items (label) VALUES ('a')")
                raise ValueError("boom")

        assert conn.in_transaction is True
        assert count_items(conn) == 0

    def test_failed_block_keeps_earlier_work(self, conn):
        begin(conn)
        with savepoint(conn, "sp_1"):
            conn.execute("INSERT INTO items (label) VALUES ('kept')")

        with pytest.raises(sqlite3.OperationalError):
            with savepoint(conn, "sp_2"):
                conn.execute("INSERT INTO items (label) VALUES ('undone')")
                conn.execute("INSERT INTO no_such_table VALUES (1)")

        commit(conn)
        labels = [row["label"] for row in conn.execute("SELECT label FROM items")]
        assert labels == ["kept"]


# ============================================================================
# Statement Parsing Tests
# ============================================================================


class TestLeadingKeyword:
    """Test leading_keyword() and is_transaction_control()."""

    def test_plain_statement(self):
        assert leading_keyword("create table a (x)") == "CREATE"

    def test_skips_comments(self):
        statement = "-- seed data\n/* v2 */\n  insert into a values (1);"
        assert leading_keyword(statement) == "INSERT"

    def test_comment_only(self):
        assert leading_keyword("-- nothing here") == ""
        assert leading_keyword("/* unterminated") == ""

    @pytest.mark.parametrize(
        "statement",
        [
            "BEGIN;",
            "begin transaction;",
            "COMMIT;",
            "END;",
            "ROLLBACK;",
            "SAVEPOINT sp;",
            "RELEASE sp;",
            "/* hidden */ commit;",
        ],
    )
    def test_transaction_control_detected(self, statement):
        assert is_transaction_control(statement) is True

    @pytest.mark.parametrize(
        "statement",
        [
            "CREATE TABLE a (x);",
            "INSERT INTO a VALUES ('COMMIT');",
            "CREATE TRIGGER t AFTER INSERT ON a BEGIN SELECT 1; END;",
        ],
    )
    def test_regular_statements_not_flagged(self, statement):
        assert is_transaction_control(statement) is False


class TestSplitStatements:
    """Test split_statements() on realistic migration scripts."""

    def test_splits_on_semicolons(self):
        script = "CREATE TABLE a (x TEXT);\nINSERT INTO a VALUES ('1');\n"
        assert split_statements(script) == [
            "CREATE TABLE a (x TEXT);",
            "INSERT INTO a VALUES ('1');",
        ]

    def test_semicolon_inside_string_literal(self):
        script = "INSERT INTO a VALUES ('1;2'); SELECT 1;"
        assert split_statements(script) == ["INSERT INTO a VALUES ('1;2');", "SELECT 1;"]

    def test_semicolon_inside_comment(self):
        script = "-- drop; nothing\nCREATE TABLE a (x);"
        assert split_statements(script) == ["-- drop; nothing\nCREATE TABLE a (x);"]

    def test_trigger_body_kept_whole(self):
        trigger = (
            "CREATE TRIGGER audit AFTER INSERT ON a BEGIN "
            "INSERT INTO log VALUES (new.x); END;"
        )
        script = f"{trigger}\nSELECT 1;"
        assert split_statements(script) == [trigger, "SELECT 1;"]

    def test_trailing_statement_without_semicolon(self):
        assert split_statements("SELECT 1;\nSELECT 2") == ["SELECT 1;", "SELECT 2"]

    def test_empty_statements_dropped(self):
        assert split_statements("SELECT 1;;\n;") == ["SELECT 1;"]

    def test_empty_script(self):
        assert split_statements("") == []
        assert split_statements("   \n\t") == []
