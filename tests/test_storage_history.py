"""
Tests for storage/history.py module - the `migrations` history table.

Tests cover:
- Table creation with the fixed column layout, idempotency
- load_all() ordering and error path
- insert() / mark_ran() return values and parameterization
- Writes stay inside the caller's transaction
"""

import sqlite3

import pytest

from schema_ledger.exceptions import HistoryReadError, HistoryWriteError
from schema_ledger.storage.db import MEMORY_DATABASE, begin, connect, rollback
from schema_ledger.storage.history import HistoryStore

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def conn():
    connection = connect(MEMORY_DATABASE)
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    history = HistoryStore(conn)
    history.ensure_schema()
    return history


# ============================================================================
# Schema Tests
# ============================================================================


def test_ensure_schema_creates_table(conn):
    store = HistoryStore(conn)
    assert store.table_exists() is False

    assert store.ensure_schema() is True

    assert store.table_exists() is True


def test_ensure_schema_columns(store, conn):
    columns = [row["name"] for row in conn.execute("PRAGMA table_info(migrations)")]
    assert columns == ["id", "name", "path", "ran", "timestamp"]


def test_ensure_schema_is_idempotent(store, conn):
    store.insert("0001_init.sql", "migrations/0001_init.sql", True)

    assert store.ensure_schema() is True

    assert len(store.load_all()) == 1


def test_ensure_schema_failure_is_reported_not_raised(conn):
    """An index already named `migrations` makes creation fail softly."""
    conn.execute("CREATE TABLE other (id INTEGER)")
    conn.execute("CREATE INDEX migrations ON other (id)")
    store = HistoryStore(conn)

    assert store.ensure_schema() is False


# ============================================================================
# Read Tests
# ============================================================================


def test_load_all_empty(store):
    assert store.load_all() == []


def test_load_all_ordered_by_id(store):
    store.insert("b.sql", "migrations/b.sql", True)
    store.insert("a.sql", "migrations/a.sql", False)

    records = store.load_all()

    assert [r.name for r in records] == ["b.sql", "a.sql"]
    assert [r.id for r in records] == [1, 2]
    assert [r.ran for r in records] == [True, False]


def test_load_all_returns_bools_and_paths(store):
    store.insert("0001_init.sql", "migrations/0001_init.sql", True)

    [record] = store.load_all()

    assert record.ran is True
    assert record.path == "migrations/0001_init.sql"


def test_record_timestamp_is_parseable(store):
    """CURRENT_TIMESTAMP values parse into aware datetimes."""
    store.insert("0001_init.sql", "migrations/0001_init.sql", True)

    [record] = store.load_all()

    assert record.timestamp is not None
    assert record.created_at is not None
    assert record.created_at.tzinfo is not None


def test_load_all_without_table_raises(conn):
    store = HistoryStore(conn)
    with pytest.raises(HistoryReadError, match="Could not get migrations history"):
        store.load_all()


# ============================================================================
# Write Tests
# ============================================================================


class TestInsert:
    """Test HistoryStore.insert()."""

    def test_returns_affected_rows(self, store):
        assert store.insert("0001_init.sql", "migrations/0001_init.sql", True) == 1

    def test_last_insert_id(self, store):
        store.insert("0001_init.sql", "migrations/0001_init.sql", True)
        store.insert("0002_users.sql", "migrations/0002_users.sql", True)
        assert store.last_insert_id() == 2

    def test_name_with_quotes_is_stored_verbatim(self, store):
        name = "0003_o'brien\"; DROP TABLE migrations;--.sql"
        store.insert(name, f"migrations/{name}", True)

        assert store.table_exists() is True
        assert store.load_all()[0].name == name

    def test_failure_raises_history_write_error(self, conn):
        store = HistoryStore(conn)
        with pytest.raises(HistoryWriteError) as exc_info:
            store.insert("0001_init.sql", "migrations/0001_init.sql", True)
        assert exc_info.value.migration_name == "0001_init.sql"


class TestMarkRan:
    """Test HistoryStore.mark_ran()."""

    def test_updates_existing_record(self, store):
        store.insert("0002_test_seed.sql", "migrations/0002_test_seed.sql", False)

        assert store.mark_ran(1) == 1
        assert store.load_all()[0].ran is True

    def test_unknown_id_affects_nothing(self, store):
        assert store.mark_ran(42) == 0

    def test_only_ran_changes(self, store):
        store.insert("0002_test_seed.sql", "migrations/0002_test_seed.sql", False)
        [before] = store.load_all()

        store.mark_ran(before.id)

        [after] = store.load_all()
        assert (after.id, after.name, after.path, after.timestamp) == (
            before.id,
            before.name,
            before.path,
            before.timestamp,
        )

    def test_failure_raises_history_write_error(self, conn):
        store = HistoryStore(conn)
        with pytest.raises(HistoryWriteError):
            store.mark_ran(1)


def test_writes_follow_caller_transaction(store, conn):
    """HistoryStore never commits: a rollback discards its writes."""
    begin(conn)
    store.insert("0001_init.sql", "migrations/0001_init.sql", True)
    rollback(conn)

    assert store.load_all() == []


def test_store_works_on_file_database(tmp_path):
    db_path = tmp_path / "app.db"
    connection = connect(str(db_path))
    store = HistoryStore(connection)
    store.ensure_schema()
    store.insert("0001_init.sql", "migrations/0001_init.sql", True)
    connection.close()

    with sqlite3.connect(db_path) as check:
        assert check.execute("SELECT name FROM migrations").fetchall() == [
            ("0001_init.sql",)
        ]
    check.close()
