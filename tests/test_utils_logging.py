"""
Tests for utils.logging module - structured JSON logging.
"""

import json
import logging
import sys
from pathlib import Path

import pytest
from freezegun import freeze_time

from schema_ledger.utils.logging import (
    JSONFormatter,
    log_with_context,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(message="Applied migration", context=None, exc_info=None):
    record = logging.LogRecord(
        name="schema_ledger.engine.runner",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=None,
        exc_info=exc_info,
    )
    if context is not None:
        record.context = context
    return record


# ============================================================================
# JSONFormatter Tests
# ============================================================================


class TestJSONFormatter:
    """Test JSONFormatter output."""

    @freeze_time("2025-11-02 08:30:45")
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(make_record()))

        assert entry == {
            "timestamp": "2025-11-02T08:30:45Z",
            "level": "INFO",
            "component": "schema_ledger.engine.runner",
            "message": "Applied migration",
        }

    def test_context_included(self):
        record = make_record(context={"migration": "0001_init.sql", "statements": 2})

        entry = json.loads(JSONFormatter().format(record))

        assert entry["context"] == {"migration": "0001_init.sql", "statements": 2}

    def test_non_json_values_are_stringified(self):
        record = make_record(context={"path": Path("migrations") / "0001_init.sql"})

        entry = json.loads(JSONFormatter().format(record))

        assert entry["context"]["path"] == str(Path("migrations") / "0001_init.sql")

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record(exc_info=sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in entry["exception"]


# ============================================================================
# setup_logging() Tests
# ============================================================================


class TestSetupLogging:
    """Test setup_logging() level selection and handler setup."""

    @pytest.mark.parametrize(
        ("verbose", "quiet_logs", "expected"),
        [
            (False, False, logging.INFO),
            (True, False, logging.DEBUG),
            (False, True, logging.WARNING),
            (True, True, logging.DEBUG),
        ],
    )
    def test_levels(self, restore_root_logger, verbose, quiet_logs, expected):
        setup_logging(verbose=verbose, quiet_logs=quiet_logs)
        assert restore_root_logger.level == expected

    def test_single_json_handler_on_stderr(self, restore_root_logger):
        setup_logging()
        setup_logging()

        [handler] = restore_root_logger.handlers
        assert isinstance(handler.formatter, JSONFormatter)
        assert handler.stream is sys.stderr


# ============================================================================
# log_with_context() Tests
# ============================================================================


def test_log_with_context_attaches_context(caplog):
    logger = logging.getLogger("schema_ledger.test")

    with caplog.at_level(logging.ERROR):
        log_with_context(
            logger,
            logging.ERROR,
            "Could not run migration 0002_bad.sql",
            context={"migration": "0002_bad.sql"},
        )

    [record] = caplog.records
    assert record.levelno == logging.ERROR
    assert record.context == {"migration": "0002_bad.sql"}


def test_log_with_context_without_context(caplog):
    logger = logging.getLogger("schema_ledger.test")

    with caplog.at_level(logging.INFO):
        log_with_context(logger, logging.INFO, "plain")

    [record] = caplog.records
    assert not hasattr(record, "context")
