"""
Structured JSON logging for Schema Ledger.

Provides standardized logging with:
- JSON formatted output to stderr
- UTC timestamps with timezone info
- Structured context fields (migration name, path, error)

All logs use Python's standard logging module with custom formatting.
Log level defaults to INFO, use setup_logging(verbose=True) for DEBUG.

Examples:
    >>> from schema_ledger.utils.logging import setup_logging
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger("schema_ledger.engine.runner")
    >>> logger.info("Migration applied", extra={"context": {"migration": "0001_init.sql"}})

Only stderr is used: stdout is reserved for user output (tables, JSON, SQL).
"""

import json
import logging
import sys
from typing import Any

from schema_ledger.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs logs as JSON with structured fields.

    Each log record is formatted as a JSON object with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level (INFO, WARNING, ERROR, DEBUG)
    - component: Module/component name (from logger name)
    - message: Human-readable log message
    - context: Additional structured data (from 'context' in extra)
    - exception: Formatted traceback, if exc_info was passed
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # default=str keeps Path objects and datetimes from breaking a log line
        return json.dumps(log_entry, default=str)


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Configure structured JSON logging for the application.

    Sets up:
    - JSON formatter for structured output
    - stderr output (stdout reserved for user-facing content)
    - Log level: DEBUG if verbose, WARNING if quiet_logs, INFO otherwise

    Args:
        verbose: If True, set log level to DEBUG. Takes precedence over quiet_logs.
        quiet_logs: If True, only warnings and errors are emitted. The CLI uses
            this in human mode so JSON lines don't interleave with Rich output.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet_logs:
        level = logging.WARNING
    else:
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers (prevents duplicate logs)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())

    root_logger.addHandler(handler)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
) -> None:
    """
    Log a message with structured context.

    Equivalent to logger.log(level, message, extra={'context': {...}})

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, logging.WARNING, etc.)
        message: Human-readable log message
        context: Optional dict with additional structured data

    Example:
        >>> log_with_context(
        ...     logger,
        ...     logging.ERROR,
        ...     "Migration failed",
        ...     context={"migration": "0003_users.sql", "error": "no such table: user"},
        ... )
    """
    extra = {"context": context} if context is not None else None
    logger.log(level, message, extra=extra)
