"""
UTC timestamp utilities for Schema Ledger.

All timestamps produced by the application are in UTC with explicit
timezone markers. History rows are stamped by SQLite's CURRENT_TIMESTAMP,
which is UTC but carries no marker; parse_history_timestamp() bridges the two.

This module provides:
- utc_now(): Current time as timezone-aware datetime
- utc_timestamp(): ISO 8601 timestamp string with 'Z' suffix
- parse_history_timestamp(): Parse a SQLite CURRENT_TIMESTAMP value
"""

from datetime import UTC, datetime

SQLITE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    Returns:
        datetime: Current UTC time with tzinfo=UTC

    Note:
        NEVER use datetime.now() without timezone parameter.
        NEVER use datetime.utcnow() (deprecated, returns naive datetime).
    """
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """
    Return ISO 8601 timestamp string with 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SSZ

    Example:
        >>> utc_timestamp()
        '2025-11-02T08:30:45Z'
    """
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_history_timestamp(value: str | None) -> datetime | None:
    """
    Parse a timestamp stored in the migrations history table.

    SQLite's CURRENT_TIMESTAMP yields 'YYYY-MM-DD HH:MM:SS' in UTC.
    ISO 8601 strings with a 'Z' suffix are accepted too, in case rows
    were written by hand.

    Args:
        value: Raw column value (may be None for hand-inserted rows)

    Returns:
        Timezone-aware UTC datetime, or None if value is None

    Raises:
        ValueError: If value is not in a recognised format

    Examples:
        >>> parse_history_timestamp("2025-11-02 08:30:45").isoformat()
        '2025-11-02T08:30:45+00:00'
        >>> parse_history_timestamp(None) is None
        True
    """
    if value is None:
        return None

    try:
        return datetime.strptime(value, SQLITE_TIMESTAMP_FORMAT).replace(tzinfo=UTC)
    except ValueError:
        pass

    if value.endswith("Z"):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid history timestamp: {value}") from e

    raise ValueError(f"Invalid history timestamp: {value}")
