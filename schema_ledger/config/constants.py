"""
Configuration constants for Schema Ledger.

This module contains global constants used across the application
to avoid tight coupling between modules.
"""

# Name of the history table. Its layout must stay compatible with existing
# databases, see storage.history.CREATE_HISTORY_TABLE_SQL
HISTORY_TABLE = "migrations"

# A migration whose file name contains this substring only runs in test mode
TEST_MIGRATION_MARKER = "test"

DEFAULT_MIGRATIONS_DIR = "migrations"

# Environment variables read by config.loader (lowest precedence after defaults)
ENV_DATABASE_URL = "DATABASE_URL"
ENV_MIGRATIONS_DIR = "MIGRATIONS_DIR"
ENV_RUN_TEST_MIGRATIONS = "RUN_TEST_MIGRATIONS"

# Accepted spellings for boolean environment variables
TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})
