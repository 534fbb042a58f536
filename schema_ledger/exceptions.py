"""
Custom exceptions for Schema Ledger.

This module provides a hierarchy of exceptions that enable type-safe error
handling throughout the application. All exceptions inherit from the base
SchemaLedgerError for consistent catching.

Exception Hierarchy:
    SchemaLedgerError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   └── ConfigValidationError
    ├── DatabaseError
    │   ├── DatabaseConnectionError
    │   ├── TransactionError
    │   ├── HistoryReadError
    │   └── HistoryWriteError
    ├── DiscoveryError
    ├── MigrationExecutionError
    └── SchemaGenerationError

Fatal vs isolated errors:
    DatabaseConnectionError, TransactionError, HistoryReadError and
    DiscoveryError abort a run. MigrationExecutionError and HistoryWriteError
    are caught per migration file and reported as a FAILED outcome.

Usage:
    from schema_ledger.exceptions import DiscoveryError

    try:
        report = run_migrations(config)
    except DiscoveryError as e:
        logger.error(f"Cannot read migrations: {e}")
        sys.exit(5)
"""


class SchemaLedgerError(Exception):
    """
    Base exception for all Schema Ledger errors.

    All custom exceptions in this application should inherit from this class.
    This enables catching all application-specific errors with a single except clause.
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(SchemaLedgerError):
    """
    Base class for configuration-related errors.

    Should be caught and result in exit code 1 (configuration error).
    """

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """
    Configuration file does not exist at the specified path.

    Example:
        raise ConfigFileNotFoundError("/path/to/ledger.yaml")
    """

    pass


class ConfigValidationError(ConfigurationError):
    """
    Configuration is invalid (YAML syntax, schema validation or bad env value).

    Example:
        raise ConfigValidationError("Field 'database_url' cannot be empty")
    """

    pass


# ============================================================================
# Database Errors
# ============================================================================


class DatabaseError(SchemaLedgerError):
    """
    Base class for database-related errors.

    Should be caught and result in exit code 2 (database error).
    """

    pass


class DatabaseConnectionError(DatabaseError):
    """
    Database could not be created or opened.

    Example:
        raise DatabaseConnectionError("Cannot open sqlite://app.db: permission denied")
    """

    pass


class TransactionError(DatabaseError):
    """
    Transaction lifecycle failed (BEGIN, COMMIT).

    When raised from a commit, nothing from the run has been persisted.
    """

    pass


class HistoryReadError(DatabaseError):
    """
    The migrations history table could not be read.

    Fatal: the runner cannot choose between bootstrap and incremental mode
    without a truthful history.
    """

    pass


class HistoryWriteError(DatabaseError):
    """
    A history record could not be inserted or updated.

    Attributes:
        migration_name: Name of the migration whose bookkeeping failed (if known)
    """

    def __init__(self, message: str, migration_name: str | None = None):
        super().__init__(message)
        self.migration_name = migration_name


# ============================================================================
# Migration Errors
# ============================================================================


class DiscoveryError(SchemaLedgerError):
    """
    The migrations directory could not be listed.

    This is an I/O error and aborts the whole run.

    Example:
        raise DiscoveryError("Migrations directory not found: ./migrations")
    """

    pass


class MigrationExecutionError(SchemaLedgerError):
    """
    A single migration file could not be read or executed.

    Isolated per file: the runner converts it into a FAILED outcome and
    moves on to the next file.

    Attributes:
        migration_name: File name of the failing migration
        path: Filesystem path of the failing migration
    """

    def __init__(self, message: str, migration_name: str, path: str):
        super().__init__(message)
        self.migration_name = migration_name
        self.path = path


# ============================================================================
# Schema Generator Errors
# ============================================================================


class SchemaGenerationError(SchemaLedgerError):
    """
    A model source file could not be read or parsed by makemigrations.

    Example:
        raise SchemaGenerationError("Invalid Python syntax in src/app/models.py")
    """

    pass
