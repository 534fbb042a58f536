"""
Configuration schema models for Schema Ledger.

This module defines the Pydantic model that every engine entry point takes.
The engine never reads process environment itself: the loader resolves
YAML, environment variables and CLI overrides into one MigratorConfig.

Models:
    MigratorConfig: Database URL, migrations directory and test-mode flag

Example YAML (ledger.yaml):
    migrations:
      database_url: "sqlite://data/app.db"
      migrations_dir: "./migrations"
      run_test_migrations: false
"""

from pydantic import BaseModel, field_validator

from .constants import DEFAULT_MIGRATIONS_DIR


class MigratorConfig(BaseModel):
    """
    Validated configuration for one migration run.

    Attributes:
        database_url: SQLite URL or path (e.g. "sqlite://app.db", "app.db", ":memory:")
        migrations_dir: Directory scanned (non-recursively) for migration files
        run_test_migrations: When True, pending migrations whose name contains
            "test" are executed too
    """

    database_url: str
    migrations_dir: str = DEFAULT_MIGRATIONS_DIR
    run_test_migrations: bool = False

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database_url is non-empty."""
        if not v or v.isspace():
            raise ValueError("database_url cannot be empty")
        return v.strip()

    @field_validator("migrations_dir")
    @classmethod
    def validate_migrations_dir(cls, v: str) -> str:
        """Validate migrations_dir is non-empty."""
        if not v or v.isspace():
            raise ValueError("migrations_dir cannot be empty")
        return v
