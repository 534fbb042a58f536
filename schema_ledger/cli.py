"""
CLI entrypoint for Schema Ledger.

Provides a dual-mode command-line interface with:
- Human-friendly output: Rich spinners, tables and panels
- Agent-friendly output: Structured JSON for automation
- Quiet mode: Tab-separated minimal output for shell scripts

Commands:
    migrate: Apply pending SQL migrations and record them in the history
    status: Show which migrations are applied, pending or missing (read-only)
    makemigrations: Generate CREATE TABLE statements from models.py files

Exit codes:
    0: Success - no migration failed
    1: Configuration error (invalid YAML, bad environment value)
    2: Database error (cannot open, read history, or commit)
    3: Partial failure (some migrations failed, others applied)
    4: Complete failure (every attempted migration failed)
    5: I/O error (migrations directory or model sources unreadable)

Examples:
    # Apply migrations using DATABASE_URL from the environment
    schema-ledger migrate

    # Explicit settings, test migrations included
    schema-ledger migrate --database-url sqlite://app.db --run-test-migrations

    # Agent-friendly JSON output
    schema-ledger status --config ledger.yaml --format json

    # Draft a migration from model declarations
    schema-ledger makemigrations --source src --output migrations/0003_models.sql
"""

from importlib.metadata import PackageNotFoundError
from pathlib import Path

import typer
from rich.traceback import install as install_rich_traceback

from schema_ledger.config.loader import load_config
from schema_ledger.config.schema import MigratorConfig
from schema_ledger.engine.runner import run_migrations
from schema_ledger.engine.status import MigrationState, collect_status, pending_count
from schema_ledger.exceptions import (
    ConfigurationError,
    DatabaseError,
    DiscoveryError,
    SchemaGenerationError,
)
from schema_ledger.generator import generate_schema
from schema_ledger.utils.console import (
    console,
    error,
    info,
    output_mode,
    print_banner,
    print_final_summary,
    print_outcome_table,
    print_status_table,
    spinner,
    success,
    warning,
)
from schema_ledger.utils.logging import setup_logging

# Install Rich tracebacks for better error messages
install_rich_traceback(show_locals=False)


# Exit codes
EXIT_SUCCESS = 0  # No migration failed
EXIT_CONFIG_ERROR = 1  # Config loading or validation failed
EXIT_DB_ERROR = 2  # Database open, history read or commit failed
EXIT_PARTIAL_FAILURE = 3  # Some migrations failed
EXIT_COMPLETE_FAILURE = 4  # All attempted migrations failed
EXIT_IO_ERROR = 5  # Migrations directory or sources unreadable

# Create Typer app
app = typer.Typer(
    name="schema-ledger",
    help="Apply SQL migrations to SQLite exactly once, with a history table",
    add_completion=False,
)


def _configure_output(format: str, quiet: bool, verbose: bool) -> None:
    if format not in ("text", "json"):
        error(f"Invalid format: {format}. Must be 'text' or 'json'")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    output_mode.format = format
    output_mode.quiet = quiet

    # Suppress JSON logs in human mode (unless verbose=True)
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human() and not verbose)


def _load_settings(
    config: Path | None,
    database_url: str | None,
    migrations_dir: Path | None,
    run_test_migrations: bool | None,
    verbose: bool,
) -> MigratorConfig:
    overrides = {
        "database_url": database_url,
        "migrations_dir": str(migrations_dir) if migrations_dir is not None else None,
        "run_test_migrations": run_test_migrations,
    }

    try:
        with spinner("Loading configuration..."):
            settings = load_config(config, overrides=overrides)
    except ConfigurationError as e:
        error(str(e))
        output_mode.flush_json()
        if verbose:
            import traceback

            traceback.print_exc()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    return settings


@app.command()
def migrate(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="SQLite database URL or path (overrides $DATABASE_URL)",
    ),
    migrations_dir: Path | None = typer.Option(
        None,
        "--migrations-dir",
        "-m",
        help="Directory containing migration files (overrides $MIGRATIONS_DIR)",
    ),
    run_test_migrations: bool | None = typer.Option(
        None,
        "--run-test-migrations/--skip-test-migrations",
        help="Include migrations whose name contains 'test' (overrides $RUN_TEST_MIGRATIONS)",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output (tab-separated values)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
):
    """
    Apply every pending migration in one transaction.

    Files in the migrations directory run in file-name order. Each file that
    has not run yet is executed and recorded in the `migrations` history
    table. A failing file is rolled back on its own and reported; the
    others are still committed.

    Exit codes:
      0: No migration failed
      1: Configuration error
      2: Database error (nothing was committed)
      3: Partial failure (some migrations failed)
      4: Complete failure (every attempted migration failed)
      5: Migrations directory unreadable (nothing was committed)

    Examples:
      schema-ledger migrate --database-url sqlite://app.db

      schema-ledger migrate --config ledger.yaml --format json
    """
    _configure_output(format, quiet, verbose)
    print_banner(_read_version())

    settings = _load_settings(
        config, database_url, migrations_dir, run_test_migrations, verbose
    )
    info(f"Database: {settings.database_url}")

    try:
        with spinner("Applying migrations..."):
            report = run_migrations(settings)
    except DiscoveryError as e:
        error(str(e))
        output_mode.flush_json()
        raise typer.Exit(EXIT_IO_ERROR)
    except DatabaseError as e:
        error(f"Database error, no changes were committed: {e}")
        output_mode.flush_json()
        if verbose:
            import traceback

            traceback.print_exc()
        raise typer.Exit(EXIT_DB_ERROR)

    if not report.history_table_ready:
        warning("Could not create the migrations history table")

    print_outcome_table(report.outcomes)

    if report.failed:
        for outcome in report.failed:
            warning(f"{outcome.name}: {outcome.reason}")
    elif report.applied:
        success(f"Applied {len(report.applied)} migrations")
    else:
        success("Database is up to date")

    print_final_summary(report)

    if report.failed and not report.applied:
        raise typer.Exit(EXIT_COMPLETE_FAILURE)
    if report.failed:
        raise typer.Exit(EXIT_PARTIAL_FAILURE)
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def status(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="SQLite database URL or path (overrides $DATABASE_URL)",
    ),
    migrations_dir: Path | None = typer.Option(
        None,
        "--migrations-dir",
        "-m",
        help="Directory containing migration files (overrides $MIGRATIONS_DIR)",
    ),
    run_test_migrations: bool | None = typer.Option(
        None,
        "--run-test-migrations/--skip-test-migrations",
        help="Evaluate test migrations as if test mode were on or off",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output (tab-separated values)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
):
    """
    Show the state of every migration without changing anything.

    States:
      applied         recorded and ran
      pending         will run on the next migrate
      pending (test)  test migration, runs only with --run-test-migrations
      missing         recorded in the history but the file is gone

    The database and history table are never created by this command.
    """
    _configure_output(format, quiet, verbose)

    settings = _load_settings(
        config, database_url, migrations_dir, run_test_migrations, verbose
    )

    try:
        entries = collect_status(settings)
    except DiscoveryError as e:
        error(str(e))
        output_mode.flush_json()
        raise typer.Exit(EXIT_IO_ERROR)
    except DatabaseError as e:
        error(f"Database error: {e}")
        output_mode.flush_json()
        raise typer.Exit(EXIT_DB_ERROR)

    if output_mode.is_agent():
        output_mode.add_json("pending_count", pending_count(entries))
    print_status_table(entries)

    if output_mode.is_human() and not output_mode.quiet:
        pending = pending_count(entries)
        missing = sum(1 for e in entries if e.state is MigrationState.MISSING)
        if missing:
            warning(f"{missing} recorded migrations have no file")
        if pending:
            info(f"{pending} migrations pending")
        else:
            success("Database is up to date")

    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def makemigrations(
    source: Path = typer.Option(
        Path("src"),
        "--source",
        "-s",
        help="Directory searched recursively for models.py files",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the statements to this file instead of stdout",
        dir_okay=False,
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (SQL) or 'json' (machine-readable)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
):
    """
    Generate CREATE TABLE statements from model classes.

    Every top-level class with annotated fields in a models.py file becomes
    one table. Review the SQL and save it as a migration file.

    Examples:
      schema-ledger makemigrations --source src > migrations/0003_models.sql

      schema-ledger makemigrations --source src --output migrations/0003_models.sql
    """
    _configure_output(format, False, verbose)

    try:
        statements = generate_schema(source)
    except SchemaGenerationError as e:
        error(str(e))
        output_mode.flush_json()
        raise typer.Exit(EXIT_IO_ERROR)

    sql = "\n\n".join(statements) + "\n" if statements else ""

    if output is not None:
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(sql, encoding="utf-8")
        except OSError as e:
            error(f"Failed to write {output}: {e}")
            output_mode.flush_json()
            raise typer.Exit(EXIT_IO_ERROR)

    if output_mode.is_agent():
        output_mode.add_json("statements", statements)
        output_mode.add_json("output", str(output) if output is not None else None)
        output_mode.flush_json()
        raise typer.Exit(EXIT_SUCCESS)

    if not statements:
        warning(f"No models found under {source}")
    elif output is not None:
        success(f"Wrote {len(statements)} statements to {output}")
    else:
        typer.echo(sql, nl=False)

    raise typer.Exit(EXIT_SUCCESS)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
):
    """
    Schema Ledger - SQL migrations for SQLite, applied exactly once.

    Settings come from CLI flags, a YAML file (--config), or the
    DATABASE_URL, MIGRATIONS_DIR and RUN_TEST_MIGRATIONS environment
    variables, in that order of precedence.

    Use 'schema-ledger COMMAND --help' for detailed command documentation.
    """
    if version:
        console.print(f"[bold cyan]schema-ledger[/bold cyan] version {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Commands:")
        console.print("  migrate         Apply pending migrations")
        console.print("  status          Show applied, pending and missing migrations")
        console.print("  makemigrations  Generate CREATE TABLE statements from models")


def _read_version() -> str:
    """Read version from package metadata (pyproject.toml)."""
    try:
        from importlib.metadata import version

        return version("schema-ledger")
    except PackageNotFoundError:
        # Fallback if package metadata is not available
        return "0.1.0"


if __name__ == "__main__":
    app()
