"""
Rich console utilities for dual-mode CLI output.

Provides terminal output for humans and structured JSON for automation.
All output functions adapt to the global output_mode setting.

Human Mode (--format text):
    - Rich spinners, colored tables and panels

Agent Mode (--format json):
    - One JSON document on stdout per command
    - No ANSI codes or spinners

Quiet Mode (--quiet):
    - Tab-separated values, no decorations

Examples:
    >>> from schema_ledger.utils.console import output_mode, spinner, success
    >>> output_mode.format = "text"
    >>> with spinner("Applying migrations..."):
    ...     report = run_migrations(config)
    >>> success("Migrations committed")
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from schema_ledger.engine.models import MigrationOutcome, RunReport
    from schema_ledger.engine.status import StatusEntry


class OutputMode:
    """
    Output mode configuration for dual-mode CLI.

    Attributes:
        format: Output format - "text" (human) or "json" (agent)
        quiet: If True, print tab-separated values only
        _json_buffer: Internal buffer for JSON output in agent mode
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        if format_type not in ["text", "json"]:
            raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """Add key-value pair to JSON buffer (flushed by flush_json())."""
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """
        Output buffered JSON to stdout and clear buffer.

        Only outputs in agent mode. In human mode, this is a no-op.
        """
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()


# Global output mode instance (set by CLI flags)
output_mode = OutputMode()

# Global Rich console instances for human mode
console = Console()  # stdout
console_err = Console(stderr=True)  # stderr

_STATUS_STYLES = {
    "applied": "green",
    "skipped": "yellow",
    "failed": "red",
    "pending": "cyan",
    "pending (test)": "yellow",
    "missing": "red",
}


@contextmanager
def spinner(message: str):
    """
    Show a spinner during an operation (human mode only, silent otherwise).

    Args:
        message: Status message to display
    """
    if output_mode.is_human() and not output_mode.quiet:
        with console.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield None


def success(message: str) -> None:
    """
    Print a success message.

    Human mode: Green checkmark with message
    Agent mode: Buffer to JSON
    """
    if output_mode.is_human():
        if not output_mode.quiet:
            console.print(f"[green]✓[/green] {message}")
    elif output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)


def error(message: str) -> None:
    """
    Print an error message.

    Human mode: Red X with message to stderr (also in quiet mode)
    Agent mode: Buffer to JSON
    """
    if output_mode.is_human():
        console_err.print(f"[red]✗[/red] {message}", style="red")
    elif output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)


def warning(message: str) -> None:
    """
    Print a warning message.

    Human mode: Yellow warning symbol with message
    Agent mode: Appended to the JSON "warnings" list
    """
    if output_mode.is_human():
        if not output_mode.quiet:
            console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")
    elif output_mode.is_agent():
        warnings = output_mode._json_buffer.setdefault("warnings", [])
        warnings.append(message)


def info(message: str) -> None:
    """Print an info message (human mode only)."""
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[blue]ℹ[/blue] {message}")


def print_banner(version: str) -> None:
    """Print the startup banner (human mode only)."""
    if not output_mode.is_human() or output_mode.quiet:
        return

    console.print(f"[bold cyan]Schema Ledger[/bold cyan] v{version}")


def _styled(value: str) -> str:
    style = _STATUS_STYLES.get(value)
    return f"[{style}]{value}[/{style}]" if style else value


def print_outcome_table(outcomes: list[MigrationOutcome]) -> None:
    """
    Print one row per processed migration.

    Human mode: Rich table with colored status
    Agent mode: Buffer outcomes as JSON array
    Quiet mode: name<TAB>status lines
    """
    if output_mode.is_agent():
        output_mode.add_json("outcomes", [o.to_dict() for o in outcomes])
        return

    if output_mode.quiet:
        for outcome in outcomes:
            print(f"{outcome.name}\t{outcome.status.value}")
        return

    if not outcomes:
        console.print("[dim]No migration files found[/dim]")
        return

    table = Table(title="Migrations", box=box.ROUNDED)
    table.add_column("Migration", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Record", justify="right")
    table.add_column("Detail", overflow="fold")

    for outcome in outcomes:
        table.add_row(
            outcome.name,
            _styled(outcome.status.value),
            str(outcome.record_id) if outcome.record_id is not None else "-",
            outcome.reason or "",
        )

    console.print(table)


def print_status_table(entries: list[StatusEntry]) -> None:
    """
    Print the state of every migration (status command).

    Human mode: Rich table
    Agent mode: Buffer entries as JSON array and flush
    Quiet mode: name<TAB>state lines
    """
    if output_mode.is_agent():
        output_mode.add_json("migrations", [e.to_dict() for e in entries])
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for entry in entries:
            print(f"{entry.name}\t{entry.state.value}")
        return

    table = Table(title="Migration Status", box=box.ROUNDED)
    table.add_column("Migration", style="cyan", no_wrap=True)
    table.add_column("State", justify="center")
    table.add_column("Record", justify="right")
    table.add_column("Recorded At")

    for entry in entries:
        table.add_row(
            entry.name,
            _styled(entry.state.value),
            str(entry.record_id) if entry.record_id is not None else "-",
            entry.recorded_at or "",
        )

    console.print(table)


def print_final_summary(report: RunReport) -> None:
    """
    Print final summary of a migration run.

    Human mode: Rich panel (green if nothing failed, yellow for partial
        failure, red if every attempted migration failed)
    Agent mode: Flush all buffered JSON including the report
    Quiet mode: mode<TAB>applied<TAB>skipped<TAB>failed
    """
    applied = len(report.applied)
    skipped = len(report.skipped)
    failed = len(report.failed)

    if output_mode.is_agent():
        output_mode.add_json("report", report.to_dict())
        output_mode.flush_json()
        return

    if output_mode.quiet:
        print(f"{report.mode.value}\t{applied}\t{skipped}\t{failed}")
        return

    summary_text = f"""
[bold]Mode:[/bold] {report.mode.value}
[bold]Database:[/bold] {report.database_url}
[bold]Migrations:[/bold] {report.migrations_dir}
[bold]Test migrations:[/bold] {"on" if report.run_test_migrations else "off"}
[bold]Result:[/bold] {applied} applied, {skipped} skipped, {failed} failed
"""

    if failed == 0:
        border_style = "green"
        title = "[bold green]✓ Migrations Committed[/bold green]"
    elif applied > 0:
        border_style = "yellow"
        title = "[bold yellow]⚠ Committed with Failed Migrations[/bold yellow]"
    else:
        border_style = "red"
        title = "[bold red]✗ All Attempted Migrations Failed[/bold red]"

    panel = Panel(
        summary_text.strip(),
        title=title,
        border_style=border_style,
        box=box.ROUNDED,
    )

    console.print(panel)
