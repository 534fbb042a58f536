"""
Entry point for running Schema Ledger as a module.

Enables execution via:
    python -m schema_ledger [command] [options]

This is equivalent to running the installed CLI:
    schema-ledger [command] [options]

Examples:
    python -m schema_ledger --help
    python -m schema_ledger migrate --database-url sqlite://app.db
    python -m schema_ledger status --format json
"""

from schema_ledger.cli import app

if __name__ == "__main__":
    app()
