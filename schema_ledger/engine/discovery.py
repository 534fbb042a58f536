"""
Migration discovery: list the migration scripts in a directory.

Contract:
- Non-recursive. Only regular files directly inside the directory count,
  sub-directories are ignored.
- Every regular file is a migration; there is no extension filter.
- Files are returned sorted lexicographically by file name. This order is
  the execution order, so name files with a sortable prefix
  (0001_, 0002_, ...).
"""

import logging
from pathlib import Path

from ..exceptions import DiscoveryError
from .models import MigrationFile

logger = logging.getLogger(__name__)


def discover_migrations(directory: str | Path) -> list[MigrationFile]:
    """
    Return the migration files found in a directory, in execution order.

    Args:
        directory: Migrations directory

    Returns:
        MigrationFile list sorted by name, each with ran=False

    Raises:
        DiscoveryError: If the directory doesn't exist, isn't a directory,
            or can't be listed

    Example:
        >>> [m.name for m in discover_migrations("migrations")]
        ['0001_init.sql', '0002_test_seed.sql']
    """
    folder = Path(directory)

    if not folder.exists():
        raise DiscoveryError(f"Migrations directory not found: {folder}")
    if not folder.is_dir():
        raise DiscoveryError(f"Migrations path is not a directory: {folder}")

    try:
        entries = [entry for entry in folder.iterdir() if entry.is_file()]
    except OSError as e:
        raise DiscoveryError(f"Error reading migrations directory {folder}: {e}") from e

    migrations = [MigrationFile.from_path(entry) for entry in sorted(entries, key=lambda p: p.name)]
    logger.debug(f"Discovered {len(migrations)} migration files in {folder}")
    return migrations
