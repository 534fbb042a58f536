"""Skip policy: decide whether a migration must be executed this run."""

from ..config.constants import TEST_MIGRATION_MARKER


def is_test_migration(name: str) -> bool:
    """True if the migration name marks it as test-only."""
    return TEST_MIGRATION_MARKER in name


def should_skip(already_ran: bool, name: str, run_test_migrations: bool) -> bool:
    """
    Return True if the migration must not be executed.

    1. A migration that already ran is always skipped.
    2. In test mode every pending migration runs.
    3. Otherwise pending test migrations are skipped and the rest run.

    Examples:
        >>> should_skip(True, "0001_init.sql", True)
        True
        >>> should_skip(False, "0002_test_seed.sql", False)
        True
        >>> should_skip(False, "0002_test_seed.sql", True)
        False
    """
    if already_ran:
        return True
    if run_test_migrations:
        return False
    return is_test_migration(name)


def skip_reason(already_ran: bool, name: str) -> str:
    """Human-readable reason for a skip verdict."""
    if already_ran:
        return "already ran"
    if is_test_migration(name):
        return "test migration (test mode off)"
    return "skipped"
