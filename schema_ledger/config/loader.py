"""
Configuration loader for Schema Ledger.

This module resolves the settings of a migration run from three sources and
validates the merged result with the MigratorConfig Pydantic model.

Precedence (highest first):
    1. Explicit overrides (CLI flags)
    2. YAML configuration file (a `migrations:` section or top-level keys)
    3. Environment variables (DATABASE_URL, MIGRATIONS_DIR, RUN_TEST_MIGRATIONS)
    4. Model defaults

Functions:
    load_config: Main entrypoint returning a validated MigratorConfig
    settings_from_env: Read the supported environment variables
    parse_bool_env: Strict parser for boolean environment values
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from schema_ledger.exceptions import ConfigFileNotFoundError, ConfigValidationError

from .constants import (
    ENV_DATABASE_URL,
    ENV_MIGRATIONS_DIR,
    ENV_RUN_TEST_MIGRATIONS,
    FALSE_VALUES,
    TRUE_VALUES,
)
from .schema import MigratorConfig

# Key of the optional section holding the settings inside a larger YAML file
CONFIG_SECTION = "migrations"


def load_config(
    config_path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> MigratorConfig:
    """
    Build a validated MigratorConfig from YAML, environment and overrides.

    Args:
        config_path: Optional path to a YAML file. If None, only environment
            variables and overrides are used.
        overrides: Values that win over everything else. Keys whose value is
            None are ignored so unset CLI flags don't mask other sources.
        environ: Environment mapping (defaults to os.environ). Tests pass a
            plain dict here instead of patching the process environment.

    Returns:
        MigratorConfig ready to pass to engine.runner.run_migrations()

    Raises:
        ConfigFileNotFoundError: If config_path is given but doesn't exist
        ConfigValidationError: If YAML is invalid, empty, not a mapping, an
            environment value can't be parsed, or validation fails

    Example:
        >>> config = load_config("ledger.yaml", overrides={"run_test_migrations": True})
        >>> config.run_test_migrations
        True
    """
    merged: dict[str, Any] = settings_from_env(os.environ if environ is None else environ)

    if config_path is not None:
        merged.update(_load_yaml_settings(Path(config_path)))

    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return MigratorConfig.model_validate(merged)
    except ValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        source = f" in {config_path}" if config_path is not None else ""
        raise ConfigValidationError(
            f"Configuration validation failed{source}:\n" + "\n".join(error_messages)
        ) from e


def settings_from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """
    Collect the settings present in an environment mapping.

    Only variables that are set are returned, so absent ones fall through
    to model defaults.

    Raises:
        ConfigValidationError: If RUN_TEST_MIGRATIONS is not a boolean spelling
    """
    settings: dict[str, Any] = {}

    if ENV_DATABASE_URL in environ:
        settings["database_url"] = environ[ENV_DATABASE_URL]

    if ENV_MIGRATIONS_DIR in environ:
        settings["migrations_dir"] = environ[ENV_MIGRATIONS_DIR]

    if ENV_RUN_TEST_MIGRATIONS in environ:
        settings["run_test_migrations"] = parse_bool_env(
            environ[ENV_RUN_TEST_MIGRATIONS], ENV_RUN_TEST_MIGRATIONS
        )

    return settings


def parse_bool_env(value: str, name: str = "value") -> bool:
    """
    Parse a boolean environment variable.

    Accepts 1/true/yes/on and 0/false/no/off/"" (case-insensitive,
    surrounding whitespace ignored).

    Raises:
        ConfigValidationError: For any other spelling
    """
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigValidationError(
        f"Environment variable ${name} must be a boolean "
        f"(one of {', '.join(sorted((TRUE_VALUES | FALSE_VALUES) - {''}))}), got: {value!r}"
    )


def _load_yaml_settings(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}"
        ) from e

    if raw_config is None:
        raise ConfigValidationError(f"Configuration file is empty: {config_path}")

    if not isinstance(raw_config, dict):
        raise ConfigValidationError(
            f"Configuration file must contain a mapping: {config_path}"
        )

    section = raw_config.get(CONFIG_SECTION, raw_config)
    if not isinstance(section, dict):
        raise ConfigValidationError(
            f"'{CONFIG_SECTION}' section must be a mapping in {config_path}"
        )

    return dict(section)
