"""HOCON configuration loader using dataconf.

Any parse, type or validation failure is re-raised as
:class:`~sql_migration_pipeline.core.exceptions.ConfigurationError` so that
callers only need to handle one error type before the pipeline starts.
"""

from pathlib import Path
from typing import TypeVar, cast

import dataconf

from sql_migration_pipeline.core.config.migration import MigrationConfig
from sql_migration_pipeline.core.exceptions import ConfigurationError

T = TypeVar("T")


def load_from_file(path: str | Path, config_class: type[T] = MigrationConfig) -> T:  # type: ignore[assignment]
    """Load configuration from a HOCON file.

    Args:
        path: Path to the HOCON configuration file
        config_class: The configuration dataclass type to load into

    Returns:
        Instance of config_class populated with configuration from the file

    Raises:
        ConfigurationError: If the file is missing or does not describe a
            valid configuration.

    Example:
        >>> config = load_from_file("migration.conf")
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    try:
        return cast(T, dataconf.file(str(config_path), config_class))
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {exc}") from exc


def load_from_string(hocon_str: str, config_class: type[T] = MigrationConfig) -> T:  # type: ignore[assignment]
    """Load configuration from a HOCON string.

    Args:
        hocon_str: HOCON configuration as a string
        config_class: The configuration dataclass type to load into

    Returns:
        Instance of config_class populated with configuration from the string

    Raises:
        ConfigurationError: If the string does not describe a valid configuration.

    Example:
        >>> config = load_from_string('{ name: "sales" }')
    """
    try:
        return cast(T, dataconf.string(hocon_str, config_class))
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
