"""Resolve ``secret://PROVIDER/KEY`` references in the migration config.

Only credential fields are scanned. References are resolved once, at
startup, so that a missing secret fails the run before any stage executes.

Examples::

    staging { password: "secret://env/STAGING_SQL_PASSWORD" }
    target  { password: "secret://keyvault/target-sql-admin" }
    target  { password: "secret://vault/migrations/target:password" }
"""

from __future__ import annotations

import dataclasses
import logging
import re

from sql_migration_pipeline.core.commands import CommandRunner
from sql_migration_pipeline.core.config.migration import MigrationConfig
from sql_migration_pipeline.core.config.secrets import SecretsConfig
from sql_migration_pipeline.core.exceptions import ConfigurationError
from sql_migration_pipeline.core.secrets.base import SecretResolutionStatus, SecretsReference
from sql_migration_pipeline.core.secrets.providers import (
    EnvSecretsProvider,
    KeyVaultSecretsProvider,
    VaultSecretsProvider,
)
from sql_migration_pipeline.core.secrets.resolver import SecretsResolver

logger = logging.getLogger(__name__)

SECRET_PATTERN = re.compile(r"^secret://([^/]+)/(.+)$")
"""Regex matching ``secret://PROVIDER/KEY`` references."""

SECRET_FIELDS: tuple[tuple[str, str], ...] = (
    ("staging", "password"),
    ("target", "password"),
)


def parse_secret_reference(value: str) -> SecretsReference | None:
    """Parse a ``secret://PROVIDER/KEY`` string into a reference.

    Returns:
        A :class:`SecretsReference` if the value matches, or ``None``.
    """
    match = SECRET_PATTERN.match(value)
    if match is None:
        return None
    return SecretsReference(provider=match.group(1), key=match.group(2))


def build_secrets_resolver(
    secrets: SecretsConfig | None,
    runner: CommandRunner | None = None,
    az_executable: str = "az",
) -> SecretsResolver:
    """Create a resolver with every provider the configuration enables.

    The ``env`` provider is always registered; ``keyvault`` and ``vault`` are
    registered when their connection settings are present.
    """
    resolver = SecretsResolver(EnvSecretsProvider())
    if secrets is None:
        return resolver
    if secrets.keyvault_name:
        resolver.register(KeyVaultSecretsProvider(secrets.keyvault_name, runner, az_executable))
    if secrets.vault_url:
        resolver.register(
            VaultSecretsProvider(secrets.vault_url, secrets.vault_token, secrets.vault_mount_point)
        )
    return resolver


def resolve_secret_value(value: str, resolver: SecretsResolver) -> str:
    """Resolve *value* if it is a secret reference, else return it unchanged.

    Raises:
        ConfigurationError: If the reference cannot be resolved.
    """
    ref = parse_secret_reference(value)
    if ref is None:
        return value
    result = resolver.resolve(ref)
    if result.status != SecretResolutionStatus.SUCCESS or result.value is None:
        raise ConfigurationError(
            f"Failed to resolve '{value}': {result.error or result.status.value}"
        )
    logger.debug("Resolved secret reference: %s/%s", ref.provider, ref.key)
    return result.value


def resolve_secret_fields(config: MigrationConfig, resolver: SecretsResolver) -> MigrationConfig:
    """Return a copy of *config* with all credential references resolved.

    Raises:
        ConfigurationError: If any reference cannot be resolved.
    """
    replacements: dict[str, object] = {}
    for section_name, field_name in SECRET_FIELDS:
        section = getattr(config, section_name)
        resolved = resolve_secret_value(getattr(section, field_name), resolver)
        replacements[section_name] = dataclasses.replace(section, **{field_name: resolved})
    return dataclasses.replace(config, **replacements)
