"""Secret references and credential handles."""

from sql_migration_pipeline.core.secrets.base import (
    SecretResolutionResult,
    SecretResolutionStatus,
    SecretsProvider,
    SecretsReference,
    SqlCredentials,
)
from sql_migration_pipeline.core.secrets.providers import (
    EnvSecretsProvider,
    KeyVaultSecretsProvider,
    VaultSecretsProvider,
)
from sql_migration_pipeline.core.secrets.resolver import SecretsResolver

__all__ = [
    "EnvSecretsProvider",
    "KeyVaultSecretsProvider",
    "SecretResolutionResult",
    "SecretResolutionStatus",
    "SecretsProvider",
    "SecretsReference",
    "SecretsResolver",
    "SqlCredentials",
    "VaultSecretsProvider",
]
