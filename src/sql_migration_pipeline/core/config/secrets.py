"""Secrets management configuration models."""

from dataclasses import dataclass

from sql_migration_pipeline.core.config.base import SecretsProvider


@dataclass
class SecretsConfig:
    """Configuration for resolving ``secret://`` references."""

    provider: SecretsProvider = SecretsProvider.ENV
    """Default provider when only ``env`` references are used (default: env)"""

    keyvault_name: str | None = None
    """Key vault name (required for keyvault provider)"""

    vault_url: str | None = None
    """HashiCorp Vault URL (required for vault provider)"""

    vault_token: str | None = None
    """Vault authentication token (optional, can use env var VAULT_TOKEN)"""

    vault_mount_point: str = "secret"
    """Vault KV v2 mount point (default: secret)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.provider == SecretsProvider.VAULT and not self.vault_url:
            raise ValueError("vault_url is required when provider is vault")

        if self.provider == SecretsProvider.KEYVAULT and not self.keyvault_name:
            raise ValueError("keyvault_name is required when provider is keyvault")
