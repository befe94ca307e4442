"""Built-in secrets provider implementations."""

from __future__ import annotations

import os
from typing import Any

from sql_migration_pipeline.core.commands import CommandRunner
from sql_migration_pipeline.core.exceptions import CommandError
from sql_migration_pipeline.core.secrets.base import (
    SecretResolutionResult,
    SecretResolutionStatus,
    SecretsProvider,
    SecretsReference,
)


class EnvSecretsProvider(SecretsProvider):
    """Resolve secrets from environment variables."""

    def __init__(self, environ: dict[str, str] | None = None) -> None:
        self._environ = environ

    @property
    def provider_name(self) -> str:
        return "env"

    def resolve(self, reference: SecretsReference) -> SecretResolutionResult:
        environ = self._environ if self._environ is not None else os.environ
        value = environ.get(reference.key)
        if value is None:
            return SecretResolutionResult(
                reference=reference,
                status=SecretResolutionStatus.NOT_FOUND,
                error=f"Environment variable '{reference.key}' not set",
            )
        return SecretResolutionResult(
            reference=reference,
            status=SecretResolutionStatus.SUCCESS,
            value=value,
        )


class KeyVaultSecretsProvider(SecretsProvider):
    """Resolve secrets from a cloud key vault through the cloud CLI.

    Runs ``az keyvault secret show`` with the already-authenticated CLI
    session, so no additional SDK is needed.

    Args:
        vault_name: Key vault name.
        runner: Command runner used to invoke the CLI.
        az_executable: Cloud CLI executable name.
    """

    def __init__(
        self,
        vault_name: str,
        runner: CommandRunner | None = None,
        az_executable: str = "az",
    ) -> None:
        if not vault_name:
            raise ValueError("vault_name is required")
        self._vault_name = vault_name
        self._runner = runner or CommandRunner()
        self._az = az_executable

    @property
    def provider_name(self) -> str:
        return "keyvault"

    def resolve(self, reference: SecretsReference) -> SecretResolutionResult:
        try:
            result = self._runner.run(
                [
                    self._az, "keyvault", "secret", "show",
                    "--vault-name", self._vault_name,
                    "--name", reference.key,
                    "--query", "value",
                    "--output", "tsv",
                ],
                description=f"Read secret '{reference.key}' from key vault '{self._vault_name}'",
            )
        except CommandError as exc:
            return SecretResolutionResult(
                reference=reference,
                status=SecretResolutionStatus.ERROR,
                error=str(exc),
            )

        value = result.stdout.strip()
        if not value:
            return SecretResolutionResult(
                reference=reference,
                status=SecretResolutionStatus.NOT_FOUND,
                error=f"Secret '{reference.key}' is empty in key vault '{self._vault_name}'",
            )
        return SecretResolutionResult(
            reference=reference,
            status=SecretResolutionStatus.SUCCESS,
            value=value,
        )


class VaultSecretsProvider(SecretsProvider):
    """Resolve secrets from HashiCorp Vault (KV v2 engine).

    Requires ``hvac`` to be installed. The client is created lazily
    on the first call to :meth:`resolve`.

    Key format: ``"path/to/secret"`` returns the ``"value"`` field, or
    ``"path/to/secret:field"`` returns a specific field.

    Args:
        url: Vault server URL.
        token: Vault token. Defaults to ``VAULT_TOKEN`` environment variable.
        mount_point: KV v2 mount point. Defaults to ``"secret"``.
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        mount_point: str = "secret",
    ) -> None:
        if not url:
            raise ValueError("url is required")
        self._url = url
        self._token = token or os.environ.get("VAULT_TOKEN")
        self._mount_point = mount_point
        self._client: Any = None

    @property
    def provider_name(self) -> str:
        return "vault"

    def _get_client(self) -> Any:
        if self._client is None:
            import hvac  # type: ignore[import-untyped]

            self._client = hvac.Client(url=self._url, token=self._token)
        return self._client

    def resolve(self, reference: SecretsReference) -> SecretResolutionResult:
        path, _, field = reference.key.partition(":")
        field = field or "value"
        try:
            response = self._get_client().secrets.kv.v2.read_secret_version(
                path=path, mount_point=self._mount_point
            )
        except Exception as exc:
            return SecretResolutionResult(
                reference=reference,
                status=SecretResolutionStatus.ERROR,
                error=str(exc),
            )

        value = response.get("data", {}).get("data", {}).get(field)
        if value is None:
            return SecretResolutionResult(
                reference=reference,
                status=SecretResolutionStatus.NOT_FOUND,
                error=f"Field '{field}' not found in secret '{path}'",
            )
        return SecretResolutionResult(
            reference=reference,
            status=SecretResolutionStatus.SUCCESS,
            value=str(value),
        )
