"""Tests for SecretsResolver."""

from __future__ import annotations

from sql_migration_pipeline.core.secrets.base import SecretResolutionStatus, SecretsReference
from sql_migration_pipeline.core.secrets.providers import EnvSecretsProvider
from sql_migration_pipeline.core.secrets.resolver import SecretsResolver


class TestSecretsResolver:
    def test_dispatches_by_provider_name(self) -> None:
        resolver = SecretsResolver(EnvSecretsProvider({"PW": "x"}))
        assert resolver.resolve(SecretsReference("env", "PW")).value == "x"

    def test_unknown_provider(self) -> None:
        result = SecretsResolver().resolve(SecretsReference("keyvault", "x"))
        assert result.status == SecretResolutionStatus.ERROR
        assert result.error == "Unknown provider: keyvault"

    def test_register_replaces(self) -> None:
        resolver = SecretsResolver(EnvSecretsProvider({"PW": "old"}))
        resolver.register(EnvSecretsProvider({"PW": "new"}))
        assert resolver.provider_names == ["env"]
        assert resolver.resolve(SecretsReference("env", "PW")).value == "new"
