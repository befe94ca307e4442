"""Secrets resolver routing references to providers."""

from __future__ import annotations

from sql_migration_pipeline.core.secrets.base import (
    SecretResolutionResult,
    SecretResolutionStatus,
    SecretsProvider,
    SecretsReference,
)


class SecretsResolver:
    """Dispatches each reference to the provider registered under its name."""

    def __init__(self, *providers: SecretsProvider) -> None:
        self._providers: dict[str, SecretsProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: SecretsProvider) -> None:
        """Register a secrets provider, replacing one with the same name."""
        self._providers[provider.provider_name] = provider

    @property
    def provider_names(self) -> list[str]:
        """Return the registered provider names."""
        return sorted(self._providers)

    def resolve(self, reference: SecretsReference) -> SecretResolutionResult:
        """Resolve a secret using the appropriate provider."""
        provider = self._providers.get(reference.provider)
        if provider is None:
            return SecretResolutionResult(
                reference=reference,
                status=SecretResolutionStatus.ERROR,
                error=f"Unknown provider: {reference.provider}",
            )
        return provider.resolve(reference)
