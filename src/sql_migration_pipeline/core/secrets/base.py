"""Secrets management abstractions and credential handles."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class SecretResolutionStatus(str, Enum):
    """Outcome of a secret resolution attempt."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class SecretsReference:
    """Reference to a secret in a specific provider.

    Args:
        provider: Provider name (``"env"``, ``"keyvault"`` or ``"vault"``).
        key: Secret key or path within the provider.
    """

    provider: str
    key: str


@dataclass(frozen=True)
class SecretResolutionResult:
    """Result of resolving a secret reference.

    The ``value`` field is masked in ``__repr__``.
    """

    reference: SecretsReference
    status: SecretResolutionStatus
    value: str | None = None
    error: str | None = None

    def __repr__(self) -> str:
        masked = "***" if self.value is not None else "None"
        return (
            f"SecretResolutionResult("
            f"reference={self.reference!r}, "
            f"status={self.status!r}, "
            f"value={masked}, "
            f"error={self.error!r})"
        )


@dataclass(frozen=True)
class SqlCredentials:
    """SQL login handed to the database and packaging adapters."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"SqlCredentials(username={self.username!r}, password=***)"


class SecretsProvider(ABC):
    """Base class for secrets providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique name for this provider, matched against ``secret://NAME/...``."""
        ...

    @abstractmethod
    def resolve(self, reference: SecretsReference) -> SecretResolutionResult:
        """Resolve a single secret reference."""
        ...
