"""Tests for secrets base types."""

from __future__ import annotations

from sql_migration_pipeline.core.secrets.base import (
    SecretResolutionResult,
    SecretResolutionStatus,
    SecretsReference,
    SqlCredentials,
)


def test_result_repr_masks_value() -> None:
    result = SecretResolutionResult(SecretsReference("env", "PW"), SecretResolutionStatus.SUCCESS, value="hunter2")
    assert "hunter2" not in repr(result)
    assert "value=***" in repr(result)


def test_result_repr_without_value() -> None:
    result = SecretResolutionResult(SecretsReference("env", "PW"), SecretResolutionStatus.NOT_FOUND)
    assert "value=None" in repr(result)


def test_credentials_repr_masks_password() -> None:
    creds = SqlCredentials("sqladmin", "hunter2")
    assert repr(creds) == "SqlCredentials(username='sqladmin', password=***)"
    assert "hunter2" not in str(creds)


def test_status_values() -> None:
    assert SecretResolutionStatus("not_found") is SecretResolutionStatus.NOT_FOUND
