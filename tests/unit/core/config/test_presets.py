"""Tests for pre-built retry policies."""

import dataclasses

from sql_migration_pipeline.core.config.base import BackoffStrategy
from sql_migration_pipeline.core.config.presets import RetryPolicies


class TestRetryPolicies:
    def test_no_retry(self) -> None:
        assert RetryPolicies.NO_RETRY.max_attempts == 1

    def test_default(self) -> None:
        assert RetryPolicies.DEFAULT.max_attempts == 3
        assert RetryPolicies.DEFAULT.strategy is BackoffStrategy.EXPONENTIAL

    def test_transfer(self) -> None:
        assert RetryPolicies.TRANSFER.max_attempts == 4
        assert RetryPolicies.TRANSFER.max_delay_seconds == 120.0

    def test_long_running_is_constant(self) -> None:
        policy = RetryPolicies.LONG_RUNNING
        assert policy.max_attempts == 2
        assert policy.strategy is BackoffStrategy.CONSTANT
        assert policy.initial_delay_seconds == policy.max_delay_seconds == 60.0

    def test_derive_with_replace(self) -> None:
        """Presets are shared instances; replace() leaves them untouched."""
        derived = dataclasses.replace(RetryPolicies.TRANSFER, max_attempts=8)
        assert derived.max_attempts == 8
        assert RetryPolicies.TRANSFER.max_attempts == 4
