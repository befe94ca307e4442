"""Backoff between stage attempts."""

from __future__ import annotations

import random
import time
from collections.abc import Callable

from sql_migration_pipeline.core.config.base import BackoffStrategy
from sql_migration_pipeline.core.config.retry import RetryConfig
from sql_migration_pipeline.core.exceptions import MigrationError


class BackoffPolicy:
    """Decides whether and how long to wait before the next attempt.

    Args:
        config: Retry configuration specifying attempts, delays, and retryable exceptions.
        jitter_factor: Random jitter multiplier applied to each delay (0 disables jitter).
        sleep_func: Injectable sleep function for testing. Defaults to ``time.sleep``.
    """

    def __init__(
        self,
        config: RetryConfig,
        jitter_factor: float = 0.0,
        sleep_func: Callable[[float], None] | None = None,
    ) -> None:
        self._config = config
        self._jitter_factor = jitter_factor
        self._sleep = sleep_func or time.sleep

    @property
    def config(self) -> RetryConfig:
        """Return the retry configuration."""
        return self._config

    @property
    def max_attempts(self) -> int:
        """Return the attempt budget, first attempt included."""
        return self._config.max_attempts

    def calculate_delay(self, retry_index: int) -> float:
        """Calculate the delay in seconds before a retry.

        Constant backoff always waits ``initial_delay_seconds``. Exponential
        backoff waits ``min(initial * multiplier^retry_index, max)``. Jitter,
        when enabled, adds up to ``jitter_factor`` of the base delay.

        Args:
            retry_index: Zero-based retry index (0 = delay before attempt 2).

        Returns:
            Delay in seconds.
        """
        if self._config.strategy is BackoffStrategy.CONSTANT:
            base = self._config.initial_delay_seconds
        else:
            base = self._config.initial_delay_seconds * (
                self._config.backoff_multiplier ** retry_index
            )
        base = min(base, self._config.max_delay_seconds)

        if self._jitter_factor > 0:
            base += base * self._jitter_factor * random.random()

        return base

    def is_retryable(self, error: Exception) -> bool:
        """Check whether an exception allows another attempt.

        Errors of the migration taxonomy that declare ``retryable = False``
        (configuration, authentication, cancellation) are never retried.
        Everything else is matched against ``retry_on_exceptions``: a name
        without a dot matches the class or any base class ``__name__``; a
        dotted name must equal the fully-qualified ``module.class`` path.
        """
        if isinstance(error, MigrationError) and not error.retryable:
            return False

        error_type = type(error)
        qualified_name = f"{error_type.__module__}.{error_type.__name__}"

        for exc_name in self._config.retry_on_exceptions:
            if "." in exc_name:
                if exc_name == qualified_name:
                    return True
            elif any(cls.__name__ == exc_name for cls in error_type.__mro__):
                return True

        return False

    def sleep(self, delay: float) -> None:
        """Block for *delay* seconds."""
        if delay > 0:
            self._sleep(delay)
