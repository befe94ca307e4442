"""Pre-built retry policies.

These presets are instances, not factories. ``RetryConfig`` is frozen, so
derive a new instance with :func:`dataclasses.replace` to change one.
"""

from sql_migration_pipeline.core.config.base import BackoffStrategy
from sql_migration_pipeline.core.config.retry import RetryConfig


class RetryPolicies:
    """Pre-built retry policies for the built-in stage kinds.

    Example:
        >>> from sql_migration_pipeline.core.config import RetryPolicies
        >>> RetryPolicies.TRANSFER.max_attempts
        4
    """

    # Single attempt, no retries.
    NO_RETRY: RetryConfig = RetryConfig(max_attempts=1)

    # Default policy: 3 attempts, 5s initial delay, 2x backoff.
    DEFAULT: RetryConfig = RetryConfig()

    # Blob transfers: cheap to repeat, fail on transient network errors.
    TRANSFER: RetryConfig = RetryConfig(
        max_attempts=4,
        initial_delay_seconds=10.0,
        max_delay_seconds=120.0,
    )

    # Restore/export/import: few attempts, fixed long pause between them.
    LONG_RUNNING: RetryConfig = RetryConfig(
        max_attempts=2,
        initial_delay_seconds=60.0,
        max_delay_seconds=60.0,
        strategy=BackoffStrategy.CONSTANT,
    )
