"""Retry configuration models."""

from dataclasses import dataclass, field

from sql_migration_pipeline.core.config.base import BackoffStrategy


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for stage retry behavior.

    ``max_attempts`` counts the first try, so ``max_attempts=1`` means no
    retries at all.
    """

    max_attempts: int = 3
    """Maximum number of attempts including the first (default: 3)"""

    initial_delay_seconds: float = 5.0
    """Delay before the first retry in seconds (default: 5.0)"""

    max_delay_seconds: float = 300.0
    """Upper bound for any single delay in seconds (default: 300.0)"""

    backoff_multiplier: float = 2.0
    """Multiplier applied per retry for exponential backoff (default: 2.0)"""

    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    """Constant or exponential backoff (default: exponential)"""

    retry_on_exceptions: list[str] = field(default_factory=lambda: ["Exception"])
    """Exception class names that may be retried (default: ['Exception'])"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must not be negative")
        if self.max_delay_seconds < self.initial_delay_seconds:
            raise ValueError("max_delay_seconds must be >= initial_delay_seconds")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")
