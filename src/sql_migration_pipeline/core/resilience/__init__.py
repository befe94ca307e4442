"""Resilience patterns: backoff, deadlines, bounded polling, cancellation."""

from sql_migration_pipeline.core.resilience.cancellation import CancellationToken
from sql_migration_pipeline.core.resilience.deadline import call_with_deadline
from sql_migration_pipeline.core.resilience.probe import wait_until
from sql_migration_pipeline.core.resilience.retry import BackoffPolicy

__all__ = [
    "BackoffPolicy",
    "CancellationToken",
    "call_with_deadline",
    "wait_until",
]
