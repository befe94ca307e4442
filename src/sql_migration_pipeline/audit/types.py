"""Audit summary types."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from sql_migration_pipeline.pipeline.stage import AttemptRecord


@dataclass(frozen=True)
class AuditSummary:
    """Aggregate view over the attempt records of one run.

    Args:
        per_stage_duration_ms: Summed attempt durations per stage, in
            first-attempt order.
        attempts_per_stage: Number of attempts per stage.
        total_duration_ms: Sum of all attempt durations.
        success_count: Number of successful attempts.
        failure_count: Number of failed attempts.
    """

    per_stage_duration_ms: dict[str, int] = field(default_factory=dict)
    attempts_per_stage: dict[str, int] = field(default_factory=dict)
    total_duration_ms: int = 0
    success_count: int = 0
    failure_count: int = 0

    @property
    def total_attempts(self) -> int:
        return self.success_count + self.failure_count

    @classmethod
    def from_records(cls, records: Iterable[AttemptRecord]) -> AuditSummary:
        """Aggregate *records* into a summary."""
        durations: dict[str, int] = {}
        attempts: dict[str, int] = {}
        successes = 0
        failures = 0
        for record in records:
            durations[record.stage_name] = durations.get(record.stage_name, 0) + record.duration_ms
            attempts[record.stage_name] = attempts.get(record.stage_name, 0) + 1
            if record.success:
                successes += 1
            else:
                failures += 1
        return cls(
            per_stage_duration_ms=durations,
            attempts_per_stage=attempts,
            total_duration_ms=sum(durations.values()),
            success_count=successes,
            failure_count=failures,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "per_stage_duration_ms": dict(self.per_stage_duration_ms),
            "attempts_per_stage": dict(self.attempts_per_stage),
            "total_duration_ms": self.total_duration_ms,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
        }
