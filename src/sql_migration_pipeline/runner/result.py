"""Pipeline run result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from sql_migration_pipeline.audit.types import AuditSummary
from sql_migration_pipeline.pipeline.stage import AttemptRecord


class RunStatus(str, Enum):
    """Lifecycle state of a pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED)


@dataclass(frozen=True)
class StageResult:
    """Result of executing one stage, all attempts included."""

    stage_name: str
    success: bool
    attempts: tuple[AttemptRecord, ...] = ()
    last_error: str | None = None
    produced_artifact_ref: str | None = None
    duration_ms: int = 0

    @property
    def retries(self) -> int:
        """Return the number of attempts after the first."""
        return max(len(self.attempts) - 1, 0)


@dataclass
class PipelineRun:
    """One execution of a pipeline definition.

    ``attempts`` grows monotonically; records are never removed.
    """

    run_id: str
    pipeline_name: str
    stages: tuple[str, ...]
    status: RunStatus = RunStatus.PENDING
    attempts: list[AttemptRecord] = field(default_factory=list)
    stage_results: list[StageResult] = field(default_factory=list)
    overall_start: datetime | None = None
    overall_end: datetime | None = None
    failed_stage: str | None = None
    error_detail: str | None = None
    skipped_stages: list[str] = field(default_factory=list)
    artifacts: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.SUCCEEDED

    @property
    def completed_stages(self) -> list[str]:
        """Return stages that succeeded in this run, in order."""
        return [r.stage_name for r in self.stage_results if r.success]

    @property
    def duration_ms(self) -> int:
        """Return the wall-clock duration of the run, ``0`` before it ends."""
        if self.overall_start is None or self.overall_end is None:
            return 0
        return int((self.overall_end - self.overall_start).total_seconds() * 1000)

    def attempts_for(self, stage_name: str) -> list[AttemptRecord]:
        """Return the attempt records of one stage, in attempt order."""
        return [a for a in self.attempts if a.stage_name == stage_name]

    def result_for(self, stage_name: str) -> StageResult | None:
        for result in self.stage_results:
            if result.stage_name == stage_name:
                return result
        return None

    def summary(self) -> AuditSummary:
        """Aggregate this run's attempt records."""
        return AuditSummary.from_records(self.attempts)


@dataclass(frozen=True)
class RunSnapshot:
    """Read-only view of a run in progress, safe to hand to another thread."""

    run_id: str
    status: RunStatus
    current_stage: str | None
    completed_stages: tuple[str, ...]
    failed_stage: str | None
    attempts_made: int
