"""Run summary persisted and printed at the end of every run."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sql_migration_pipeline.audit.types import AuditSummary
from sql_migration_pipeline.core.utils import atomic_write_json
from sql_migration_pipeline.pipeline.definition import PipelineDefinition
from sql_migration_pipeline.runner.result import PipelineRun

SUMMARY_FILE_NAME = "run_summary.json"


@dataclass(frozen=True)
class RunSummary:
    """What an operator needs to know after a run, successful or not.

    For a failed run this names the first failing stage, the attempts made
    at it and its last error verbatim, and lists what may need manual
    cleanup: partial state of the failing stage and artifacts that
    completed stages left in place.
    """

    run_id: str
    pipeline_name: str
    status: str
    started_at: str | None
    ended_at: str | None
    duration_ms: int
    failed_stage: str | None = None
    attempts_at_failed_stage: int = 0
    error_detail: str | None = None
    stage_durations_ms: dict[str, int] = field(default_factory=dict)
    attempts_per_stage: dict[str, int] = field(default_factory=dict)
    skipped_stages: list[str] = field(default_factory=list)
    artifacts: dict[str, str] = field(default_factory=dict)
    cleanup_required: list[str] = field(default_factory=list)

    @classmethod
    def from_run(
        cls,
        run: PipelineRun,
        definition: PipelineDefinition,
        audit_summary: AuditSummary | None = None,
    ) -> RunSummary:
        """Build the summary of a finished run.

        Args:
            run: The finished run.
            definition: The definition it ran, for partial-state notes.
            audit_summary: Aggregates from the audit log; computed from the
                run's own attempts when omitted.
        """
        audit_summary = audit_summary or run.summary()
        cleanup: list[str] = []
        if run.failed_stage is not None:
            stage = definition.get_stage(run.failed_stage)
            if stage is not None and stage.action.leaves_behind and run.attempts_for(stage.name):
                cleanup.append(f"{stage.name}: {stage.action.leaves_behind}")
            for stage_name, ref in run.artifacts.items():
                cleanup.append(f"{stage_name}: produced {ref}, left in place")

        return cls(
            run_id=run.run_id,
            pipeline_name=run.pipeline_name,
            status=run.status.value,
            started_at=run.overall_start.isoformat() if run.overall_start else None,
            ended_at=run.overall_end.isoformat() if run.overall_end else None,
            duration_ms=run.duration_ms,
            failed_stage=run.failed_stage,
            attempts_at_failed_stage=len(run.attempts_for(run.failed_stage)) if run.failed_stage else 0,
            error_detail=run.error_detail,
            stage_durations_ms=dict(audit_summary.per_stage_duration_ms),
            attempts_per_stage=dict(audit_summary.attempts_per_stage),
            skipped_stages=list(run.skipped_stages),
            artifacts=dict(run.artifacts),
            cleanup_required=cleanup,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "run_id": self.run_id,
            "pipeline_name": self.pipeline_name,
            "status": self.status,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_ms": self.duration_ms,
            "failed_stage": self.failed_stage,
            "attempts_at_failed_stage": self.attempts_at_failed_stage,
            "error_detail": self.error_detail,
            "stage_durations_ms": dict(self.stage_durations_ms),
            "attempts_per_stage": dict(self.attempts_per_stage),
            "skipped_stages": list(self.skipped_stages),
            "artifacts": dict(self.artifacts),
            "cleanup_required": list(self.cleanup_required),
        }


def write_summary(summary: RunSummary, path: Path) -> Path:
    """Write *summary* as JSON via write-then-rename and return *path*."""
    atomic_write_json(path, summary.to_dict())
    return path


def format_summary(summary: RunSummary) -> str:
    """Render *summary* as the text block printed at the end of a run."""
    lines = [
        f"Pipeline:  {summary.pipeline_name}",
        f"Run:       {summary.run_id}",
        f"Status:    {summary.status.upper()}",
        f"Duration:  {summary.duration_ms / 1000:.1f}s",
    ]
    if summary.stage_durations_ms:
        lines.append("Stages:")
        for name, duration_ms in summary.stage_durations_ms.items():
            attempts = summary.attempts_per_stage.get(name, 0)
            lines.append(f"  {name:<24} {duration_ms / 1000:>9.1f}s  {attempts} attempt(s)")
    for name in summary.skipped_stages:
        lines.append(f"  {name:<24} skipped (completed earlier)")
    if summary.failed_stage is not None:
        lines.append(f"Failed at: {summary.failed_stage} after {summary.attempts_at_failed_stage} attempt(s)")
        lines.append(f"Error:     {summary.error_detail}")
    if summary.cleanup_required:
        lines.append("Cleanup required:")
        lines.extend(f"  - {note}" for note in summary.cleanup_required)
    return "\n".join(lines)
