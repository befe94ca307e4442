"""Checkpoint and resume for interrupted or failed migrations.

A checkpoint tracks which stages completed and the artifact each one
produced, so a later run with the same definition can skip them. Partial
state inside a stage is the business of the stage's own pre-retry check.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from sql_migration_pipeline.core.exceptions import ConfigurationError
from sql_migration_pipeline.core.utils import atomic_write_json
from sql_migration_pipeline.pipeline.definition import PipelineDefinition
from sql_migration_pipeline.pipeline.stage import Stage
from sql_migration_pipeline.runner.hooks import NoOpHooks
from sql_migration_pipeline.runner.result import PipelineRun, RunStatus, StageResult

logger = logging.getLogger(__name__)

_VALID_STATUSES = frozenset({"in_progress", "completed", "failed"})


class PipelineDefinitionChangedError(ConfigurationError):
    """Raised when a checkpoint's fingerprint doesn't match the current pipeline."""

    def __init__(self, run_id: str, pipeline_name: str) -> None:
        self.run_id = run_id
        self.pipeline_name = pipeline_name
        super().__init__(
            f"Pipeline stages changed since checkpoint was saved (run_id={run_id!r}, pipeline={pipeline_name!r})"
        )


@dataclass
class CheckpointState:
    """Serialisable snapshot of run progress."""

    run_id: str
    pipeline_name: str
    pipeline_fingerprint: str
    completed_stages: list[str] = field(default_factory=list)
    artifacts: dict[str, str] = field(default_factory=dict)
    failed_stage: str | None = None
    status: str = "in_progress"
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.run_id:
            raise ValueError("run_id must not be empty")
        if not self.pipeline_name:
            raise ValueError("pipeline_name must not be empty")
        if not self.pipeline_fingerprint:
            raise ValueError("pipeline_fingerprint must not be empty")
        if self.status not in _VALID_STATUSES:
            raise ValueError(f"Invalid status {self.status!r}; must be one of {sorted(_VALID_STATUSES)}")


class CheckpointStore(Protocol):
    """Checkpoint persistence layer."""

    def save(self, state: CheckpointState) -> None:
        """Persist *state* (upsert semantics)."""
        ...

    def load(self, run_id: str, pipeline_name: str) -> CheckpointState | None:
        """Load a checkpoint, or return ``None`` if it doesn't exist."""
        ...

    def delete(self, run_id: str, pipeline_name: str) -> None:
        """Delete a checkpoint. No-op if it doesn't exist."""
        ...


class LocalCheckpointStore:
    """File-backed checkpoint store using atomic write-then-rename.

    Layout::

        {base_dir}/{pipeline_name}/{run_id}.json
    """

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir

    def path_for(self, run_id: str, pipeline_name: str) -> Path:
        return self._base_dir / pipeline_name / f"{run_id}.json"

    def save(self, state: CheckpointState) -> None:
        atomic_write_json(self.path_for(state.run_id, state.pipeline_name), asdict(state))

    def load(self, run_id: str, pipeline_name: str) -> CheckpointState | None:
        target = self.path_for(run_id, pipeline_name)
        if not target.exists():
            return None
        return CheckpointState(**json.loads(target.read_text()))

    def delete(self, run_id: str, pipeline_name: str) -> None:
        self.path_for(run_id, pipeline_name).unlink(missing_ok=True)

    def exists(self, run_id: str, pipeline_name: str) -> bool:
        return self.path_for(run_id, pipeline_name).exists()


class CheckpointHooks(NoOpHooks):
    """Pipeline hooks that persist checkpoint state after every stage.

    Designed to be composed via ``CompositeHooks`` alongside other hooks.

    Args:
        store: Where the state is saved.
        run_id: Identifier of the run.
        pipeline_fingerprint: Fingerprint of the definition being run.
        resume_from: State of the run being resumed, if any. Its completed
            stages and artifacts are carried over.
        now_func: Injectable UTC clock.
    """

    def __init__(
        self,
        store: CheckpointStore,
        run_id: str,
        pipeline_fingerprint: str,
        resume_from: CheckpointState | None = None,
        now_func: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._run_id = run_id
        self._pipeline_fingerprint = pipeline_fingerprint
        self._resume_from = resume_from
        self._now = now_func or (lambda: datetime.now(timezone.utc))
        self._state: CheckpointState | None = None

    @property
    def state(self) -> CheckpointState | None:
        return self._state

    def before_pipeline(self, definition: PipelineDefinition, run_id: str) -> None:
        now = self._now().isoformat()
        previous = self._resume_from
        self._state = CheckpointState(
            run_id=self._run_id,
            pipeline_name=definition.name,
            pipeline_fingerprint=self._pipeline_fingerprint,
            completed_stages=list(previous.completed_stages) if previous else [],
            artifacts=dict(previous.artifacts) if previous else {},
            created_at=previous.created_at if previous else now,
            updated_at=now,
        )
        self._store.save(self._state)

    def after_pipeline(self, definition: PipelineDefinition, run: PipelineRun) -> None:
        if self._state is None:
            return
        self._state.status = "completed" if run.status is RunStatus.SUCCEEDED else "failed"
        self._state.failed_stage = run.failed_stage
        self._save()

    def after_stage(self, stage: Stage, index: int, total: int, result: StageResult) -> None:
        if self._state is None:
            return
        if stage.name not in self._state.completed_stages:
            self._state.completed_stages.append(stage.name)
        if result.produced_artifact_ref:
            self._state.artifacts[stage.name] = result.produced_artifact_ref
        self._save()

    def on_stage_failure(self, stage: Stage, index: int, result: StageResult) -> None:
        if self._state is None:
            return
        self._state.failed_stage = stage.name
        self._save()

    def _save(self) -> None:
        assert self._state is not None
        self._state.updated_at = self._now().isoformat()
        self._store.save(self._state)


def load_checkpoint_for_resume(
    store: CheckpointStore,
    run_id: str,
    definition: PipelineDefinition,
) -> CheckpointState:
    """Load the checkpoint of *run_id* for a resumed run.

    Args:
        store: Checkpoint storage backend.
        run_id: Run identifier to resume.
        definition: Current pipeline definition, used for fingerprint
            validation.

    Returns:
        The saved state; its ``completed_stages`` are to be skipped.

    Raises:
        ConfigurationError: If no checkpoint exists for *run_id*.
        PipelineDefinitionChangedError: If the stage list changed since the
            checkpoint was saved.
    """
    state = store.load(run_id, definition.name)
    if state is None:
        raise ConfigurationError(f"No checkpoint found for run_id={run_id!r}, pipeline={definition.name!r}")
    if state.pipeline_fingerprint != definition.fingerprint():
        raise PipelineDefinitionChangedError(run_id, definition.name)
    if state.status == "completed":
        logger.warning("Run %s already completed; every stage will be skipped", run_id)
    return state
