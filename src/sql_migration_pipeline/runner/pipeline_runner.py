"""Pipeline runner: drives stages in order, fail-fast, no rollback."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sql_migration_pipeline.audit.log import AuditLog
from sql_migration_pipeline.core.exceptions import AuditWriteError
from sql_migration_pipeline.core.resilience.cancellation import CancellationToken
from sql_migration_pipeline.core.utils import safe_call
from sql_migration_pipeline.pipeline.definition import PipelineDefinition
from sql_migration_pipeline.runner.hooks import NoOpHooks, PipelineHooks
from sql_migration_pipeline.runner.result import PipelineRun, RunSnapshot, RunStatus, StageResult
from sql_migration_pipeline.runner.stage_executor import StageExecutor

logger = logging.getLogger(__name__)


def new_run_id(now: datetime | None = None) -> str:
    """Return a sortable, unique run identifier such as ``20260101T120000-1a2b3c4d``."""
    now = now or datetime.now(timezone.utc)
    return f"{now.strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:8]}"


class PipelineRunner:
    """Executes a pipeline definition from first stage to last.

    The run stops at the first stage that fails for good. Completed stages
    are never undone; what a failed stage may have left behind is reported
    in the run summary instead. Cancellation is checked before each stage.

    Args:
        definition: The pipeline to run.
        audit_log: Where attempt records are appended.
        hooks: Lifecycle hooks (default: ``NoOpHooks``).
        clock: Injectable monotonic clock for testing.
        now_fn: Injectable UTC wall clock for testing.
        sleep_func: Injectable sleep for testing backoff delays.
        cancel_token: Cooperative cancellation flag.
        run_id: Run identifier; defaults to the audit log's.
        work_dir: Local scratch directory handed to actions.
    """

    def __init__(
        self,
        definition: PipelineDefinition,
        audit_log: AuditLog,
        hooks: PipelineHooks | None = None,
        clock: Callable[[], float] | None = None,
        now_fn: Callable[[], datetime] | None = None,
        sleep_func: Callable[[float], Any] | None = None,
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
        work_dir: Path | None = None,
    ) -> None:
        self._definition = definition
        self._audit_log = audit_log
        self._hooks: PipelineHooks = hooks or NoOpHooks()
        self._now = now_fn or (lambda: datetime.now(timezone.utc))
        self._cancel_token = cancel_token
        self._executor = StageExecutor(
            audit_log,
            hooks=self._hooks,
            clock=clock or time.monotonic,
            now_fn=self._now,
            cancel_token=cancel_token,
            sleep_func=sleep_func,
            work_dir=work_dir,
        )
        self._lock = threading.Lock()
        self._current_stage: str | None = None
        self._run = PipelineRun(
            run_id=run_id or audit_log.run_id,
            pipeline_name=definition.name,
            stages=tuple(definition.stage_names),
        )

    @property
    def definition(self) -> PipelineDefinition:
        return self._definition

    @property
    def run_id(self) -> str:
        return self._run.run_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        completed_stages: Iterable[str] | None = None,
        artifacts: Mapping[str, str] | None = None,
    ) -> PipelineRun:
        """Execute the pipeline. Blocks until the run reaches a terminal state.

        Args:
            completed_stages: Stage names finished by an earlier run with the
                same definition; they are skipped without attempts.
            artifacts: Artifact references recorded for those stages.

        Returns:
            The finished ``PipelineRun``.

        Raises:
            RuntimeError: If this runner was already used.
        """
        with self._lock:
            if self._run.status is not RunStatus.PENDING:
                raise RuntimeError(f"Run {self._run.run_id} was already started")
            self._run.status = RunStatus.RUNNING
            self._run.overall_start = self._now()
            self._run.artifacts.update(artifacts or {})

        run = self._run
        skip = set(completed_stages or ())
        self._call_hook("before_pipeline", self._definition, run.run_id)

        total = len(self._definition)
        for index, stage in enumerate(self._definition.stages):
            if stage.name in skip:
                logger.info("Skipping stage '%s', completed by an earlier run", stage.name)
                with self._lock:
                    run.skipped_stages.append(stage.name)
                continue

            if self._cancel_token is not None and self._cancel_token.cancelled:
                logger.warning("Cancellation requested; not starting stage '%s'", stage.name)
                self._fail(stage.name, f"cancelled before start: {self._cancel_token.reason}")
                break

            with self._lock:
                self._current_stage = stage.name
            self._call_hook("before_stage", stage, index, total)

            try:
                result = self._executor.run(stage, run.run_id, dict(run.artifacts))
            except AuditWriteError as exc:
                logger.error("Audit log write failed during stage '%s': %s", stage.name, exc)
                self._fail(stage.name, f"audit write failed: {exc}")
                break

            self._record(result)
            self._audit_log.sync_mirror()

            if result.success:
                self._call_hook("after_stage", stage, index, total, result)
                continue

            detail = result.last_error
            if self._cancel_token is not None and self._cancel_token.cancelled:
                detail = f"{detail} (cancelled: {self._cancel_token.reason})"
            self._fail(stage.name, detail)
            self._call_hook("on_stage_failure", stage, index, result)
            break

        with self._lock:
            if run.status is RunStatus.RUNNING:
                run.status = RunStatus.SUCCEEDED
            run.overall_end = self._now()
            self._current_stage = None

        self._audit_log.sync_mirror()
        self._call_hook("after_pipeline", self._definition, run)
        return run

    def snapshot(self) -> RunSnapshot:
        """Return a consistent read-only view of the run; safe from any thread."""
        with self._lock:
            run = self._run
            return RunSnapshot(
                run_id=run.run_id,
                status=run.status,
                current_stage=self._current_stage,
                completed_stages=tuple(run.completed_stages),
                failed_stage=run.failed_stage,
                attempts_made=len(run.attempts),
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _record(self, result: StageResult) -> None:
        with self._lock:
            self._run.stage_results.append(result)
            self._run.attempts.extend(result.attempts)
            if result.success and result.produced_artifact_ref:
                self._run.artifacts[result.stage_name] = result.produced_artifact_ref

    def _fail(self, stage_name: str, detail: str | None) -> None:
        with self._lock:
            self._run.status = RunStatus.FAILED
            self._run.failed_stage = stage_name
            self._run.error_detail = detail

    def _call_hook(self, method: str, *args: Any) -> None:
        """Invoke a hook method defensively; errors are logged, not raised."""
        safe_call(
            lambda: getattr(self._hooks, method)(*args),
            logger,
            "Hook %s.%s raised an exception",
            type(self._hooks).__name__,
            method,
        )
