"""Built-in pipeline hooks: progress logging and metrics collection."""

from __future__ import annotations

import logging

from sql_migration_pipeline.core.metrics.registry import MeterRegistry
from sql_migration_pipeline.pipeline.definition import PipelineDefinition
from sql_migration_pipeline.pipeline.stage import AttemptRecord, Stage
from sql_migration_pipeline.runner.hooks import NoOpHooks
from sql_migration_pipeline.runner.result import PipelineRun, RunStatus, StageResult


class LoggingHooks:
    """Hooks that write the human-readable progress trace.

    Uses ``%s`` formatting for lazy evaluation.

    Args:
        logger: Custom logger instance. Defaults to ``logging.getLogger("sqlmig.pipeline")``.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("sqlmig.pipeline")

    @property
    def logger(self) -> logging.Logger:
        """Return the logger used by this hooks instance."""
        return self._logger

    def before_pipeline(self, definition: PipelineDefinition, run_id: str) -> None:
        self._logger.info(
            "Pipeline '%s' run %s starting with %d stages: %s",
            definition.name,
            run_id,
            len(definition),
            " -> ".join(definition.stage_names),
        )

    def after_pipeline(self, definition: PipelineDefinition, run: PipelineRun) -> None:
        if run.status is RunStatus.SUCCEEDED:
            self._logger.info(
                "Pipeline '%s' run %s succeeded in %dms",
                definition.name,
                run.run_id,
                run.duration_ms,
            )
        else:
            self._logger.error(
                "Pipeline '%s' run %s failed at stage '%s': %s",
                definition.name,
                run.run_id,
                run.failed_stage,
                run.error_detail,
            )

    def before_stage(self, stage: Stage, index: int, total: int) -> None:
        self._logger.info(
            "Stage '%s' [%d/%d] starting: %s",
            stage.name,
            index + 1,
            total,
            stage.action.describe(),
        )

    def after_stage(self, stage: Stage, index: int, total: int, result: StageResult) -> None:
        self._logger.info(
            "Stage '%s' [%d/%d] completed in %dms after %d attempt(s)",
            stage.name,
            index + 1,
            total,
            result.duration_ms,
            len(result.attempts),
        )

    def on_attempt_failure(self, stage: Stage, record: AttemptRecord) -> None:
        self._logger.warning(
            "Stage '%s' attempt %d/%d failed: %s",
            stage.name,
            record.attempt_number,
            stage.max_attempts,
            record.outcome.error_detail,
        )

    def on_retry_scheduled(
        self,
        stage: Stage,
        next_attempt: int,
        max_attempts: int,
        delay_ms: int,
        error_detail: str,
    ) -> None:
        self._logger.warning(
            "Stage '%s' retry %d/%d in %dms",
            stage.name,
            next_attempt,
            max_attempts,
            delay_ms,
        )

    def on_stage_failure(self, stage: Stage, index: int, result: StageResult) -> None:
        self._logger.error(
            "Stage '%s' [%d] failed after %d attempt(s): %s",
            stage.name,
            index + 1,
            len(result.attempts),
            result.last_error,
        )
        if stage.action.leaves_behind:
            self._logger.error("Stage '%s' may have left behind: %s", stage.name, stage.action.leaves_behind)


class MetricsHooks(NoOpHooks):
    """Hooks that collect stage timing, attempt and retry metrics.

    Keeps plain dictionaries for inspection and, when given a registry,
    forwards every measurement to it.

    Args:
        registry: Optional meter registry receiving the measurements.
    """

    def __init__(self, registry: MeterRegistry | None = None) -> None:
        self._registry = registry
        self.stage_durations: dict[str, int] = {}
        self.stage_attempts: dict[str, int] = {}
        self.stage_retries: dict[str, int] = {}
        self.total_duration_ms: int = 0

    def after_pipeline(self, definition: PipelineDefinition, run: PipelineRun) -> None:
        self.total_duration_ms = run.duration_ms
        if self._registry is not None:
            tags = {"pipeline": definition.name}
            self._registry.timer("sqlmig.pipeline.duration", float(run.duration_ms), tags=tags)
            self._registry.gauge(
                "sqlmig.pipeline.succeeded",
                1.0 if run.status is RunStatus.SUCCEEDED else 0.0,
                tags=tags,
            )

    def after_stage(self, stage: Stage, index: int, total: int, result: StageResult) -> None:
        self._record_stage(stage, result)

    def on_stage_failure(self, stage: Stage, index: int, result: StageResult) -> None:
        self._record_stage(stage, result)
        if self._registry is not None:
            self._registry.counter("sqlmig.stage.failures", tags={"stage": stage.name})

    def on_attempt_failure(self, stage: Stage, record: AttemptRecord) -> None:
        if self._registry is not None:
            self._registry.counter("sqlmig.attempt.failures", tags={"stage": stage.name})

    def on_retry_scheduled(
        self,
        stage: Stage,
        next_attempt: int,
        max_attempts: int,
        delay_ms: int,
        error_detail: str,
    ) -> None:
        self.stage_retries[stage.name] = self.stage_retries.get(stage.name, 0) + 1
        if self._registry is not None:
            self._registry.counter("sqlmig.stage.retries", tags={"stage": stage.name})

    def _record_stage(self, stage: Stage, result: StageResult) -> None:
        self.stage_durations[stage.name] = result.duration_ms
        self.stage_attempts[stage.name] = len(result.attempts)
        if self._registry is not None:
            tags = {"stage": stage.name}
            self._registry.timer("sqlmig.stage.duration", float(result.duration_ms), tags=tags)
            self._registry.gauge("sqlmig.stage.attempts", float(len(result.attempts)), tags=tags)
