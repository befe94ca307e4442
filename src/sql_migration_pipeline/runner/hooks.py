"""Pipeline lifecycle hooks protocol and infrastructure."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sql_migration_pipeline.pipeline.definition import PipelineDefinition
from sql_migration_pipeline.pipeline.stage import AttemptRecord, Stage
from sql_migration_pipeline.runner.result import PipelineRun, StageResult

logger = logging.getLogger(__name__)


class PipelineHooks(Protocol):
    """Protocol defining lifecycle callbacks for pipeline execution.

    Implementations receive notifications at key points of a run. This
    protocol is NOT ``@runtime_checkable``; use structural typing.
    """

    def before_pipeline(self, definition: PipelineDefinition, run_id: str) -> None:
        """Called before the first stage starts."""
        ...

    def after_pipeline(self, definition: PipelineDefinition, run: PipelineRun) -> None:
        """Called once the run reached a terminal state."""
        ...

    def before_stage(self, stage: Stage, index: int, total: int) -> None:
        """Called before the first attempt of a stage."""
        ...

    def after_stage(self, stage: Stage, index: int, total: int, result: StageResult) -> None:
        """Called after a stage succeeded."""
        ...

    def on_attempt_failure(self, stage: Stage, record: AttemptRecord) -> None:
        """Called after every failed attempt, the last one included."""
        ...

    def on_retry_scheduled(
        self,
        stage: Stage,
        next_attempt: int,
        max_attempts: int,
        delay_ms: int,
        error_detail: str,
    ) -> None:
        """Called before the backoff pause that precedes a retry."""
        ...

    def on_stage_failure(self, stage: Stage, index: int, result: StageResult) -> None:
        """Called when a stage has failed for good."""
        ...


class NoOpHooks:
    """Hooks implementation that does nothing.

    Useful as a default or as a base class for hooks that only care about
    a few events.
    """

    def before_pipeline(self, definition: PipelineDefinition, run_id: str) -> None:
        pass

    def after_pipeline(self, definition: PipelineDefinition, run: PipelineRun) -> None:
        pass

    def before_stage(self, stage: Stage, index: int, total: int) -> None:
        pass

    def after_stage(self, stage: Stage, index: int, total: int, result: StageResult) -> None:
        pass

    def on_attempt_failure(self, stage: Stage, record: AttemptRecord) -> None:
        pass

    def on_retry_scheduled(
        self,
        stage: Stage,
        next_attempt: int,
        max_attempts: int,
        delay_ms: int,
        error_detail: str,
    ) -> None:
        pass

    def on_stage_failure(self, stage: Stage, index: int, result: StageResult) -> None:
        pass


class CompositeHooks:
    """Broadcasts lifecycle events to multiple hooks implementations.

    Exceptions raised by individual hooks are caught and logged so that
    one misbehaving hook does not break the run.
    """

    def __init__(self, *hooks: PipelineHooks) -> None:
        self._hooks: tuple[PipelineHooks, ...] = hooks

    def _call_all(self, method: str, *args: Any) -> None:
        for hook in self._hooks:
            try:
                getattr(hook, method)(*args)
            except Exception:
                logger.warning(
                    "Hook %s.%s raised an exception",
                    type(hook).__name__,
                    method,
                    exc_info=True,
                )

    def before_pipeline(self, definition: PipelineDefinition, run_id: str) -> None:
        self._call_all("before_pipeline", definition, run_id)

    def after_pipeline(self, definition: PipelineDefinition, run: PipelineRun) -> None:
        self._call_all("after_pipeline", definition, run)

    def before_stage(self, stage: Stage, index: int, total: int) -> None:
        self._call_all("before_stage", stage, index, total)

    def after_stage(self, stage: Stage, index: int, total: int, result: StageResult) -> None:
        self._call_all("after_stage", stage, index, total, result)

    def on_attempt_failure(self, stage: Stage, record: AttemptRecord) -> None:
        self._call_all("on_attempt_failure", stage, record)

    def on_retry_scheduled(
        self,
        stage: Stage,
        next_attempt: int,
        max_attempts: int,
        delay_ms: int,
        error_detail: str,
    ) -> None:
        self._call_all("on_retry_scheduled", stage, next_attempt, max_attempts, delay_ms, error_detail)

    def on_stage_failure(self, stage: Stage, index: int, result: StageResult) -> None:
        self._call_all("on_stage_failure", stage, index, result)
