"""Pipeline runner, stage executor, hooks, checkpointing and CLI."""

from sql_migration_pipeline.runner.checkpoint import (
    CheckpointHooks,
    CheckpointState,
    LocalCheckpointStore,
    PipelineDefinitionChangedError,
    load_checkpoint_for_resume,
)
from sql_migration_pipeline.runner.hooks import CompositeHooks, NoOpHooks, PipelineHooks
from sql_migration_pipeline.runner.hooks_builtin import LoggingHooks, MetricsHooks
from sql_migration_pipeline.runner.pipeline_runner import PipelineRunner, new_run_id
from sql_migration_pipeline.runner.result import PipelineRun, RunSnapshot, RunStatus, StageResult
from sql_migration_pipeline.runner.stage_executor import StageExecutor
from sql_migration_pipeline.runner.summary import RunSummary, format_summary, write_summary

__all__ = [
    "CheckpointHooks",
    "CheckpointState",
    "CompositeHooks",
    "LocalCheckpointStore",
    "LoggingHooks",
    "MetricsHooks",
    "NoOpHooks",
    "PipelineDefinitionChangedError",
    "PipelineHooks",
    "PipelineRun",
    "PipelineRunner",
    "RunSnapshot",
    "RunStatus",
    "RunSummary",
    "StageExecutor",
    "StageResult",
    "format_summary",
    "load_checkpoint_for_resume",
    "new_run_id",
    "write_summary",
]
