"""Local demo: run a migration-shaped pipeline with simulated actions.

Demonstrates retries with a pre-retry check, fail-fast, the audit log,
lifecycle hooks, the run summary and resuming from a checkpoint. No cloud
account or SQL server is required.

Usage:
    python examples/run_local_demo.py
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from sql_migration_pipeline.audit import AuditLog, FileAuditSink
from sql_migration_pipeline.core.config import RetryConfig
from sql_migration_pipeline.core.exceptions import RestoreError, TransferError
from sql_migration_pipeline.core.metrics import InMemoryRegistry
from sql_migration_pipeline.pipeline import ActionContext, ActionOutcome, ExternalAction, Stage
from sql_migration_pipeline.pipeline.definition import PipelineDefinition
from sql_migration_pipeline.runner import (
    CheckpointHooks,
    CompositeHooks,
    LocalCheckpointStore,
    LoggingHooks,
    MetricsHooks,
    PipelineRunner,
    RunSummary,
    format_summary,
    load_checkpoint_for_resume,
)

DEMO_DIR = Path("/tmp/sqlmig-local-demo")


class CopyFileAction(ExternalAction):
    """Copy a file into a local "container" directory. Fails on its first call."""

    idempotent = True

    def __init__(self, source: Path, container: Path) -> None:
        self._source = source
        self._container = container
        self._calls = 0
        self.leaves_behind = f"partial copy in {container}"

    def execute(self, context: ActionContext) -> ActionOutcome:
        self._calls += 1
        if self._calls == 1:
            raise TransferError("Upload interrupted", returncode=1, stderr="connection reset by peer")
        self._container.mkdir(parents=True, exist_ok=True)
        target = self._container / self._source.name
        shutil.copyfile(self._source, target)
        return ActionOutcome.ok(str(target))


class RestoreDirectoryAction(ExternalAction):
    """Materialize a "database" directory; a flag file makes it fail."""

    idempotent = False

    def __init__(self, database_dir: Path, fail_flag: Path) -> None:
        self._database_dir = database_dir
        self._fail_flag = fail_flag
        self.leaves_behind = f"half-restored database directory {database_dir}"

    def execute(self, context: ActionContext) -> ActionOutcome:
        self._database_dir.mkdir(parents=True, exist_ok=True)
        if self._fail_flag.exists():
            raise RestoreError("Restore failed", returncode=1, stderr="Msg 3201: Cannot open backup device")
        return ActionOutcome.ok(str(self._database_dir))

    def pre_retry_check(self, context: ActionContext) -> None:
        shutil.rmtree(self._database_dir, ignore_errors=True)


def build_definition(backup: Path, fail_flag: Path) -> PipelineDefinition:
    quick = RetryConfig(max_attempts=2, initial_delay_seconds=0.1, max_delay_seconds=0.1)
    return PipelineDefinition(
        "local-demo",
        [
            Stage("upload-backup", CopyFileAction(backup, DEMO_DIR / "container"), 30.0, quick),
            Stage("restore-staging", RestoreDirectoryAction(DEMO_DIR / "staging" / "orders", fail_flag), 30.0, quick),
        ],
    )


def run_once(definition: PipelineDefinition, run_id: str, store: LocalCheckpointStore, resume: bool) -> None:
    resume_state = load_checkpoint_for_resume(store, run_id, definition) if resume else None
    audit_log = AuditLog(run_id, FileAuditSink(DEMO_DIR / "audit" / f"{run_id}.jsonl"))
    registry = InMemoryRegistry()
    hooks = CompositeHooks(
        LoggingHooks(),
        MetricsHooks(registry),
        CheckpointHooks(store, run_id, definition.fingerprint(), resume_from=resume_state),
    )
    runner = PipelineRunner(definition, audit_log, hooks=hooks, work_dir=DEMO_DIR)
    try:
        run = runner.run(
            completed_stages=resume_state.completed_stages if resume_state else None,
            artifacts=resume_state.artifacts if resume_state else None,
        )
    finally:
        audit_log.close()

    print()
    print(format_summary(RunSummary.from_run(run, definition, audit_log.summary())))
    print(f"Metrics: {registry.get_metrics()['counters']}")


def main() -> None:
    """Run once with a failing restore, then resume after fixing it."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    shutil.rmtree(DEMO_DIR, ignore_errors=True)
    DEMO_DIR.mkdir(parents=True)

    backup = DEMO_DIR / "orders.bak"
    backup.write_bytes(b"backup contents")
    fail_flag = DEMO_DIR / "restore.fail"
    fail_flag.touch()

    store = LocalCheckpointStore(DEMO_DIR / "checkpoints")
    run_id = "local-001"

    print("=== First run: the restore keeps failing ===")
    run_once(build_definition(backup, fail_flag), run_id, store, resume=False)

    print("\n=== Resume after fixing the backup ===")
    fail_flag.unlink()
    run_once(build_definition(backup, fail_flag), run_id, store, resume=True)


if __name__ == "__main__":
    main()
