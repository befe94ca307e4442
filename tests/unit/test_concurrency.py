"""Concurrency tests for thread-safe components.

Validates that AuditLog, InMemoryRegistry, CancellationToken and the
runner's snapshot behave correctly under contention from multiple threads.
"""

from __future__ import annotations

import threading
from datetime import timedelta

from sql_migration_pipeline.audit.log import AuditLog
from sql_migration_pipeline.audit.sinks import InMemoryAuditSink
from sql_migration_pipeline.core.metrics.registry import InMemoryRegistry
from sql_migration_pipeline.core.resilience.cancellation import CancellationToken
from sql_migration_pipeline.pipeline.stage import ActionContext, ActionOutcome, AttemptRecord
from sql_migration_pipeline.runner.result import RunStatus
from tests.factories import START, FakeAction, make_audit_log, make_definition, make_runner, make_stage

THREADS = 8
ITERATIONS = 500


def _start_all(threads: list[threading.Thread]) -> None:
    for t in threads:
        t.start()
    for t in threads:
        t.join()


class TestAuditLogConcurrency:
    def test_no_record_lost(self) -> None:
        """Every append from every thread lands exactly once, in the sink and the log."""
        sink = InMemoryAuditSink()
        log = AuditLog("run-1", sink)
        barrier = threading.Barrier(THREADS)

        def append(worker: int) -> None:
            barrier.wait()
            for attempt in range(1, ITERATIONS + 1):
                log.append(
                    AttemptRecord(
                        stage_name=f"stage-{worker}",
                        attempt_number=attempt,
                        start_time=START,
                        end_time=START + timedelta(milliseconds=1),
                        outcome=ActionOutcome.ok(),
                    )
                )

        _start_all([threading.Thread(target=append, args=(w,)) for w in range(THREADS)])

        assert len(log.records) == THREADS * ITERATIONS
        assert list(log.records) == sink.records
        assert log.summary().attempts_per_stage == {f"stage-{w}": ITERATIONS for w in range(THREADS)}


class TestInMemoryRegistryConcurrency:
    def test_concurrent_counter_increments_are_exact(self) -> None:
        reg = InMemoryRegistry()
        barrier = threading.Barrier(THREADS)

        def increment() -> None:
            barrier.wait()
            for _ in range(ITERATIONS):
                reg.counter("sqlmig.attempt.failures", tags={"stage": "upload-backup"})

        _start_all([threading.Thread(target=increment) for _ in range(THREADS)])

        assert reg.get_counter("sqlmig.attempt.failures", {"stage": "upload-backup"}) == THREADS * ITERATIONS

    def test_concurrent_timer_records(self) -> None:
        reg = InMemoryRegistry()

        def record() -> None:
            for _ in range(ITERATIONS):
                reg.timer("sqlmig.stage.duration", 1.0)

        _start_all([threading.Thread(target=record) for _ in range(THREADS)])

        assert reg.get_timer_count("sqlmig.stage.duration") == THREADS * ITERATIONS


class TestCancellationConcurrency:
    def test_single_reason_wins(self) -> None:
        token = CancellationToken()
        barrier = threading.Barrier(THREADS)

        def cancel(worker: int) -> None:
            barrier.wait()
            token.cancel(f"worker {worker}")

        _start_all([threading.Thread(target=cancel, args=(w,)) for w in range(THREADS)])

        assert token.cancelled
        assert token.reason in {f"worker {w}" for w in range(THREADS)}


class TestSnapshotConcurrency:
    def test_snapshot_while_running(self) -> None:
        """Snapshots taken from another thread mid-run are internally consistent."""
        in_stage = threading.Event()
        release = threading.Event()

        def block(context: ActionContext) -> ActionOutcome:
            in_stage.set()
            release.wait(5)
            return ActionOutcome.ok()

        definition = make_definition(
            make_stage("upload-backup"),
            make_stage("restore-staging", FakeAction([block])),
            make_stage("export-package"),
        )
        audit_log, _ = make_audit_log()
        runner = make_runner(definition, audit_log=audit_log)
        worker = threading.Thread(target=runner.run)
        worker.start()
        try:
            assert in_stage.wait(5)
            snapshot = runner.snapshot()
            assert snapshot.status is RunStatus.RUNNING
            assert snapshot.current_stage == "restore-staging"
            assert snapshot.completed_stages == ("upload-backup",)
            assert snapshot.attempts_made == 1
        finally:
            release.set()
            worker.join(5)

        final = runner.snapshot()
        assert final.status is RunStatus.SUCCEEDED
        assert final.current_stage is None
        assert final.attempts_made == 3
