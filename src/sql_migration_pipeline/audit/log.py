"""Append-only audit log of attempt records."""

from __future__ import annotations

import logging
import threading

from sql_migration_pipeline.audit.mirror import StorageMirror
from sql_migration_pipeline.audit.sinks import AuditSink
from sql_migration_pipeline.audit.types import AuditSummary
from sql_migration_pipeline.core.exceptions import AuditWriteError
from sql_migration_pipeline.core.utils import safe_call
from sql_migration_pipeline.pipeline.stage import AttemptRecord

logger = logging.getLogger(__name__)


class AuditLog:
    """Ordered, append-only record of every attempt in a run.

    Records are never modified or removed. A record is written to the sink
    before :meth:`append` returns, so an attempt that happened is always on
    disk before the run moves on.

    Args:
        run_id: Identifier of the run the records belong to.
        sink: Where records are written.
        mirror: Optional remote copy, synced on request.
    """

    def __init__(self, run_id: str, sink: AuditSink, mirror: StorageMirror | None = None) -> None:
        self._run_id = run_id
        self._sink = sink
        self._mirror = mirror
        self._records: list[AttemptRecord] = []
        self._lock = threading.Lock()

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def records(self) -> tuple[AttemptRecord, ...]:
        """Return all records in append order."""
        with self._lock:
            return tuple(self._records)

    def append(self, record: AttemptRecord) -> None:
        """Write *record* to the sink and keep it.

        Raises:
            AuditWriteError: If the sink fails.
        """
        with self._lock:
            try:
                self._sink.emit(self._run_id, record)
            except AuditWriteError:
                raise
            except Exception as exc:
                raise AuditWriteError(f"Audit sink {type(self._sink).__name__} failed: {exc}") from exc
            self._records.append(record)

    def records_for(self, stage_name: str) -> list[AttemptRecord]:
        """Return the records of one stage in attempt order."""
        return [r for r in self.records if r.stage_name == stage_name]

    def summary(self) -> AuditSummary:
        """Aggregate the records written so far."""
        return AuditSummary.from_records(self.records)

    def sync_mirror(self) -> None:
        """Refresh the remote copy, if any. Failures are logged, never raised."""
        if self._mirror is None:
            return
        safe_call(self._mirror.sync, logger, "Could not mirror audit log to %s", self._mirror.blob_name)

    def close(self) -> None:
        self._sink.close()
