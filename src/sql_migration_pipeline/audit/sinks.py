"""Audit sinks receiving attempt records."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, Any

from sql_migration_pipeline.core.exceptions import AuditWriteError
from sql_migration_pipeline.pipeline.stage import AttemptRecord

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Base class for audit sinks.

    A ``durable`` sink holds the record of truth: its failures abort the
    run. Failures of other sinks are only logged.
    """

    durable: bool = False

    @abstractmethod
    def emit(self, run_id: str, record: AttemptRecord) -> None:
        """Emit a single attempt record."""
        ...

    def close(self) -> None:  # noqa: B027
        """Close the sink and release resources."""


class InMemoryAuditSink(AuditSink):
    """Keep emitted records in a list. Useful for testing."""

    durable = True

    def __init__(self) -> None:
        self.entries: list[tuple[str, AttemptRecord]] = []

    def emit(self, run_id: str, record: AttemptRecord) -> None:
        self.entries.append((run_id, record))

    @property
    def records(self) -> list[AttemptRecord]:
        return [record for _, record in self.entries]


class LoggingAuditSink(AuditSink):
    """Emit attempt records to Python logging.

    Args:
        logger_name: Logger name to use. Defaults to ``"sqlmig.audit"``.
    """

    def __init__(self, logger_name: str = "sqlmig.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    def emit(self, run_id: str, record: AttemptRecord) -> None:
        level = logging.INFO if record.success else logging.WARNING
        self._logger.log(
            level,
            "[AUDIT] %s | %s | attempt %d | %s | %dms%s",
            run_id,
            record.stage_name,
            record.attempt_number,
            "success" if record.success else "failure",
            record.duration_ms,
            f" | {record.outcome.error_detail}" if record.outcome.error_detail else "",
            extra={"audit_record": record.to_dict()},
        )


class FileAuditSink(AuditSink):
    """Append attempt records to a JSON-lines file, flushed per record.

    The file is opened lazily on the first ``emit()`` call and never
    truncated, so a resumed run continues the same log.

    Args:
        path: Path to the audit log file.

    Raises:
        AuditWriteError: From ``emit()`` when the file cannot be written.
    """

    durable = True

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._file: IO[Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_open(self) -> IO[Any]:
        if self._file is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self._path, "a", encoding="utf-8")  # noqa: SIM115
        return self._file

    def emit(self, run_id: str, record: AttemptRecord) -> None:
        line = json.dumps({"run_id": run_id, **record.to_dict()})
        try:
            handle = self._ensure_open()
            handle.write(line + "\n")
            handle.flush()
        except OSError as exc:
            raise AuditWriteError(f"Cannot write audit log {self._path}: {exc}") from exc

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


def read_audit_file(path: str | Path) -> list[tuple[str, AttemptRecord]]:
    """Read back ``(run_id, record)`` pairs written by :class:`FileAuditSink`."""
    entries = []
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            if line.strip():
                data = json.loads(line)
                entries.append((data["run_id"], AttemptRecord.from_dict(data)))
    return entries


class CompositeAuditSink(AuditSink):
    """Fan out records to multiple sinks.

    Failures of durable sinks propagate; failures of the others are
    logged so that one failing side channel does not stop the run.

    Args:
        sinks: One or more audit sinks to fan out to.
    """

    def __init__(self, *sinks: AuditSink) -> None:
        self._sinks: tuple[AuditSink, ...] = sinks

    @property
    def durable(self) -> bool:  # type: ignore[override]
        return any(sink.durable for sink in self._sinks)

    @property
    def sinks(self) -> tuple[AuditSink, ...]:
        return self._sinks

    def emit(self, run_id: str, record: AttemptRecord) -> None:
        for sink in self._sinks:
            try:
                sink.emit(run_id, record)
            except Exception:
                if sink.durable:
                    raise
                logger.warning("Audit sink %s failed to emit", type(sink).__name__, exc_info=True)

    def close(self) -> None:
        for sink in self._sinks:
            try:
                sink.close()
            except Exception:
                logger.warning("Audit sink %s failed to close", type(sink).__name__, exc_info=True)
