"""Stages, external actions and attempt records."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any

from sql_migration_pipeline.core.config.retry import RetryConfig
from sql_migration_pipeline.core.exceptions import StageTimeoutError


def _frozen_mapping(data: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class ActionContext:
    """Read-only information handed to an action for one attempt.

    Args:
        run_id: Identifier of the pipeline run.
        stage_name: Stage being executed.
        attempt_number: One-based attempt number.
        timeout_seconds: Time budget of one attempt of the stage.
        artifacts: Artifact references produced by earlier stages, keyed by
            stage name.
        work_dir: Local scratch directory of the run.
        deadline: Monotonic time at which the attempt is abandoned, read
            against *clock*. ``None`` means no deadline beyond
            ``timeout_seconds``.
        clock: Monotonic clock the deadline is measured on.
    """

    run_id: str
    stage_name: str
    attempt_number: int = 1
    timeout_seconds: float | None = None
    artifacts: Mapping[str, str] = field(default_factory=dict)
    work_dir: Path = Path(".")
    deadline: float | None = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "artifacts", _frozen_mapping(self.artifacts))

    def remaining_seconds(self) -> float | None:
        """Return the time left for this attempt, for the next external call.

        Actions pass this, not ``timeout_seconds``, to every tool they start
        so that no tool outlives the attempt that started it.

        Raises:
            StageTimeoutError: If the deadline has already passed.
        """
        if self.deadline is None:
            return self.timeout_seconds
        remaining = self.deadline - self.clock()
        if remaining <= 0:
            raise StageTimeoutError(self.timeout_seconds or 0.0)
        return remaining


@dataclass(frozen=True)
class ActionOutcome:
    """Result of a single action attempt."""

    success: bool
    produced_artifact_ref: str | None = None
    error_detail: str | None = None

    @classmethod
    def ok(cls, produced_artifact_ref: str | None = None) -> ActionOutcome:
        """Build a successful outcome."""
        return cls(success=True, produced_artifact_ref=produced_artifact_ref)

    @classmethod
    def failed(cls, error_detail: str) -> ActionOutcome:
        """Build a failed outcome carrying *error_detail* verbatim."""
        return cls(success=False, error_detail=error_detail)


class ExternalAction(ABC):
    """One external operation a stage performs.

    Every action documents three things:

    * ``idempotent``: whether it is safe to invoke again without looking at
      remote state first.
    * :meth:`pre_retry_check`: what must run before a retry when the action
      is not idempotent. The executor calls it before every attempt after
      the first of a non-idempotent action.
    * ``leaves_behind``: the partial state a failure may leave for a human
      or a compensating stage to clean up.
    """

    idempotent: bool = False
    leaves_behind: str = ""

    @abstractmethod
    def execute(self, context: ActionContext) -> ActionOutcome:
        """Perform the operation.

        Raises:
            MigrationError: Any adapter error; the executor turns it into a
                failed attempt.
        """
        ...

    def pre_retry_check(self, context: ActionContext) -> None:  # noqa: B027
        """Bring remote state back to a point where :meth:`execute` can be re-issued."""

    def describe(self) -> str:
        """Return a one-line human-readable description."""
        return type(self).__name__


@dataclass(frozen=True)
class Stage:
    """A named unit of work bound to one external action."""

    name: str
    action: ExternalAction
    timeout_seconds: float
    retry: RetryConfig = field(default_factory=RetryConfig)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("stage name is required")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds for stage '{self.name}' must be positive")

    @property
    def max_attempts(self) -> int:
        """Return the attempt budget of this stage."""
        return self.retry.max_attempts


@dataclass(frozen=True)
class AttemptRecord:
    """Immutable record of one attempt, appended to the audit log."""

    stage_name: str
    attempt_number: int
    start_time: datetime
    end_time: datetime
    outcome: ActionOutcome

    @property
    def success(self) -> bool:
        """Return whether the attempt succeeded."""
        return self.outcome.success

    @property
    def duration_ms(self) -> int:
        """Return the wall-clock duration of the attempt in milliseconds."""
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "stage": self.stage_name,
            "attempt": self.attempt_number,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_ms": self.duration_ms,
            "success": self.outcome.success,
            "produced_artifact_ref": self.outcome.produced_artifact_ref,
            "error_detail": self.outcome.error_detail,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttemptRecord:
        """Create an AttemptRecord from a dictionary written by :meth:`to_dict`."""
        return cls(
            stage_name=data["stage"],
            attempt_number=data["attempt"],
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            outcome=ActionOutcome(
                success=data["success"],
                produced_artifact_ref=data.get("produced_artifact_ref"),
                error_detail=data.get("error_detail"),
            ),
        )
