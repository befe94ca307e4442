"""Single-stage execution: attempts, deadlines, backoff and audit records."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sql_migration_pipeline.audit.log import AuditLog
from sql_migration_pipeline.core.exceptions import StageTimeoutError
from sql_migration_pipeline.core.resilience.cancellation import CancellationToken
from sql_migration_pipeline.core.resilience.deadline import call_with_deadline
from sql_migration_pipeline.core.resilience.retry import BackoffPolicy
from sql_migration_pipeline.core.utils import safe_call
from sql_migration_pipeline.pipeline.stage import ActionContext, ActionOutcome, AttemptRecord, Stage
from sql_migration_pipeline.runner.hooks import NoOpHooks, PipelineHooks
from sql_migration_pipeline.runner.result import StageResult

logger = logging.getLogger(__name__)


def describe_error(error: BaseException) -> str:
    """Return the text stored as an attempt's ``error_detail``."""
    return str(error) or type(error).__name__


class StageExecutor:
    """Runs one stage until it succeeds or its attempt budget is spent.

    Each attempt runs under the stage's deadline. Before every attempt after
    the first of a non-idempotent action, the action's pre-retry check runs
    inside the same deadline; if it fails, the attempt fails without
    re-issuing the action. Every attempt ends in exactly one
    :class:`AttemptRecord`, written to the audit log before the executor
    goes on. Adapter errors never escape; an audit write failure does.

    Args:
        audit_log: Where attempt records are appended.
        hooks: Lifecycle hooks instance.
        clock: Monotonic clock function, used for durations and attempt
            deadlines.
        now_fn: UTC wall clock, used for record timestamps.
        cancel_token: Stops further retries once cancellation is requested.
        sleep_func: Sleep function for backoff (``None`` waits on the
            cancel token, or uses ``time.sleep``).
        jitter_factor: Random jitter applied to backoff delays.
        work_dir: Local scratch directory handed to actions.
        timeout_grace_seconds: How long a timed-out attempt is still waited
            for before the executor moves on. Actions bound their tools by
            the attempt deadline, so this normally covers only the time it
            takes to kill them.
    """

    def __init__(
        self,
        audit_log: AuditLog,
        hooks: PipelineHooks | None = None,
        clock: Callable[[], float] | None = None,
        now_fn: Callable[[], datetime] | None = None,
        cancel_token: CancellationToken | None = None,
        sleep_func: Callable[[float], Any] | None = None,
        jitter_factor: float = 0.0,
        work_dir: Path | None = None,
        timeout_grace_seconds: float = 5.0,
    ) -> None:
        self._audit_log = audit_log
        self._hooks: PipelineHooks = hooks or NoOpHooks()
        self._clock = clock or time.monotonic
        self._now = now_fn or (lambda: datetime.now(timezone.utc))
        self._cancel_token = cancel_token
        if sleep_func is None and cancel_token is not None:
            sleep_func = cancel_token.wait
        self._sleep_func = sleep_func
        self._jitter_factor = jitter_factor
        self._work_dir = work_dir or Path(".")
        self._timeout_grace = timeout_grace_seconds

    def run(
        self,
        stage: Stage,
        run_id: str,
        artifacts: Mapping[str, str] | None = None,
    ) -> StageResult:
        """Execute *stage* with retries.

        Args:
            stage: The stage to run.
            run_id: Identifier of the enclosing run.
            artifacts: Artifact references of earlier stages.

        Returns:
            A ``StageResult`` holding every attempt made.

        Raises:
            AuditWriteError: If an attempt record cannot be written.
        """
        policy = BackoffPolicy(stage.retry, jitter_factor=self._jitter_factor, sleep_func=self._sleep_func)
        start = self._clock()
        records: list[AttemptRecord] = []
        max_attempts = stage.max_attempts

        for attempt in range(1, max_attempts + 1):
            context = ActionContext(
                run_id=run_id,
                stage_name=stage.name,
                attempt_number=attempt,
                timeout_seconds=stage.timeout_seconds,
                artifacts=artifacts or {},
                work_dir=self._work_dir,
                deadline=self._clock() + stage.timeout_seconds,
                clock=self._clock,
            )
            started_at, outcome, error = self._attempt(stage, context)
            record = AttemptRecord(
                stage_name=stage.name,
                attempt_number=attempt,
                start_time=started_at,
                end_time=self._now(),
                outcome=outcome,
            )
            self._audit_log.append(record)
            records.append(record)

            if record.success:
                return StageResult(
                    stage_name=stage.name,
                    success=True,
                    attempts=tuple(records),
                    produced_artifact_ref=record.outcome.produced_artifact_ref,
                    duration_ms=self._elapsed_ms(start),
                )

            detail = record.outcome.error_detail or "failed"
            self._call_hook("on_attempt_failure", stage, record)

            if attempt >= max_attempts:
                break
            if error is not None and not policy.is_retryable(error):
                logger.info("Stage '%s': %s is not retryable", stage.name, type(error).__name__)
                break
            if self._cancel_token is not None and self._cancel_token.cancelled:
                logger.info("Stage '%s': not retrying, run was cancelled", stage.name)
                break

            delay = policy.calculate_delay(attempt - 1)
            self._call_hook("on_retry_scheduled", stage, attempt + 1, max_attempts, int(delay * 1000), detail)
            policy.sleep(delay)

            if self._cancel_token is not None and self._cancel_token.cancelled:
                logger.info("Stage '%s': not retrying, run was cancelled", stage.name)
                break

        return StageResult(
            stage_name=stage.name,
            success=False,
            attempts=tuple(records),
            last_error=records[-1].outcome.error_detail,
            duration_ms=self._elapsed_ms(start),
        )

    def _attempt(self, stage: Stage, context: ActionContext) -> tuple[datetime, ActionOutcome, Exception | None]:
        """Run one attempt; return its start time, outcome and the error raised, if any."""
        action = stage.action
        started_at = self._now()

        def invoke() -> ActionOutcome:
            if context.attempt_number > 1 and not action.idempotent:
                logger.info(
                    "Stage '%s': running pre-retry check before attempt %d", stage.name, context.attempt_number
                )
                action.pre_retry_check(context)
            return action.execute(context)

        try:
            outcome = call_with_deadline(
                invoke,
                stage.timeout_seconds,
                name=f"{stage.name}#{context.attempt_number}",
                grace_seconds=self._timeout_grace,
            )
        except StageTimeoutError as exc:
            return started_at, ActionOutcome.failed("timeout"), exc
        except Exception as exc:
            logger.debug("Stage '%s' attempt %d raised", stage.name, context.attempt_number, exc_info=True)
            return started_at, ActionOutcome.failed(describe_error(exc)), exc

        if not isinstance(outcome, ActionOutcome):
            detail = f"{type(action).__name__}.execute returned {type(outcome).__name__}, expected ActionOutcome"
            return started_at, ActionOutcome.failed(detail), None
        if not outcome.success and not outcome.error_detail:
            outcome = ActionOutcome.failed(f"{type(action).__name__} reported failure")
        return started_at, outcome, None

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)

    def _call_hook(self, method: str, *args: Any) -> None:
        """Invoke a hook method defensively; errors are logged, not raised."""
        safe_call(
            lambda: getattr(self._hooks, method)(*args),
            logger,
            "Hook %s.%s raised an exception",
            type(self._hooks).__name__,
            method,
        )
