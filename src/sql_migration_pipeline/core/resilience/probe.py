"""Bounded polling for remote dependencies to become available."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from sql_migration_pipeline.core.resilience.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def wait_until(
    predicate: Callable[[], bool],
    timeout_seconds: float,
    interval_seconds: float,
    *,
    description: str = "condition",
    clock: Callable[[], float] | None = None,
    sleep_func: Callable[[float], None] | None = None,
    cancel_token: CancellationToken | None = None,
) -> bool:
    """Poll *predicate* on a fixed interval until it is true or time runs out.

    An exception raised by *predicate* counts as "not yet". The final pause
    is shortened so the total wait never exceeds *timeout_seconds* by more
    than one predicate call.

    Args:
        predicate: Zero-argument check, e.g. "can I connect?".
        timeout_seconds: Maximum wall-clock time to wait.
        interval_seconds: Pause between checks.
        description: What is being waited for, for log messages.
        clock: Injectable monotonic clock.
        sleep_func: Injectable sleep. Defaults to the cancel token's
            interruptible wait, or ``time.sleep``.
        cancel_token: Checked before every poll.

    Returns:
        True as soon as *predicate* returns true, False on timeout.

    Raises:
        RunCancelledError: If cancellation is requested while waiting.
    """
    now = clock or time.monotonic
    if sleep_func is not None:
        pause = sleep_func
    elif cancel_token is not None:
        pause = cancel_token.wait
    else:
        pause = time.sleep

    deadline = now() + timeout_seconds
    polls = 0
    while True:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        polls += 1
        try:
            if predicate():
                logger.debug("%s satisfied after %d poll(s)", description, polls)
                return True
        except Exception as exc:
            logger.debug("%s not yet satisfied (poll %d): %s", description, polls, exc)

        remaining = deadline - now()
        if remaining <= 0:
            logger.warning("Gave up waiting for %s after %d poll(s)", description, polls)
            return False
        pause(min(interval_seconds, remaining))
