"""Run a blocking call under a wall-clock deadline."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from sql_migration_pipeline.core.exceptions import StageTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_deadline(
    func: Callable[[], T],
    timeout_seconds: float | None,
    name: str = "attempt",
    grace_seconds: float = 0.0,
) -> T:
    """Call *func* and wait at most *timeout_seconds* for it to return.

    The call runs on a daemon worker thread. When the deadline passes the
    worker is abandoned, not killed: an external operation it started may
    still be running. Callers must treat the attempt as failed and probe
    remote state before trying again.

    After the deadline the caller still waits up to *grace_seconds* for the
    worker to wind down, so that tools bounded by the same deadline have
    been stopped by the time the next attempt starts. The call counts as
    timed out either way.

    Args:
        func: Zero-argument callable.
        timeout_seconds: Deadline in seconds, ``None`` waits indefinitely.
        name: Label for the worker thread and log messages.
        grace_seconds: Extra wait for the worker after the deadline.

    Returns:
        The return value of *func*.

    Raises:
        StageTimeoutError: If the deadline passed first.
        Exception: Whatever *func* raised.
    """
    if timeout_seconds is None:
        return func()

    outcome: dict[str, Any] = {}
    done = threading.Event()

    def target() -> None:
        try:
            outcome["value"] = func()
        except BaseException as exc:  # re-raised on the calling thread
            outcome["error"] = exc
        finally:
            done.set()

    worker = threading.Thread(target=target, name=f"sqlmig-{name}", daemon=True)
    worker.start()

    if not done.wait(timeout_seconds):
        if grace_seconds > 0 and done.wait(grace_seconds):
            logger.warning("%s exceeded its %.1fs deadline and has stopped", name, timeout_seconds)
        else:
            logger.warning(
                "%s exceeded its %.1fs deadline; the external operation may still be running",
                name,
                timeout_seconds,
            )
        raise StageTimeoutError(timeout_seconds)

    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]
