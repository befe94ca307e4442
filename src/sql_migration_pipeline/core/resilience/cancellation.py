"""Cooperative cancellation for operator-initiated aborts."""

from __future__ import annotations

import threading

from sql_migration_pipeline.core.exceptions import RunCancelledError


class CancellationToken:
    """A flag checked at stage boundaries and inside the probe loop.

    Setting the flag never interrupts an in-flight external call; it only
    prevents the next stage or poll from starting.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        """Return whether cancellation was requested."""
        return self._event.is_set()

    @property
    def reason(self) -> str:
        """Return the reason passed to :meth:`cancel`."""
        return self._reason

    def cancel(self, reason: str = "cancelled by operator") -> None:
        """Request cancellation. Later calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`RunCancelledError` if cancellation was requested."""
        if self._event.is_set():
            raise RunCancelledError(self._reason)

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*, waking early on cancellation.

        Returns:
            True if cancellation was requested during the wait.
        """
        return self._event.wait(seconds)
