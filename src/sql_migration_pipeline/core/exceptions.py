"""Migration error taxonomy.

Every error raised by an adapter or by the configuration layer derives from
:class:`MigrationError`. The ``retryable`` class attribute tells the stage
executor whether another attempt may be made after the error.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for all migration errors."""

    retryable: bool = True


class ConfigurationError(MigrationError):
    """Missing or invalid setup. Fatal, never retried."""

    retryable = False

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = list(missing or [])
        super().__init__(message)


class AuthError(MigrationError):
    """Cloud authentication failed. Fatal, never retried."""

    retryable = False


class CommandError(MigrationError):
    """An external command exited unsuccessfully.

    Args:
        message: Human-readable description of the failed operation.
        command: The argv that was executed (secrets already masked).
        returncode: Process exit code, ``None`` if the process never started.
        stderr: Captured standard error, trimmed.
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.command = list(command or [])
        self.returncode = returncode
        self.stderr = stderr
        detail = f"{message} (exit code {returncode})" if returncode is not None else message
        if stderr:
            detail = f"{detail}: {stderr}"
        super().__init__(detail)


class TransferError(CommandError):
    """Blob upload, download, delete or token generation failed."""


class RestoreError(CommandError):
    """Remote restore, drop or state query failed."""


class PackagingError(CommandError):
    """Schema/data package export or import failed."""


class StageTimeoutError(MigrationError):
    """An attempt exceeded its stage deadline.

    The external operation may still be running; the attempt is treated as
    failed regardless.
    """

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__("timeout")


class RunCancelledError(MigrationError):
    """An operator abort was observed at a cooperative check point."""

    retryable = False

    def __init__(self, reason: str = "cancelled") -> None:
        self.reason = reason
        super().__init__(reason)


class AuditWriteError(MigrationError):
    """The durable local audit log could not be written."""

    retryable = False
