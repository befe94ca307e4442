"""Subprocess execution for the external command-line tools."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sql_migration_pipeline.core.exceptions import CommandError, StageTimeoutError

logger = logging.getLogger(__name__)

MASK = "***"
_STDERR_LIMIT = 2000


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        """Return whether the command exited with status 0."""
        return self.returncode == 0


def mask_secrets(text: str, secrets: Iterable[str]) -> str:
    """Replace every non-empty secret in *text* with ``***``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, MASK)
    return text


class CommandRunner:
    """Runs external commands and maps failures onto the error taxonomy.

    Secrets passed via ``secrets=`` are masked in log output and in raised
    errors. A command that outlives its ``timeout`` is killed and reported as
    :class:`StageTimeoutError`.

    Args:
        run_func: Injectable replacement for :func:`subprocess.run`.
        base_env: Environment for child processes. Defaults to ``os.environ``.
    """

    def __init__(
        self,
        run_func: Callable[..., Any] | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self._run = run_func or subprocess.run
        self._base_env = dict(base_env) if base_env is not None else None

    def run(
        self,
        args: list[str],
        *,
        description: str,
        error_class: type[CommandError] = CommandError,
        timeout: float | None = None,
        secrets: Iterable[str] = (),
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Run *args* and return its result.

        Args:
            args: Executable and arguments.
            description: Short description of the operation, used in errors.
            error_class: Error raised when the command fails.
            timeout: Kill the process after this many seconds.
            secrets: Values to mask in logs and errors.
            env: Extra environment variables for the child process.
            check: Raise *error_class* on a non-zero exit status.

        Returns:
            The captured ``CommandResult``.

        Raises:
            CommandError: (subclass chosen by *error_class*) on failure to
                start or non-zero exit when *check* is set.
            StageTimeoutError: If *timeout* elapsed before the process exited.
        """
        secret_values = [s for s in secrets if s]
        masked = [mask_secrets(a, secret_values) for a in args]
        logger.debug("Running: %s", " ".join(masked))

        child_env: dict[str, str] | None = None
        if env:
            child_env = dict(self._base_env if self._base_env is not None else os.environ)
            child_env.update(env)
        elif self._base_env is not None:
            child_env = dict(self._base_env)

        try:
            completed = self._run(
                args,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=child_env,
                check=False,
            )
        except FileNotFoundError as exc:
            raise error_class(f"{description}: executable '{args[0]}' not found", masked) from exc
        except subprocess.TimeoutExpired as exc:
            logger.warning("%s: killed after %.0fs", description, timeout or 0)
            raise StageTimeoutError(timeout or 0.0) from exc

        result = CommandResult(
            args=tuple(masked),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=mask_secrets((completed.stderr or "").strip(), secret_values),
        )
        if check and not result.ok:
            raise error_class(description, masked, result.returncode, result.stderr[-_STDERR_LIMIT:])
        return result
