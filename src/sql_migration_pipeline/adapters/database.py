"""Remote SQL engine collaborator backed by the ``sqlcmd`` client."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from sql_migration_pipeline.core.commands import CommandRunner
from sql_migration_pipeline.core.exceptions import RestoreError
from sql_migration_pipeline.core.resilience.cancellation import CancellationToken
from sql_migration_pipeline.core.resilience.probe import wait_until
from sql_migration_pipeline.core.secrets.base import SqlCredentials

logger = logging.getLogger(__name__)


def quote_identifier(name: str) -> str:
    """Quote a database object name as ``[name]``."""
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    """Quote a Unicode string literal as ``N'value'``."""
    return "N'" + value.replace("'", "''") + "'"


class RemoteDatabase:
    """Queries and administrative commands against a remote SQL server.

    The password is handed to ``sqlcmd`` through ``SQLCMDPASSWORD`` so it
    never appears on the command line.

    Args:
        runner: Command runner used to invoke ``sqlcmd``.
        sqlcmd_executable: ``sqlcmd`` executable name.
        command_timeout_seconds: Timeout for short control queries.
        login_timeout_seconds: Per-connection login timeout.
        probe_interval_seconds: Pause between reachability probes.
        cancel_token: Checked while probing.
        clock: Injectable monotonic clock for the probe loop.
        sleep_func: Injectable sleep for the probe loop.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        sqlcmd_executable: str = "sqlcmd",
        command_timeout_seconds: float = 300.0,
        login_timeout_seconds: int = 30,
        probe_interval_seconds: float = 30.0,
        cancel_token: CancellationToken | None = None,
        clock: Callable[[], float] | None = None,
        sleep_func: Callable[[float], None] | None = None,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._sqlcmd = sqlcmd_executable
        self._command_timeout = command_timeout_seconds
        self._login_timeout = login_timeout_seconds
        self._probe_interval = probe_interval_seconds
        self._cancel_token = cancel_token
        self._clock = clock
        self._sleep_func = sleep_func

    def query(
        self,
        server: str,
        credentials: SqlCredentials,
        sql: str,
        description: str,
        timeout: float | None = None,
        secrets: tuple[str, ...] = (),
    ) -> list[str]:
        """Run *sql* against ``master`` and return the non-empty output lines.

        Raises:
            RestoreError: If the connection or the statement fails.
        """
        result = self._runner.run(
            [
                self._sqlcmd,
                "-S", server,
                "-U", credentials.username,
                "-d", "master",
                "-l", str(self._login_timeout),
                "-b",
                "-h", "-1",
                "-W",
                "-Q", f"SET NOCOUNT ON; {sql}",
            ],
            description=description,
            error_class=RestoreError,
            timeout=timeout if timeout is not None else self._command_timeout,
            secrets=(credentials.password, *secrets),
            env={"SQLCMDPASSWORD": credentials.password},
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def _control_timeout(self, timeout: float | None) -> float:
        """Return the timeout of a short control query, capped at *timeout*."""
        if timeout is None:
            return self._command_timeout
        return min(self._command_timeout, timeout)

    def probe_reachable(self, server: str, credentials: SqlCredentials, deadline: float) -> bool:
        """Wait up to *deadline* seconds for *server* to accept a login.

        No probe query is allowed to run past *deadline*.

        Returns:
            True once ``SELECT 1`` succeeds, False if the deadline passed.

        Raises:
            RunCancelledError: If cancellation is requested while waiting.
        """
        clock = self._clock or time.monotonic
        ends_at = clock() + deadline

        def reachable() -> bool:
            left = ends_at - clock()
            if left <= 0:
                return False
            rows = self.query(server, credentials, "SELECT 1", f"Probe {server}", self._control_timeout(left))
            return rows == ["1"]

        return wait_until(
            reachable,
            timeout_seconds=deadline,
            interval_seconds=self._probe_interval,
            description=f"server {server} to accept connections",
            clock=self._clock,
            sleep_func=self._sleep_func,
            cancel_token=self._cancel_token,
        )

    def database_state(
        self,
        server: str,
        credentials: SqlCredentials,
        db_name: str,
        timeout: float | None = None,
    ) -> str | None:
        """Return the database's ``state_desc`` (e.g. ``ONLINE``), or ``None`` if it does not exist."""
        rows = self.query(
            server,
            credentials,
            f"SELECT state_desc FROM sys.databases WHERE name = {quote_literal(db_name)}",
            f"Query state of database '{db_name}'",
            self._control_timeout(timeout),
        )
        return rows[0] if rows else None

    def database_exists(
        self,
        server: str,
        credentials: SqlCredentials,
        db_name: str,
        timeout: float | None = None,
    ) -> bool:
        """Return whether *db_name* exists on *server*."""
        return self.database_state(server, credentials, db_name, timeout) is not None

    def drop_database(
        self,
        server: str,
        credentials: SqlCredentials,
        db_name: str,
        timeout: float | None = None,
    ) -> None:
        """Drop *db_name* if it exists.

        Raises:
            RestoreError: If the drop fails.
        """
        logger.info("Dropping database '%s' on %s", db_name, server)
        self.query(
            server,
            credentials,
            f"DROP DATABASE IF EXISTS {quote_identifier(db_name)}",
            f"Drop database '{db_name}'",
            self._control_timeout(timeout),
        )

    def ensure_url_credential(
        self,
        server: str,
        credentials: SqlCredentials,
        container_url: str,
        token: str,
        timeout: float | None = None,
    ) -> None:
        """(Re)create the server credential that lets ``RESTORE ... FROM URL`` read *container_url*.

        Raises:
            RestoreError: If the credential cannot be created.
        """
        name = quote_identifier(container_url)
        self.query(
            server,
            credentials,
            f"IF EXISTS (SELECT 1 FROM sys.credentials WHERE name = {quote_literal(container_url)}) "
            f"DROP CREDENTIAL {name}; "
            f"CREATE CREDENTIAL {name} WITH IDENTITY = 'SHARED ACCESS SIGNATURE', "
            f"SECRET = {quote_literal(token)}",
            f"Create credential for {container_url}",
            self._control_timeout(timeout),
            secrets=(token,),
        )

    def restore_from_url(
        self,
        server: str,
        credentials: SqlCredentials,
        target_db_name: str,
        source_url: str,
        timeout: float | None = None,
    ) -> None:
        """Restore *target_db_name* from the backup blob at *source_url*.

        Raises:
            RestoreError: If the restore fails.
            StageTimeoutError: If *timeout* elapsed first.
        """
        logger.info("Restoring '%s' on %s from %s", target_db_name, server, source_url)
        self.query(
            server,
            credentials,
            f"RESTORE DATABASE {quote_identifier(target_db_name)} FROM URL = {quote_literal(source_url)}",
            f"Restore database '{target_db_name}'",
            timeout=timeout,
        )
