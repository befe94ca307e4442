"""Cloud CLI collaborators: authenticated session and blob storage."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sql_migration_pipeline.core.commands import CommandRunner
from sql_migration_pipeline.core.exceptions import AuthError, CommandError, TransferError

logger = logging.getLogger(__name__)

_BLOB_MISSING_MARKERS = ("BlobNotFound", "The specified blob does not exist")


@dataclass(frozen=True)
class Session:
    """The cloud CLI's active account."""

    tenant_id: str
    subscription_id: str
    user: str = ""


@dataclass(frozen=True)
class AccessToken:
    """A time-limited shared access token for a blob container."""

    token: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"AccessToken(token=***, expires_at={self.expires_at.isoformat()!r})"


class CloudSession:
    """Makes sure the cloud CLI is logged in to the right tenant and subscription.

    Args:
        runner: Command runner used to invoke the CLI.
        az_executable: Cloud CLI executable name.
        timeout_seconds: Timeout for each CLI call.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        az_executable: str = "az",
        timeout_seconds: float | None = 300.0,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._az = az_executable
        self._timeout = timeout_seconds

    def current(self) -> Session | None:
        """Return the active account, or ``None`` when the CLI is logged out."""
        try:
            result = self._runner.run(
                [self._az, "account", "show", "--output", "json"],
                description="Show active cloud account",
                timeout=self._timeout,
                check=False,
            )
        except CommandError as exc:
            raise AuthError(str(exc)) from exc
        if not result.ok or not result.stdout.strip():
            return None
        try:
            account = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise AuthError(f"Unreadable account information from cloud CLI: {exc}") from exc
        return Session(
            tenant_id=account.get("tenantId", ""),
            subscription_id=account.get("id", ""),
            user=(account.get("user") or {}).get("name", ""),
        )

    def ensure_authenticated(self, tenant: str, subscription: str) -> Session:
        """Log in and select *subscription* unless already done.

        Raises:
            AuthError: If login or subscription selection fails.
        """
        session = self.current()
        if session is None or session.tenant_id != tenant:
            logger.info("Logging in to tenant %s", tenant)
            self._call([self._az, "login", "--tenant", tenant, "--output", "none"], "Log in to cloud tenant")
            session = self.current()
            if session is None:
                raise AuthError(f"Cloud CLI is still logged out after login to tenant {tenant}")

        if session.subscription_id != subscription:
            logger.info("Selecting subscription %s", subscription)
            self._call(
                [self._az, "account", "set", "--subscription", subscription],
                "Select cloud subscription",
            )
            session = Session(tenant_id=session.tenant_id, subscription_id=subscription, user=session.user)

        logger.info("Authenticated as %s (subscription %s)", session.user or "<unknown>", session.subscription_id)
        return session

    def _call(self, args: list[str], description: str) -> None:
        try:
            self._runner.run(args, description=description, timeout=self._timeout)
        except CommandError as exc:
            raise AuthError(str(exc)) from exc


class CloudStorage:
    """Blob storage operations through the cloud CLI.

    All data-plane calls use ``--auth-mode login`` so the CLI session, not
    an account key, authorizes them.

    Args:
        runner: Command runner used to invoke the CLI.
        az_executable: Cloud CLI executable name.
        command_timeout_seconds: Timeout for short control commands such as
            token generation.
        now_fn: Injectable UTC clock for token expiry.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        az_executable: str = "az",
        command_timeout_seconds: float = 300.0,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._az = az_executable
        self._command_timeout = command_timeout_seconds
        self._now = now_fn or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def container_url(account: str, container: str) -> str:
        """Return the HTTPS URL of a blob container."""
        return f"https://{account}.blob.core.windows.net/{container}"

    def blob_url(self, account: str, container: str, blob_name: str) -> str:
        """Return the HTTPS URL of a blob."""
        return f"{self.container_url(account, container)}/{blob_name}"

    def generate_access_token(
        self,
        account: str,
        container: str,
        permissions: str,
        expiry: timedelta,
        timeout: float | None = None,
    ) -> AccessToken:
        """Generate a user-delegation access token for *container*.

        The CLI call is bounded by the configured command timeout, or by
        *timeout* when that is shorter.

        Raises:
            TransferError: If the CLI cannot issue the token.
        """
        expires_at = self._now() + expiry
        result = self._runner.run(
            [
                self._az, "storage", "container", "generate-sas",
                "--account-name", account,
                "--name", container,
                "--permissions", permissions,
                "--expiry", expires_at.strftime("%Y-%m-%dT%H:%MZ"),
                "--auth-mode", "login",
                "--as-user",
                "--output", "tsv",
            ],
            description=f"Generate access token for container '{container}'",
            error_class=TransferError,
            timeout=self._command_timeout if timeout is None else min(self._command_timeout, timeout),
        )
        token = result.stdout.strip().strip('"')
        if not token:
            raise TransferError(f"Cloud CLI returned an empty access token for container '{container}'")
        return AccessToken(token=token, expires_at=expires_at)

    def upload(
        self,
        local_path: Path,
        account: str,
        container: str,
        blob_name: str,
        timeout: float | None = None,
    ) -> None:
        """Upload *local_path*, overwriting an existing blob.

        Raises:
            TransferError: If the file is missing or the upload fails.
        """
        if not local_path.is_file():
            raise TransferError(f"Local file not found: {local_path}")
        self._runner.run(
            [
                self._az, "storage", "blob", "upload",
                "--account-name", account,
                "--container-name", container,
                "--name", blob_name,
                "--file", str(local_path),
                "--overwrite", "true",
                "--auth-mode", "login",
                "--output", "none",
            ],
            description=f"Upload {local_path.name} to {container}/{blob_name}",
            error_class=TransferError,
            timeout=timeout,
        )

    def download(
        self,
        account: str,
        container: str,
        blob_name: str,
        local_path: Path,
        timeout: float | None = None,
    ) -> None:
        """Download a blob to *local_path*, overwriting an existing file.

        Raises:
            TransferError: If the download fails.
        """
        local_path.parent.mkdir(parents=True, exist_ok=True)
        self._runner.run(
            [
                self._az, "storage", "blob", "download",
                "--account-name", account,
                "--container-name", container,
                "--name", blob_name,
                "--file", str(local_path),
                "--overwrite", "true",
                "--auth-mode", "login",
                "--output", "none",
            ],
            description=f"Download {container}/{blob_name}",
            error_class=TransferError,
            timeout=timeout,
        )

    def delete(self, account: str, container: str, blob_name: str, timeout: float | None = None) -> bool:
        """Delete a blob.

        Returns:
            True if the blob was deleted, False if it did not exist.

        Raises:
            TransferError: If the deletion fails for another reason.
        """
        result = self._runner.run(
            [
                self._az, "storage", "blob", "delete",
                "--account-name", account,
                "--container-name", container,
                "--name", blob_name,
                "--auth-mode", "login",
                "--output", "none",
            ],
            description=f"Delete {container}/{blob_name}",
            error_class=TransferError,
            timeout=timeout,
            check=False,
        )
        if result.ok:
            return True
        if any(marker in result.stderr for marker in _BLOB_MISSING_MARKERS):
            return False
        raise TransferError(
            f"Delete {container}/{blob_name}", list(result.args), result.returncode, result.stderr
        )
