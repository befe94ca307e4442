"""External actions run by the pipeline stages.

Each action wraps one external operation. Its class docstring states
whether it is safe to blind-retry, what runs before a retry, and what a
failure may leave behind.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path

from sql_migration_pipeline.adapters.cloud import CloudStorage
from sql_migration_pipeline.adapters.database import RemoteDatabase
from sql_migration_pipeline.adapters.packager import SchemaPackager, SizingOptions
from sql_migration_pipeline.core.exceptions import ConfigurationError, RestoreError, TransferError
from sql_migration_pipeline.core.secrets.base import SqlCredentials
from sql_migration_pipeline.pipeline.stage import ActionContext, ActionOutcome, ExternalAction

logger = logging.getLogger(__name__)


class UploadArtifactAction(ExternalAction):
    """Upload a local file to blob storage.

    Idempotent: the blob is overwritten on every attempt.
    Leaves behind: a partially written blob, replaced by the next attempt.
    """

    idempotent = True

    def __init__(
        self,
        storage: CloudStorage,
        local_path: Path,
        account: str,
        container: str,
        blob_name: str,
    ) -> None:
        self._storage = storage
        self._local_path = local_path
        self._account = account
        self._container = container
        self._blob_name = blob_name
        self.leaves_behind = f"partially uploaded blob {container}/{blob_name}"

    def execute(self, context: ActionContext) -> ActionOutcome:
        self._storage.upload(
            self._local_path,
            self._account,
            self._container,
            self._blob_name,
            timeout=context.remaining_seconds(),
        )
        return ActionOutcome.ok(self._storage.blob_url(self._account, self._container, self._blob_name))

    def describe(self) -> str:
        return f"upload {self._local_path} -> {self._container}/{self._blob_name}"


class DownloadArtifactAction(ExternalAction):
    """Download a blob to a local file.

    Idempotent: the local file is overwritten on every attempt.
    Leaves behind: a truncated local file, replaced by the next attempt.
    """

    idempotent = True

    def __init__(
        self,
        storage: CloudStorage,
        account: str,
        container: str,
        blob_name: str,
        local_path: Path,
    ) -> None:
        self._storage = storage
        self._account = account
        self._container = container
        self._blob_name = blob_name
        self._local_path = local_path
        self.leaves_behind = f"partial local file {local_path}"

    def execute(self, context: ActionContext) -> ActionOutcome:
        self._storage.download(
            self._account,
            self._container,
            self._blob_name,
            self._local_path,
            timeout=context.remaining_seconds(),
        )
        return ActionOutcome.ok(str(self._local_path))

    def describe(self) -> str:
        return f"download {self._container}/{self._blob_name} -> {self._local_path}"


class RestoreToStagingAction(ExternalAction):
    """Restore the uploaded backup onto the staging server.

    Not idempotent: re-issuing a restore over a half-restored database fails.
    Pre-retry check: wait for the server to be reachable again, then drop
    the staging database if any earlier attempt created it.
    Leaves behind: the staging database, possibly stuck in ``RESTORING``,
    and a server credential scoped to the container URL.

    The staging database is a disposable waypoint, so one left over from an
    earlier run is dropped before the first attempt as well.
    """

    idempotent = False

    def __init__(
        self,
        database: RemoteDatabase,
        storage: CloudStorage,
        server: str,
        credentials: SqlCredentials,
        database_name: str,
        account: str,
        container: str,
        blob_name: str,
        token_permissions: str = "rl",
        token_expiry_hours: int = 8,
        probe_timeout_seconds: float = 900.0,
    ) -> None:
        self._database = database
        self._storage = storage
        self._server = server
        self._credentials = credentials
        self._database_name = database_name
        self._account = account
        self._container = container
        self._blob_name = blob_name
        self._token_permissions = token_permissions
        self._token_expiry = timedelta(hours=token_expiry_hours)
        self._probe_timeout = probe_timeout_seconds
        self.leaves_behind = (
            f"staging database '{database_name}' on {server} (possibly in RESTORING state) "
            f"and the server credential for container '{container}'"
        )

    def execute(self, context: ActionContext) -> ActionOutcome:
        self._wait_for_server(context)
        if context.attempt_number == 1:
            self._drop_if_present(context, "left over from an earlier run")

        token = self._storage.generate_access_token(
            self._account,
            self._container,
            self._token_permissions,
            self._token_expiry,
            timeout=context.remaining_seconds(),
        )
        container_url = self._storage.container_url(self._account, self._container)
        self._database.ensure_url_credential(
            self._server, self._credentials, container_url, token.token, timeout=context.remaining_seconds()
        )
        self._database.restore_from_url(
            self._server,
            self._credentials,
            self._database_name,
            f"{container_url}/{self._blob_name}",
            timeout=context.remaining_seconds(),
        )

        state = self._database.database_state(
            self._server, self._credentials, self._database_name, timeout=context.remaining_seconds()
        )
        if state != "ONLINE":
            raise RestoreError(
                f"Database '{self._database_name}' is {state or 'missing'} after restore, expected ONLINE"
            )
        return ActionOutcome.ok(f"{self._server}/{self._database_name}")

    def pre_retry_check(self, context: ActionContext) -> None:
        self._wait_for_server(context)
        self._drop_if_present(context, f"partially restored by attempt {context.attempt_number - 1}")

    def describe(self) -> str:
        return f"restore {self._container}/{self._blob_name} -> {self._server}/{self._database_name}"

    def _wait_for_server(self, context: ActionContext) -> None:
        remaining = context.remaining_seconds()
        budget = self._probe_timeout if remaining is None else min(self._probe_timeout, remaining)
        if not self._database.probe_reachable(self._server, self._credentials, budget):
            raise RestoreError(f"Server {self._server} not reachable within {budget:.0f}s")

    def _drop_if_present(self, context: ActionContext, why: str) -> None:
        if self._database.database_exists(
            self._server, self._credentials, self._database_name, timeout=context.remaining_seconds()
        ):
            logger.warning("Dropping staging database '%s' (%s)", self._database_name, why)
            self._database.drop_database(
                self._server, self._credentials, self._database_name, timeout=context.remaining_seconds()
            )


class ExportToArchiveAction(ExternalAction):
    """Export the staging database to a local package file.

    Idempotent: a partial package from an earlier attempt is deleted before
    the export starts. The source database is only read.
    Leaves behind: a partial package file.
    """

    idempotent = True

    def __init__(
        self,
        packager: SchemaPackager,
        server: str,
        credentials: SqlCredentials,
        database_name: str,
        output_file: Path,
    ) -> None:
        self._packager = packager
        self._server = server
        self._credentials = credentials
        self._database_name = database_name
        self._output_file = output_file
        self.leaves_behind = f"partial package file {output_file}"

    def execute(self, context: ActionContext) -> ActionOutcome:
        self._output_file.unlink(missing_ok=True)
        self._packager.export(
            self._server,
            self._database_name,
            self._credentials,
            self._output_file,
            timeout=context.remaining_seconds(),
        )
        return ActionOutcome.ok(str(self._output_file))

    def describe(self) -> str:
        return f"export {self._server}/{self._database_name} -> {self._output_file}"


class ImportToTargetAction(ExternalAction):
    """Import the package into the target server as a new database.

    Not idempotent: an import into an existing database fails.
    Pre-retry check: drop the target database created by the failed attempt.
    Leaves behind: a partially imported target database.

    A target database that already exists before the first attempt is never
    touched; the stage fails with a configuration error instead.
    """

    idempotent = False

    def __init__(
        self,
        packager: SchemaPackager,
        database: RemoteDatabase,
        server: str,
        credentials: SqlCredentials,
        database_name: str,
        input_file: Path,
        sizing: SizingOptions | None = None,
    ) -> None:
        self._packager = packager
        self._database = database
        self._server = server
        self._credentials = credentials
        self._database_name = database_name
        self._input_file = input_file
        self._sizing = sizing or SizingOptions()
        self.leaves_behind = f"partially imported database '{database_name}' on {server}"

    def execute(self, context: ActionContext) -> ActionOutcome:
        if context.attempt_number == 1 and self._database.database_exists(
            self._server, self._credentials, self._database_name, timeout=context.remaining_seconds()
        ):
            raise ConfigurationError(
                f"Target database '{self._database_name}' already exists on {self._server}; refusing to overwrite"
            )
        self._packager.import_(
            self._server,
            self._database_name,
            self._credentials,
            self._input_file,
            sizing=self._sizing,
            timeout=context.remaining_seconds(),
        )
        return ActionOutcome.ok(f"{self._server}/{self._database_name}")

    def pre_retry_check(self, context: ActionContext) -> None:
        if self._database.database_exists(
            self._server, self._credentials, self._database_name, timeout=context.remaining_seconds()
        ):
            logger.warning(
                "Dropping target database '%s' partially imported by attempt %d",
                self._database_name,
                context.attempt_number - 1,
            )
            self._database.drop_database(
                self._server, self._credentials, self._database_name, timeout=context.remaining_seconds()
            )

    def describe(self) -> str:
        return f"import {self._input_file} -> {self._server}/{self._database_name}"


class DeleteArtifactAction(ExternalAction):
    """Delete a blob once it is no longer needed.

    Idempotent: a blob that is already gone counts as deleted.
    Best effort by default: a failed deletion is reported in the outcome's
    detail but does not fail the stage.
    Leaves behind: the blob, if deletion failed.
    """

    idempotent = True

    def __init__(
        self,
        storage: CloudStorage,
        account: str,
        container: str,
        blob_name: str,
        best_effort: bool = True,
    ) -> None:
        self._storage = storage
        self._account = account
        self._container = container
        self._blob_name = blob_name
        self._best_effort = best_effort
        self.leaves_behind = f"blob {container}/{blob_name}"

    def execute(self, context: ActionContext) -> ActionOutcome:
        try:
            deleted = self._storage.delete(
                self._account, self._container, self._blob_name, timeout=context.remaining_seconds()
            )
        except TransferError as exc:
            if not self._best_effort:
                raise
            logger.warning("Could not delete %s/%s: %s", self._container, self._blob_name, exc)
            return ActionOutcome(success=True, error_detail=f"delete skipped: {exc}")

        if not deleted:
            logger.info("Blob %s/%s was already gone", self._container, self._blob_name)
        return ActionOutcome.ok()

    def describe(self) -> str:
        return f"delete {self._container}/{self._blob_name}"


class DropDatabaseAction(ExternalAction):
    """Drop a database, typically the staging waypoint after export.

    Idempotent: dropping a database that does not exist succeeds.
    Leaves behind: the database, if the drop failed.
    """

    idempotent = True

    def __init__(
        self,
        database: RemoteDatabase,
        server: str,
        credentials: SqlCredentials,
        database_name: str,
    ) -> None:
        self._database = database
        self._server = server
        self._credentials = credentials
        self._database_name = database_name
        self.leaves_behind = f"database '{database_name}' on {server}"

    def execute(self, context: ActionContext) -> ActionOutcome:
        self._database.drop_database(
            self._server, self._credentials, self._database_name, timeout=context.remaining_seconds()
        )
        return ActionOutcome.ok()

    def describe(self) -> str:
        return f"drop {self._server}/{self._database_name}"
