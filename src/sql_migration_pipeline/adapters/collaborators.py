"""Bundle of the external collaborators a migration needs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sql_migration_pipeline.adapters.cloud import CloudSession, CloudStorage
from sql_migration_pipeline.adapters.database import RemoteDatabase
from sql_migration_pipeline.adapters.packager import SchemaPackager
from sql_migration_pipeline.core.commands import CommandRunner
from sql_migration_pipeline.core.config.migration import MigrationConfig
from sql_migration_pipeline.core.resilience.cancellation import CancellationToken


@dataclass(frozen=True)
class Collaborators:
    """The cloud session, blob storage, SQL engine and packaging tool."""

    session: CloudSession
    storage: CloudStorage
    database: RemoteDatabase
    packager: SchemaPackager

    @classmethod
    def from_config(
        cls,
        config: MigrationConfig,
        runner: CommandRunner | None = None,
        cancel_token: CancellationToken | None = None,
        sleep_func: Callable[[float], None] | None = None,
    ) -> Collaborators:
        """Create CLI-backed collaborators using the configured tool executables."""
        runner = runner or CommandRunner()
        tools = config.tools
        return cls(
            session=CloudSession(runner, tools.az, tools.command_timeout_seconds),
            storage=CloudStorage(runner, tools.az, tools.command_timeout_seconds),
            database=RemoteDatabase(
                runner,
                tools.sqlcmd,
                command_timeout_seconds=tools.command_timeout_seconds,
                probe_interval_seconds=config.probe.interval_seconds,
                cancel_token=cancel_token,
                sleep_func=sleep_func,
            ),
            packager=SchemaPackager(runner, tools.sqlpackage),
        )
