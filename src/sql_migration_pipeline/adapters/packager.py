"""Schema/data packaging collaborator backed by ``sqlpackage``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from sql_migration_pipeline.core.commands import CommandRunner
from sql_migration_pipeline.core.config.base import DatabaseEdition
from sql_migration_pipeline.core.exceptions import PackagingError
from sql_migration_pipeline.core.secrets.base import SqlCredentials

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizingOptions:
    """How the target database is provisioned when a package is imported."""

    edition: DatabaseEdition | None = None
    service_objective: str = ""
    max_size_gb: int | None = None

    def to_args(self) -> list[str]:
        """Return the ``/p:`` properties for ``sqlpackage /Action:Import``."""
        args: list[str] = []
        if self.edition is not None:
            args.append(f"/p:DatabaseEdition={self.edition.value}")
        if self.service_objective:
            args.append(f"/p:DatabaseServiceObjective={self.service_objective}")
        if self.max_size_gb is not None:
            args.append(f"/p:DatabaseMaximumSize={self.max_size_gb}")
        return args


class SchemaPackager:
    """Exports a database to a package file and imports it elsewhere.

    Args:
        runner: Command runner used to invoke ``sqlpackage``.
        sqlpackage_executable: ``sqlpackage`` executable name.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        sqlpackage_executable: str = "sqlpackage",
    ) -> None:
        self._runner = runner or CommandRunner()
        self._sqlpackage = sqlpackage_executable

    def export(
        self,
        source_server: str,
        source_db: str,
        credentials: SqlCredentials,
        output_file: Path,
        timeout: float | None = None,
    ) -> None:
        """Export *source_db* to *output_file*.

        Raises:
            PackagingError: If the export fails.
        """
        output_file.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Exporting '%s' from %s to %s", source_db, source_server, output_file)
        self._runner.run(
            [
                self._sqlpackage,
                "/Action:Export",
                f"/SourceServerName:{source_server}",
                f"/SourceDatabaseName:{source_db}",
                f"/SourceUser:{credentials.username}",
                f"/SourcePassword:{credentials.password}",
                f"/TargetFile:{output_file}",
            ],
            description=f"Export database '{source_db}'",
            error_class=PackagingError,
            timeout=timeout,
            secrets=(credentials.password,),
        )

    def import_(
        self,
        target_server: str,
        target_db: str,
        credentials: SqlCredentials,
        input_file: Path,
        sizing: SizingOptions | None = None,
        timeout: float | None = None,
    ) -> None:
        """Import *input_file* into a new database *target_db*.

        Raises:
            PackagingError: If the package is missing or the import fails.
        """
        if not input_file.is_file():
            raise PackagingError(f"Package file not found: {input_file}")
        logger.info("Importing %s into '%s' on %s", input_file, target_db, target_server)
        self._runner.run(
            [
                self._sqlpackage,
                "/Action:Import",
                f"/TargetServerName:{target_server}",
                f"/TargetDatabaseName:{target_db}",
                f"/TargetUser:{credentials.username}",
                f"/TargetPassword:{credentials.password}",
                f"/SourceFile:{input_file}",
                *(sizing or SizingOptions()).to_args(),
            ],
            description=f"Import database '{target_db}'",
            error_class=PackagingError,
            timeout=timeout,
            secrets=(credentials.password,),
        )
