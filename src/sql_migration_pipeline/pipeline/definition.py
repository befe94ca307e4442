"""Pipeline definition: the ordered, immutable recipe of stages."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator
from enum import Enum
from pathlib import Path

from sql_migration_pipeline.adapters.actions import (
    DeleteArtifactAction,
    DownloadArtifactAction,
    DropDatabaseAction,
    ExportToArchiveAction,
    ImportToTargetAction,
    RestoreToStagingAction,
    UploadArtifactAction,
)
from sql_migration_pipeline.adapters.collaborators import Collaborators
from sql_migration_pipeline.adapters.packager import SizingOptions
from sql_migration_pipeline.core.config.migration import MigrationConfig
from sql_migration_pipeline.core.config.presets import RetryPolicies
from sql_migration_pipeline.core.config.retry import RetryConfig
from sql_migration_pipeline.core.exceptions import ConfigurationError
from sql_migration_pipeline.core.secrets.base import SqlCredentials
from sql_migration_pipeline.pipeline.stage import ExternalAction, Stage


class StageKind(str, Enum):
    """Built-in stage kinds. A stage's configured name selects its kind."""

    UPLOAD_BACKUP = "upload-backup"
    RESTORE_STAGING = "restore-staging"
    EXPORT_PACKAGE = "export-package"
    UPLOAD_PACKAGE = "upload-package"
    DOWNLOAD_PACKAGE = "download-package"
    IMPORT_TARGET = "import-target"
    DELETE_BACKUP_BLOB = "delete-backup-blob"
    DROP_STAGING = "drop-staging"


_STAGING = ("staging.server", "staging.database", "staging.username", "staging.password")
_TARGET = ("target.server", "target.database", "target.username", "target.password")
_STORAGE = ("storage.account", "storage.container")

REQUIRED_PARAMETERS: dict[StageKind, tuple[str, ...]] = {
    StageKind.UPLOAD_BACKUP: ("source.backup_file", *_STORAGE, "storage.backup_blob"),
    StageKind.RESTORE_STAGING: (*_STAGING, *_STORAGE, "storage.backup_blob"),
    StageKind.EXPORT_PACKAGE: _STAGING,
    StageKind.UPLOAD_PACKAGE: (*_STORAGE, "storage.package_blob"),
    StageKind.DOWNLOAD_PACKAGE: (*_STORAGE, "storage.package_blob"),
    StageKind.IMPORT_TARGET: _TARGET,
    StageKind.DELETE_BACKUP_BLOB: (*_STORAGE, "storage.backup_blob"),
    StageKind.DROP_STAGING: _STAGING,
}
"""Configuration fields each stage kind needs, as ``section.field`` paths."""

AUTH_PARAMETERS: tuple[str, ...] = ("cloud.tenant_id", "cloud.subscription_id")

DEFAULT_RETRY: dict[StageKind, RetryConfig] = {
    StageKind.UPLOAD_BACKUP: RetryPolicies.TRANSFER,
    StageKind.RESTORE_STAGING: RetryPolicies.LONG_RUNNING,
    StageKind.EXPORT_PACKAGE: RetryPolicies.LONG_RUNNING,
    StageKind.UPLOAD_PACKAGE: RetryPolicies.TRANSFER,
    StageKind.DOWNLOAD_PACKAGE: RetryPolicies.TRANSFER,
    StageKind.IMPORT_TARGET: RetryPolicies.LONG_RUNNING,
    StageKind.DELETE_BACKUP_BLOB: RetryPolicies.DEFAULT,
    StageKind.DROP_STAGING: RetryPolicies.DEFAULT,
}


class PipelineDefinition:
    """Ordered, immutable sequence of uniquely named stages.

    Raises:
        ConfigurationError: If there are no stages or a name repeats.
    """

    def __init__(self, name: str, stages: Iterable[Stage]) -> None:
        self._name = name
        self._stages: tuple[Stage, ...] = tuple(stages)
        if not self._stages:
            raise ConfigurationError(f"Pipeline '{name}' has no enabled stages")
        names = [s.name for s in self._stages]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate stage names: {', '.join(duplicates)}")

    @property
    def name(self) -> str:
        return self._name

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self._stages]

    def get_stage(self, name: str) -> Stage | None:
        """Get a stage by name, or ``None`` if it is not part of the pipeline."""
        for stage in self._stages:
            if stage.name == name:
                return stage
        return None

    def fingerprint(self) -> str:
        """Return a SHA-256 over stage names and action types.

        Timeouts and retry policies are left out so that tuning them between
        a failed run and its resume does not invalidate the checkpoint.
        """
        hasher = hashlib.sha256()
        hasher.update(self._name.encode())
        for stage in self._stages:
            hasher.update(stage.name.encode())
            hasher.update(type(stage.action).__name__.encode())
        return hasher.hexdigest()

    def __iter__(self) -> Iterator[Stage]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)


def backup_blob_name(config: MigrationConfig) -> str:
    """Return the configured backup blob name, defaulting to the backup's file name."""
    if config.storage.backup_blob:
        return config.storage.backup_blob
    return Path(config.source.backup_file).name if config.source.backup_file else ""


def package_blob_name(config: MigrationConfig) -> str:
    """Return the configured package blob name, defaulting to the package's file name."""
    return config.storage.package_blob or config.package_file.name


def _lookup(config: MigrationConfig, path: str) -> object:
    if path == "storage.backup_blob":
        return backup_blob_name(config)
    if path == "storage.package_blob":
        return package_blob_name(config)
    section, _, field_name = path.partition(".")
    return getattr(getattr(config, section), field_name)


def find_missing_parameters(config: MigrationConfig) -> list[str]:
    """Return ``path (stage 'name')`` for every empty parameter an enabled stage needs.

    The cloud tenant and subscription are needed by every run and are
    reported as ``path (authentication)``.
    """
    missing = [f"{path} (authentication)" for path in AUTH_PARAMETERS if not _lookup(config, path)]
    for stage_config in config.enabled_stages():
        kind = StageKind(stage_config.name)
        for path in REQUIRED_PARAMETERS[kind]:
            value = _lookup(config, path)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(f"{path} (stage '{stage_config.name}')")
    return missing


def _build_action(kind: StageKind, config: MigrationConfig, collaborators: Collaborators) -> ExternalAction:
    storage = config.storage
    staging = config.staging
    target = config.target
    staging_credentials = SqlCredentials(staging.username, staging.password)

    if kind is StageKind.UPLOAD_BACKUP:
        return UploadArtifactAction(
            collaborators.storage,
            Path(config.source.backup_file),
            storage.account,
            storage.container,
            backup_blob_name(config),
        )
    if kind is StageKind.RESTORE_STAGING:
        return RestoreToStagingAction(
            collaborators.database,
            collaborators.storage,
            staging.server,
            staging_credentials,
            staging.database,
            storage.account,
            storage.container,
            backup_blob_name(config),
            token_permissions=storage.token_permissions,
            token_expiry_hours=storage.token_expiry_hours,
            probe_timeout_seconds=config.probe.timeout_seconds,
        )
    if kind is StageKind.EXPORT_PACKAGE:
        return ExportToArchiveAction(
            collaborators.packager,
            staging.server,
            staging_credentials,
            staging.database,
            config.package_file,
        )
    if kind is StageKind.UPLOAD_PACKAGE:
        return UploadArtifactAction(
            collaborators.storage,
            config.package_file,
            storage.account,
            storage.container,
            package_blob_name(config),
        )
    if kind is StageKind.DOWNLOAD_PACKAGE:
        return DownloadArtifactAction(
            collaborators.storage,
            storage.account,
            storage.container,
            package_blob_name(config),
            config.package_file,
        )
    if kind is StageKind.IMPORT_TARGET:
        return ImportToTargetAction(
            collaborators.packager,
            collaborators.database,
            target.server,
            SqlCredentials(target.username, target.password),
            target.database,
            config.package_file,
            SizingOptions(target.database_edition, target.service_objective, target.max_size_gb),
        )
    if kind is StageKind.DELETE_BACKUP_BLOB:
        return DeleteArtifactAction(
            collaborators.storage,
            storage.account,
            storage.container,
            backup_blob_name(config),
        )
    return DropDatabaseAction(collaborators.database, staging.server, staging_credentials, staging.database)


def build_migration_pipeline(config: MigrationConfig, collaborators: Collaborators) -> PipelineDefinition:
    """Assemble the pipeline for the enabled stages of *config*.

    Pure data assembly: no external call is made.

    Raises:
        ConfigurationError: If a stage name is unknown, or any parameter an
            enabled stage needs is missing or empty. All problems are
            reported at once.
    """
    known = {kind.value for kind in StageKind}
    unknown = [s.name for s in config.enabled_stages() if s.name not in known]
    if unknown:
        raise ConfigurationError(
            f"Unknown stage(s): {', '.join(unknown)}; expected one of {', '.join(sorted(known))}"
        )

    missing = find_missing_parameters(config)
    if missing:
        raise ConfigurationError(
            "Missing required configuration: " + "; ".join(missing),
            missing=missing,
        )

    stages = []
    for stage_config in config.enabled_stages():
        kind = StageKind(stage_config.name)
        stages.append(
            Stage(
                name=stage_config.name,
                action=_build_action(kind, config, collaborators),
                timeout_seconds=stage_config.timeout_seconds,
                retry=stage_config.retry or DEFAULT_RETRY[kind],
            )
        )
    return PipelineDefinition(config.name, stages)
