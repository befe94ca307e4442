"""External collaborators and the actions built on them."""

from sql_migration_pipeline.adapters.actions import (
    DeleteArtifactAction,
    DownloadArtifactAction,
    DropDatabaseAction,
    ExportToArchiveAction,
    ImportToTargetAction,
    RestoreToStagingAction,
    UploadArtifactAction,
)
from sql_migration_pipeline.adapters.cloud import AccessToken, CloudSession, CloudStorage, Session
from sql_migration_pipeline.adapters.collaborators import Collaborators
from sql_migration_pipeline.adapters.database import RemoteDatabase
from sql_migration_pipeline.adapters.packager import SchemaPackager, SizingOptions

__all__ = [
    "AccessToken",
    "CloudSession",
    "CloudStorage",
    "Collaborators",
    "DeleteArtifactAction",
    "DownloadArtifactAction",
    "DropDatabaseAction",
    "ExportToArchiveAction",
    "ImportToTargetAction",
    "RemoteDatabase",
    "RestoreToStagingAction",
    "SchemaPackager",
    "Session",
    "SizingOptions",
    "UploadArtifactAction",
]
