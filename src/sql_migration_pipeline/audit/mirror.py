"""Remote copy of the local audit log."""

from __future__ import annotations

import logging
from pathlib import Path

from sql_migration_pipeline.adapters.cloud import CloudStorage

logger = logging.getLogger(__name__)


class StorageMirror:
    """Upload the local JSON-lines audit file to blob storage.

    The mirror is a convenience copy; the local file stays the record of
    truth. Callers go through :meth:`AuditLog.sync_mirror`, which turns
    failures into warnings.

    Args:
        storage: Blob storage collaborator.
        local_path: The local audit file.
        account: Storage account name.
        container: Container name.
        blob_name: Destination blob.
        timeout_seconds: Timeout for one upload.
    """

    def __init__(
        self,
        storage: CloudStorage,
        local_path: Path,
        account: str,
        container: str,
        blob_name: str,
        timeout_seconds: float | None = 300.0,
    ) -> None:
        self._storage = storage
        self._local_path = local_path
        self._account = account
        self._container = container
        self._blob_name = blob_name
        self._timeout = timeout_seconds

    @property
    def blob_name(self) -> str:
        return self._blob_name

    def sync(self) -> None:
        """Upload the current local file, replacing the previous copy.

        Raises:
            TransferError: If the upload fails.
        """
        if not self._local_path.is_file():
            logger.debug("Audit file %s not written yet; nothing to mirror", self._local_path)
            return
        self._storage.upload(
            self._local_path,
            self._account,
            self._container,
            self._blob_name,
            timeout=self._timeout,
        )
