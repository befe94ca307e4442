"""Audit log of pipeline attempts."""

from sql_migration_pipeline.audit.log import AuditLog
from sql_migration_pipeline.audit.mirror import StorageMirror
from sql_migration_pipeline.audit.sinks import (
    AuditSink,
    CompositeAuditSink,
    FileAuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    read_audit_file,
)
from sql_migration_pipeline.audit.types import AuditSummary

__all__ = [
    "AuditLog",
    "AuditSink",
    "AuditSummary",
    "CompositeAuditSink",
    "FileAuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "StorageMirror",
    "read_audit_file",
]
