"""Configuration models for sql-migration-pipeline.

Dataclass-based configuration loaded from HOCON with dataconf.
"""

from sql_migration_pipeline.core.config.base import (
    BackoffStrategy,
    DatabaseEdition,
    LogFormat,
    LogLevel,
    MetricsBackend,
    SecretsProvider,
)
from sql_migration_pipeline.core.config.loader import load_from_file, load_from_string
from sql_migration_pipeline.core.config.migration import (
    DEFAULT_STAGE_ORDER,
    AuditConfig,
    CloudConfig,
    LoggingConfig,
    MetricsConfig,
    MigrationConfig,
    ProbeConfig,
    SourceConfig,
    StageConfig,
    StagingConfig,
    StorageConfig,
    TargetConfig,
    ToolsConfig,
)
from sql_migration_pipeline.core.config.presets import RetryPolicies
from sql_migration_pipeline.core.config.retry import RetryConfig
from sql_migration_pipeline.core.config.secret_resolver import (
    build_secrets_resolver,
    parse_secret_reference,
    resolve_secret_fields,
    resolve_secret_value,
)
from sql_migration_pipeline.core.config.secrets import SecretsConfig

__all__ = [
    "DEFAULT_STAGE_ORDER",
    "AuditConfig",
    "BackoffStrategy",
    "CloudConfig",
    "DatabaseEdition",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "MetricsBackend",
    "MetricsConfig",
    "MigrationConfig",
    "ProbeConfig",
    "RetryConfig",
    "RetryPolicies",
    "SecretsConfig",
    "SecretsProvider",
    "SourceConfig",
    "StageConfig",
    "StagingConfig",
    "StorageConfig",
    "TargetConfig",
    "ToolsConfig",
    "build_secrets_resolver",
    "load_from_file",
    "load_from_string",
    "parse_secret_reference",
    "resolve_secret_fields",
    "resolve_secret_value",
]
