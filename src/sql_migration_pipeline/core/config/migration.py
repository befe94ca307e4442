"""Top-level migration configuration models.

Every section has defaults so that a partial HOCON file still parses. Which
fields are actually required depends on the stages that are enabled; that
check happens when the pipeline is built, see
:func:`sql_migration_pipeline.pipeline.definition.build_migration_pipeline`.
"""

from dataclasses import dataclass, field
from pathlib import Path

from sql_migration_pipeline.core.config.base import DatabaseEdition, LogFormat, LogLevel, MetricsBackend
from sql_migration_pipeline.core.config.retry import RetryConfig
from sql_migration_pipeline.core.config.secrets import SecretsConfig

DEFAULT_STAGE_ORDER: list[str] = [
    "upload-backup",
    "restore-staging",
    "export-package",
    "upload-package",
    "import-target",
    "delete-backup-blob",
]
"""Stage order used when the configuration does not list stages."""


@dataclass
class StageConfig:
    """Configuration for a single pipeline stage."""

    name: str
    """Stage kind, e.g. ``restore-staging`` (required)"""

    timeout_seconds: float = 3600.0
    """Deadline for a single attempt in seconds (default: 3600)"""

    retry: RetryConfig | None = None
    """Retry policy; the stage kind's preset is used when omitted"""

    enabled: bool = True
    """Whether this stage runs (default: True)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.name:
            raise ValueError("stage name is required")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds for stage '{self.name}' must be positive")


@dataclass
class CloudConfig:
    """Cloud account selection."""

    tenant_id: str = ""
    """Directory (tenant) to authenticate against"""

    subscription_id: str = ""
    """Subscription that owns the storage account and SQL resources"""


@dataclass
class StorageConfig:
    """Blob storage used to stage the backup and the exported package."""

    account: str = ""
    """Storage account name"""

    container: str = ""
    """Blob container name"""

    backup_blob: str = ""
    """Blob name for the backup file (default: the backup's file name)"""

    package_blob: str = ""
    """Blob name for the exported package (default: the local package's file name)"""

    token_expiry_hours: int = 8
    """Lifetime of generated access tokens in hours (default: 8)"""

    token_permissions: str = "rl"
    """Permissions granted to the restore token (default: read + list)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.token_expiry_hours < 1:
            raise ValueError("token_expiry_hours must be at least 1")


@dataclass
class SourceConfig:
    """Where the SQL Server backup comes from."""

    backup_file: str = ""
    """Local path of the ``.bak`` file"""


@dataclass
class StagingConfig:
    """Intermediate managed instance the backup is restored onto."""

    server: str = ""
    """Server address, e.g. ``mi-staging.abc123.database.windows.net``"""

    database: str = ""
    """Name of the temporary staging database"""

    username: str = ""
    """SQL admin login"""

    password: str = ""
    """SQL admin password or ``secret://PROVIDER/KEY`` reference"""


@dataclass
class TargetConfig:
    """Final managed database the package is imported into."""

    server: str = ""
    """Server address, e.g. ``sql-prod.database.windows.net``"""

    database: str = ""
    """Name of the target database"""

    username: str = ""
    """SQL admin login"""

    password: str = ""
    """SQL admin password or ``secret://PROVIDER/KEY`` reference"""

    edition: str = ""
    """Database edition to create on import, e.g. ``GeneralPurpose`` (optional)"""

    service_objective: str = ""
    """Service objective, e.g. ``S3`` or ``GP_Gen5_2`` (optional)"""

    max_size_gb: int | None = None
    """Maximum database size in GB (optional)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.edition:
            valid = [e.value for e in DatabaseEdition]
            if self.edition not in valid:
                raise ValueError(f"Invalid edition {self.edition!r}; must be one of {valid}")
        if self.max_size_gb is not None and self.max_size_gb < 1:
            raise ValueError("max_size_gb must be at least 1")

    @property
    def database_edition(self) -> DatabaseEdition | None:
        """Return the edition as an enum member, or ``None`` when unset."""
        return DatabaseEdition(self.edition) if self.edition else None


@dataclass
class ProbeConfig:
    """Bounded wait for a remote server to accept connections."""

    timeout_seconds: float = 900.0
    """Maximum wall-clock wait in seconds (default: 900)"""

    interval_seconds: float = 30.0
    """Pause between connection attempts in seconds (default: 30)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.timeout_seconds <= 0:
            raise ValueError("probe timeout_seconds must be positive")
        if self.interval_seconds <= 0:
            raise ValueError("probe interval_seconds must be positive")


@dataclass
class AuditConfig:
    """Audit log persistence."""

    path: str = ""
    """JSON-lines file for attempt records (default: ``{work_dir}/audit/{run_id}.jsonl``)"""

    mirror_to_storage: bool = False
    """Also upload the audit log to the configured blob container (default: False)"""

    mirror_blob_prefix: str = "audit/"
    """Blob name prefix for the mirrored audit log (default: ``audit/``)"""


@dataclass
class MetricsConfig:
    """Metrics collection."""

    enabled: bool = False
    """Collect stage metrics (default: False)"""

    backend: MetricsBackend = MetricsBackend.MEMORY
    """Metrics backend (default: memory)"""

    textfile_path: str = ""
    """Prometheus textfile-collector output path (prometheus backend only)"""


@dataclass
class LoggingConfig:
    """Logging behavior."""

    level: LogLevel = LogLevel.INFO
    """Logging level (default: INFO)"""

    format: LogFormat = LogFormat.TEXT
    """Log output format (default: text)"""


@dataclass
class ToolsConfig:
    """Executables of the external tools."""

    az: str = "az"
    """Cloud CLI executable (default: ``az``)"""

    sqlcmd: str = "sqlcmd"
    """SQL command-line client executable (default: ``sqlcmd``)"""

    sqlpackage: str = "sqlpackage"
    """Schema/data packaging tool executable (default: ``sqlpackage``)"""

    command_timeout_seconds: float = 300.0
    """Timeout for short control commands such as queries (default: 300)"""


@dataclass
class MigrationConfig:
    """Top-level configuration for a migration run."""

    name: str
    """Migration name, used for checkpoints and metrics (required)"""

    work_dir: str = "./work"
    """Local directory for packages, audit logs and summaries (default: ./work)"""

    checkpoint_dir: str = ""
    """Checkpoint directory (default: ``{work_dir}/checkpoints``)"""

    stages: list[StageConfig] = field(default_factory=list)
    """Ordered stages to run (default: ``DEFAULT_STAGE_ORDER`` when empty)"""

    cloud: CloudConfig = field(default_factory=CloudConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    staging: StagingConfig = field(default_factory=StagingConfig)
    target: TargetConfig = field(default_factory=TargetConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)

    secrets: SecretsConfig | None = None
    """Secrets management configuration (optional)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.name:
            raise ValueError("name is required")
        if not self.stages:
            self.stages = [StageConfig(name=name) for name in DEFAULT_STAGE_ORDER]

        stage_names = [s.name for s in self.stages]
        if len(stage_names) != len(set(stage_names)):
            raise ValueError("Stage names must be unique")

    @property
    def work_path(self) -> Path:
        """Return the work directory as a path."""
        return Path(self.work_dir)

    @property
    def checkpoint_path(self) -> Path:
        """Return the checkpoint directory, defaulting under the work directory."""
        return Path(self.checkpoint_dir) if self.checkpoint_dir else self.work_path / "checkpoints"

    @property
    def package_file(self) -> Path:
        """Return the local path of the exported package."""
        return self.work_path / f"{self.staging.database or self.name}.bacpac"

    def enabled_stages(self) -> list[StageConfig]:
        """Return enabled stages in declared order."""
        return [s for s in self.stages if s.enabled]

    def get_stage(self, name: str) -> StageConfig | None:
        """Get a stage by name, or ``None`` if it is not configured."""
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None
