"""Command-line interface for running a migration."""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Any

from sql_migration_pipeline.adapters.collaborators import Collaborators
from sql_migration_pipeline.audit.log import AuditLog
from sql_migration_pipeline.audit.mirror import StorageMirror
from sql_migration_pipeline.audit.sinks import CompositeAuditSink, FileAuditSink, LoggingAuditSink
from sql_migration_pipeline.core.commands import CommandRunner
from sql_migration_pipeline.core.config.base import LogFormat, MetricsBackend
from sql_migration_pipeline.core.config.loader import load_from_file
from sql_migration_pipeline.core.config.migration import MigrationConfig
from sql_migration_pipeline.core.config.secret_resolver import build_secrets_resolver, resolve_secret_fields
from sql_migration_pipeline.core.exceptions import AuthError, ConfigurationError
from sql_migration_pipeline.core.metrics.exporters import PrometheusRegistry
from sql_migration_pipeline.core.metrics.registry import InMemoryRegistry, MeterRegistry
from sql_migration_pipeline.core.resilience.cancellation import CancellationToken
from sql_migration_pipeline.core.utils import safe_call
from sql_migration_pipeline.pipeline.definition import PipelineDefinition, build_migration_pipeline
from sql_migration_pipeline.runner.checkpoint import CheckpointHooks, LocalCheckpointStore, load_checkpoint_for_resume
from sql_migration_pipeline.runner.hooks import CompositeHooks
from sql_migration_pipeline.runner.hooks_builtin import LoggingHooks, MetricsHooks
from sql_migration_pipeline.runner.pipeline_runner import PipelineRunner, new_run_id
from sql_migration_pipeline.runner.summary import SUMMARY_FILE_NAME, RunSummary, format_summary, write_summary

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SQLMIG_CONFIG"
DEFAULT_CONFIG_FILE = "migration.conf"

EXIT_SUCCESS = 0
EXIT_STAGE_FAILURE = 1
EXIT_CONFIG_ERROR = 2


class JsonLogFormatter(logging.Formatter):
    """One JSON object per log line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(level: str, log_format: LogFormat = LogFormat.TEXT) -> None:
    """Configure the root logger for a CLI run."""
    handler = logging.StreamHandler()
    if log_format is LogFormat.JSON:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logging.basicConfig(level=getattr(logging, level), handlers=[handler], force=True)


def default_config_path() -> str:
    """Return ``$SQLMIG_CONFIG`` if set, else ``./migration.conf``."""
    return os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlmig-run",
        description="Migrate a SQL Server backup into a managed cloud database.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"HOCON configuration file (default: ${CONFIG_ENV_VAR} or ./{DEFAULT_CONFIG_FILE}).",
    )
    parser.add_argument(
        "--resume",
        metavar="RUN_ID",
        default=None,
        help="Resume a failed run, skipping the stages it completed.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Validate the configuration and print the stage plan without running it.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the configured logging level.",
    )
    return parser


def install_signal_handlers(token: CancellationToken) -> None:
    """Turn SIGINT and SIGTERM into a cooperative cancellation request."""
    if threading.current_thread() is not threading.main_thread():
        return

    def handler(signum: int, frame: Any) -> None:
        name = signal.Signals(signum).name
        logger.warning("Received %s; the run stops after the current operation", name)
        token.cancel(f"received {name}")

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def build_registry(config: MigrationConfig) -> MeterRegistry | None:
    """Create the configured meter registry, or ``None`` when metrics are off."""
    if not config.metrics.enabled:
        return None
    if config.metrics.backend is MetricsBackend.PROMETHEUS:
        return PrometheusRegistry()
    return InMemoryRegistry()


def build_audit_log(config: MigrationConfig, run_id: str, collaborators: Collaborators) -> AuditLog:
    """Create the audit log: a local JSON-lines file, a log echo and an optional remote mirror."""
    audit_path = Path(config.audit.path) if config.audit.path else config.work_path / "audit" / f"{run_id}.jsonl"
    sink = CompositeAuditSink(FileAuditSink(audit_path), LoggingAuditSink())
    mirror = None
    if config.audit.mirror_to_storage:
        mirror = StorageMirror(
            collaborators.storage,
            audit_path,
            config.storage.account,
            config.storage.container,
            f"{config.audit.mirror_blob_prefix}{run_id}.jsonl",
            timeout_seconds=config.tools.command_timeout_seconds,
        )
    return AuditLog(run_id, sink, mirror=mirror)


def format_plan(definition: PipelineDefinition) -> str:
    """Render the stage plan printed by ``--dry-run``."""
    lines = [f"Pipeline '{definition.name}' ({len(definition)} stages, fingerprint {definition.fingerprint()[:12]}):"]
    for index, stage in enumerate(definition.stages, start=1):
        lines.append(
            f"  {index}. {stage.name}: {stage.action.describe()} "
            f"[timeout {stage.timeout_seconds:.0f}s, {stage.max_attempts} attempt(s), "
            f"{'idempotent' if stage.action.idempotent else 'pre-retry check'}]"
        )
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint for running a migration.

    Args:
        argv: Command-line arguments. Defaults to ``sys.argv[1:]``.

    Returns:
        Exit code: 0 for success, 1 for a failed stage, 2 for a
        configuration or authentication error.
    """
    args = _build_parser().parse_args(argv)
    config_path = args.config or default_config_path()
    configure_logging(args.log_level or "INFO")

    try:
        config = load_from_file(config_path)
    except ConfigurationError as exc:
        logger.error("Failed to load configuration: %s", exc)
        return EXIT_CONFIG_ERROR
    configure_logging(args.log_level or config.logging.level.value, config.logging.format)

    token = CancellationToken()
    command_runner = CommandRunner()

    try:
        collaborators = Collaborators.from_config(config, runner=command_runner, cancel_token=token)
        definition = build_migration_pipeline(config, collaborators)
        if args.dry_run:
            print(format_plan(definition))
            return EXIT_SUCCESS

        resolver = build_secrets_resolver(config.secrets, command_runner, config.tools.az)
        config = resolve_secret_fields(config, resolver)
        definition = build_migration_pipeline(config, collaborators)

        resume_state = None
        store = LocalCheckpointStore(config.checkpoint_path)
        if args.resume:
            resume_state = load_checkpoint_for_resume(store, args.resume, definition)
        run_id = args.resume or new_run_id()

        collaborators.session.ensure_authenticated(config.cloud.tenant_id, config.cloud.subscription_id)
    except (ConfigurationError, AuthError) as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return EXIT_CONFIG_ERROR

    install_signal_handlers(token)
    registry = build_registry(config)
    audit_log = build_audit_log(config, run_id, collaborators)
    hooks = CompositeHooks(
        LoggingHooks(),
        MetricsHooks(registry),
        CheckpointHooks(store, run_id, definition.fingerprint(), resume_from=resume_state),
    )
    runner = PipelineRunner(
        definition,
        audit_log,
        hooks=hooks,
        cancel_token=token,
        run_id=run_id,
        work_dir=config.work_path,
    )

    try:
        run = runner.run(
            completed_stages=resume_state.completed_stages if resume_state else None,
            artifacts=resume_state.artifacts if resume_state else None,
        )
    finally:
        audit_log.close()

    summary = RunSummary.from_run(run, definition, audit_log.summary())
    summary_path = write_summary(summary, config.work_path / SUMMARY_FILE_NAME)
    print(format_summary(summary))
    print(f"Summary written to {summary_path}")

    if isinstance(registry, PrometheusRegistry) and config.metrics.textfile_path:
        safe_call(
            lambda: registry.write_textfile(config.metrics.textfile_path),
            logger,
            "Could not write metrics to %s",
            config.metrics.textfile_path,
        )

    return EXIT_SUCCESS if run.succeeded else EXIT_STAGE_FAILURE


if __name__ == "__main__":
    sys.exit(main())
