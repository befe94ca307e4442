"""Tests for the CLI entrypoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from sql_migration_pipeline.adapters.collaborators import Collaborators
from sql_migration_pipeline.core.config.base import LogFormat
from sql_migration_pipeline.core.exceptions import AuthError, PackagingError
from sql_migration_pipeline.runner.checkpoint import CheckpointState, LocalCheckpointStore
from sql_migration_pipeline.runner.cli import (
    EXIT_CONFIG_ERROR,
    EXIT_STAGE_FAILURE,
    EXIT_SUCCESS,
    JsonLogFormatter,
    _build_parser,
    default_config_path,
    main,
)
from tests.factories import make_collaborators

_CONFIG = """
name: "orders-migration"
work_dir: "{work_dir}"
cloud {{ tenant_id: "tenant-1", subscription_id: "sub-1" }}
storage {{ account: "migstore", container: "backups" }}
source {{ backup_file: "/backups/orders.bak" }}
staging {{ server: "staging.example.net", database: "orders", username: "sa", password: "pw" }}
stages: [
  {{ name: "upload-backup" }}
  {{ name: "restore-staging" }}
  {{ name: "export-package", retry {{ max_attempts: 1, initial_delay_seconds: 0.0, max_delay_seconds: 0.0 }} }}
  {{ name: "upload-package" }}
  {{ name: "import-target" }}
  {{ name: "delete-backup-blob" }}
]
target {{
  server: "target.example.net"
  database: "orders"
  username: "admin"
  password: "secret://env/SQLMIG_TEST_TARGET_PASSWORD"
}}
"""


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("SQLMIG_TEST_TARGET_PASSWORD", "target-secret")
    path = tmp_path / "migration.conf"
    path.write_text(_CONFIG.format(work_dir=tmp_path / "work"))
    return path


@pytest.fixture
def collaborators() -> Iterator[Collaborators]:
    collab = make_collaborators()
    collab.storage.blob_url.side_effect = lambda account, container, blob: f"https://{account}/{container}/{blob}"
    collab.storage.container_url.return_value = "https://migstore/backups"
    collab.storage.delete.return_value = True
    collab.database.probe_reachable.return_value = True
    collab.database.database_exists.return_value = False
    collab.database.database_state.return_value = "ONLINE"
    with (
        patch("sql_migration_pipeline.runner.cli.Collaborators.from_config", return_value=collab),
        patch("sql_migration_pipeline.runner.cli.install_signal_handlers"),
    ):
        yield collab


class TestBuildParser:
    def test_no_required_arguments(self) -> None:
        args = _build_parser().parse_args([])
        assert args.config is None
        assert args.resume is None
        assert args.dry_run is False
        assert args.log_level is None

    def test_all_flags(self) -> None:
        args = _build_parser().parse_args(
            ["--config", "m.conf", "--resume", "run-1", "--dry-run", "--log-level", "DEBUG"]
        )
        assert args.config == "m.conf"
        assert args.resume == "run-1"
        assert args.dry_run is True
        assert args.log_level == "DEBUG"


class TestDefaultConfigPath:
    def test_fixed_location(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SQLMIG_CONFIG", raising=False)
        assert default_config_path() == "migration.conf"

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SQLMIG_CONFIG", "/etc/sqlmig/prod.conf")
        assert default_config_path() == "/etc/sqlmig/prod.conf"


class TestMainSuccess:
    def test_full_run(self, config_file: Path, collaborators: Collaborators) -> None:
        code = main(["--config", str(config_file)])

        assert code == EXIT_SUCCESS
        collaborators.session.ensure_authenticated.assert_called_once_with("tenant-1", "sub-1")
        collaborators.packager.export.assert_called_once()
        collaborators.storage.delete.assert_called_once()

        summary = json.loads((config_file.parent / "work" / "run_summary.json").read_text())
        assert summary["status"] == "succeeded"
        assert list(summary["attempts_per_stage"]) == [
            "upload-backup",
            "restore-staging",
            "export-package",
            "upload-package",
            "import-target",
            "delete-backup-blob",
        ]

    def test_secret_reference_resolved_before_import(self, config_file: Path, collaborators: Collaborators) -> None:
        main(["--config", str(config_file)])
        credentials = collaborators.packager.import_.call_args.args[2]
        assert credentials.password == "target-secret"

    def test_audit_file_written(self, config_file: Path, collaborators: Collaborators) -> None:
        main(["--config", str(config_file)])
        audit_files = list((config_file.parent / "work" / "audit").glob("*.jsonl"))
        assert len(audit_files) == 1
        lines = audit_files[0].read_text().splitlines()
        assert len(lines) == 6

    def test_summary_printed(
        self, config_file: Path, collaborators: Collaborators, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["--config", str(config_file)])
        assert "Status:    SUCCEEDED" in capsys.readouterr().out


class TestMainFailure:
    def test_stage_failure_returns_one(self, config_file: Path, collaborators: Collaborators) -> None:
        collaborators.packager.export.side_effect = PackagingError("Export failed", returncode=1, stderr="login failed")

        code = main(["--config", str(config_file)])

        assert code == EXIT_STAGE_FAILURE
        summary = json.loads((config_file.parent / "work" / "run_summary.json").read_text())
        assert summary["failed_stage"] == "export-package"
        assert summary["error_detail"] == "Export failed (exit code 1): login failed"
        collaborators.storage.delete.assert_not_called()

    def test_missing_config_file(self, tmp_path: Path) -> None:
        assert main(["--config", str(tmp_path / "absent.conf")]) == EXIT_CONFIG_ERROR

    def test_missing_parameters(self, tmp_path: Path, collaborators: Collaborators) -> None:
        path = tmp_path / "migration.conf"
        path.write_text('name: "incomplete"\n')
        assert main(["--config", str(path)]) == EXIT_CONFIG_ERROR
        collaborators.session.ensure_authenticated.assert_not_called()

    def test_unresolvable_secret(
        self, config_file: Path, collaborators: Collaborators, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("SQLMIG_TEST_TARGET_PASSWORD")
        assert main(["--config", str(config_file)]) == EXIT_CONFIG_ERROR

    def test_auth_failure(self, config_file: Path, collaborators: Collaborators) -> None:
        collaborators.session.ensure_authenticated.side_effect = AuthError("login failed")
        assert main(["--config", str(config_file)]) == EXIT_CONFIG_ERROR
        collaborators.storage.upload.assert_not_called()


class TestDryRun:
    def test_prints_plan_without_running(
        self, config_file: Path, collaborators: Collaborators, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code = main(["--config", str(config_file), "--dry-run"])

        assert code == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "1. upload-backup" in out
        assert "6. delete-backup-blob" in out
        collaborators.session.ensure_authenticated.assert_not_called()
        collaborators.storage.upload.assert_not_called()


class TestResume:
    def test_skips_completed_stages(self, config_file: Path, collaborators: Collaborators) -> None:
        collaborators.packager.export.side_effect = [PackagingError("Export failed"), None]
        assert main(["--config", str(config_file)]) == EXIT_STAGE_FAILURE
        summary = json.loads((config_file.parent / "work" / "run_summary.json").read_text())
        run_id = summary["run_id"]
        collaborators.storage.upload.reset_mock()

        code = main(["--config", str(config_file), "--resume", run_id])

        assert code == EXIT_SUCCESS
        summary = json.loads((config_file.parent / "work" / "run_summary.json").read_text())
        assert summary["skipped_stages"] == ["upload-backup", "restore-staging"]
        # only the package upload runs again
        assert collaborators.storage.upload.call_count == 1

    def test_unknown_run_id(self, config_file: Path, collaborators: Collaborators) -> None:
        assert main(["--config", str(config_file), "--resume", "no-such-run"]) == EXIT_CONFIG_ERROR

    def test_changed_pipeline(self, config_file: Path, collaborators: Collaborators) -> None:
        store = LocalCheckpointStore(config_file.parent / "work" / "checkpoints")
        store.save(CheckpointState(run_id="old", pipeline_name="orders-migration", pipeline_fingerprint="stale"))
        assert main(["--config", str(config_file), "--resume", "old"]) == EXIT_CONFIG_ERROR


class TestJsonLogFormatter:
    def test_formats_one_json_object(self) -> None:
        record = logging.LogRecord("sqlmig.pipeline", logging.INFO, __file__, 1, "Stage %s done", ("upload",), None)
        entry = json.loads(JsonLogFormatter().format(record))
        assert entry["message"] == "Stage upload done"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "sqlmig.pipeline"

    def test_log_format_enum_value(self) -> None:
        assert LogFormat("json") is LogFormat.JSON
