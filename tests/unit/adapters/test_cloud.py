"""Tests for the cloud session and blob storage collaborators."""

from __future__ import annotations

import json
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from sql_migration_pipeline.adapters.cloud import AccessToken, CloudSession, CloudStorage
from sql_migration_pipeline.adapters.collaborators import Collaborators
from sql_migration_pipeline.core.commands import CommandRunner
from sql_migration_pipeline.core.config.migration import ToolsConfig
from sql_migration_pipeline.core.exceptions import AuthError, StageTimeoutError, TransferError
from tests.factories import FakeProcess, make_migration_config


def _account(tenant: str = "tenant-1", subscription: str = "sub-1") -> str:
    return json.dumps({"tenantId": tenant, "id": subscription, "user": {"name": "ops@example.com"}})


class TestCloudSession:
    def test_already_authenticated(self) -> None:
        process = FakeProcess((0, _account(), ""))
        session = CloudSession(CommandRunner(run_func=process)).ensure_authenticated("tenant-1", "sub-1")

        assert session.user == "ops@example.com"
        assert [c["args"][:3] for c in process.calls] == [["az", "account", "show"]]

    def test_logs_in_when_logged_out(self) -> None:
        process = FakeProcess(
            (1, "", "Please run 'az login' to setup account."),
            (0, "", ""),
            (0, _account(), ""),
        )
        session = CloudSession(CommandRunner(run_func=process)).ensure_authenticated("tenant-1", "sub-1")

        assert session.tenant_id == "tenant-1"
        assert process.calls[1]["args"] == ["az", "login", "--tenant", "tenant-1", "--output", "none"]

    def test_logs_in_when_tenant_differs(self) -> None:
        process = FakeProcess((0, _account(tenant="other"), ""), (0, "", ""), (0, _account(), ""))
        CloudSession(CommandRunner(run_func=process)).ensure_authenticated("tenant-1", "sub-1")
        assert process.calls[1]["args"][:2] == ["az", "login"]

    def test_selects_subscription(self) -> None:
        process = FakeProcess((0, _account(subscription="sub-0"), ""), (0, "", ""))
        session = CloudSession(CommandRunner(run_func=process)).ensure_authenticated("tenant-1", "sub-1")

        assert session.subscription_id == "sub-1"
        assert process.calls[1]["args"] == ["az", "account", "set", "--subscription", "sub-1"]

    def test_login_failure(self) -> None:
        process = FakeProcess((1, "", "not logged in"), (1, "", "AADSTS50076: MFA required"))
        with pytest.raises(AuthError, match="AADSTS50076"):
            CloudSession(CommandRunner(run_func=process)).ensure_authenticated("tenant-1", "sub-1")

    def test_still_logged_out_after_login(self) -> None:
        process = FakeProcess((1, "", ""), (0, "", ""), (1, "", ""))
        with pytest.raises(AuthError, match="still logged out"):
            CloudSession(CommandRunner(run_func=process)).ensure_authenticated("tenant-1", "sub-1")

    def test_cli_missing(self) -> None:
        def missing(args: list[str], **kwargs: object) -> None:
            raise FileNotFoundError(args[0])

        with pytest.raises(AuthError, match="executable 'az' not found"):
            CloudSession(CommandRunner(run_func=missing)).current()

    def test_unreadable_account(self) -> None:
        process = FakeProcess((0, "not json", ""))
        with pytest.raises(AuthError, match="Unreadable account"):
            CloudSession(CommandRunner(run_func=process)).current()

    def test_custom_executable(self) -> None:
        process = FakeProcess((0, _account(), ""))
        CloudSession(CommandRunner(run_func=process), az_executable="/opt/az/bin/az").current()
        assert process.calls[0]["args"][0] == "/opt/az/bin/az"


class TestCloudStorageUrls:
    def test_container_url(self) -> None:
        assert CloudStorage.container_url("migstore", "backups") == "https://migstore.blob.core.windows.net/backups"

    def test_blob_url(self) -> None:
        storage = CloudStorage(CommandRunner(run_func=FakeProcess()))
        assert storage.blob_url("migstore", "backups", "orders.bak") == (
            "https://migstore.blob.core.windows.net/backups/orders.bak"
        )


class TestAccessToken:
    def test_generates_token(self) -> None:
        now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        process = FakeProcess((0, '"se=2026&sig=abc"\n', ""))
        storage = CloudStorage(CommandRunner(run_func=process), now_fn=lambda: now)

        token = storage.generate_access_token("migstore", "backups", "rl", timedelta(hours=8))

        assert token.token == "se=2026&sig=abc"
        assert token.expires_at == now + timedelta(hours=8)
        args = process.calls[0]["args"]
        assert args[args.index("--expiry") + 1] == "2026-01-01T20:00Z"
        assert args[args.index("--permissions") + 1] == "rl"
        assert "--as-user" in args

    def test_uses_configured_command_timeout(self) -> None:
        process = FakeProcess((0, "sig=abc", ""), (0, "sig=def", ""))
        storage = CloudStorage(CommandRunner(run_func=process), command_timeout_seconds=42.0)
        storage.generate_access_token("migstore", "backups", "rl", timedelta(hours=1))
        storage.generate_access_token("migstore", "backups", "rl", timedelta(hours=1), timeout=7.5)
        assert [c["timeout"] for c in process.calls] == [42.0, 7.5]

    def test_collaborators_pass_tool_timeout(self) -> None:
        process = FakeProcess((0, "sig=abc", ""))
        config = make_migration_config(tools=ToolsConfig(command_timeout_seconds=42.0))
        storage = Collaborators.from_config(config, runner=CommandRunner(run_func=process)).storage
        storage.generate_access_token("migstore", "backups", "rl", timedelta(hours=1))
        assert process.calls[0]["timeout"] == 42.0

    def test_empty_token(self) -> None:
        storage = CloudStorage(CommandRunner(run_func=FakeProcess((0, "\n", ""))))
        with pytest.raises(TransferError, match="empty access token"):
            storage.generate_access_token("migstore", "backups", "rl", timedelta(hours=1))

    def test_repr_hides_token(self) -> None:
        token = AccessToken("sig=secret", datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert "sig=secret" not in repr(token)


class TestTransfers:
    def test_upload(self, tmp_path: Path) -> None:
        backup = tmp_path / "orders.bak"
        backup.write_bytes(b"backup")
        process = FakeProcess()
        CloudStorage(CommandRunner(run_func=process)).upload(backup, "migstore", "backups", "orders.bak", timeout=60)

        call = process.calls[0]
        assert call["args"][:4] == ["az", "storage", "blob", "upload"]
        assert call["args"][call["args"].index("--file") + 1] == str(backup)
        assert "--overwrite" in call["args"]
        assert call["timeout"] == 60

    def test_upload_missing_file(self, tmp_path: Path) -> None:
        process = FakeProcess()
        with pytest.raises(TransferError, match="Local file not found"):
            CloudStorage(CommandRunner(run_func=process)).upload(tmp_path / "nope.bak", "a", "c", "b")
        assert process.calls == []

    def test_upload_failure(self, tmp_path: Path) -> None:
        backup = tmp_path / "orders.bak"
        backup.write_bytes(b"x")
        process = FakeProcess((1, "", "ConnectionResetError"))
        with pytest.raises(TransferError, match="exit code 1.*ConnectionResetError"):
            CloudStorage(CommandRunner(run_func=process)).upload(backup, "migstore", "backups", "orders.bak")

    def test_upload_timeout(self, tmp_path: Path) -> None:
        backup = tmp_path / "orders.bak"
        backup.write_bytes(b"x")

        def slow(args: list[str], **kwargs: object) -> None:
            raise subprocess.TimeoutExpired(args, 5)

        with pytest.raises(StageTimeoutError):
            CloudStorage(CommandRunner(run_func=slow)).upload(backup, "migstore", "backups", "b", timeout=5)

    def test_download_creates_parent(self, tmp_path: Path) -> None:
        target = tmp_path / "work" / "orders.bacpac"
        process = FakeProcess()
        CloudStorage(CommandRunner(run_func=process)).download("migstore", "backups", "orders.bacpac", target)
        assert target.parent.is_dir()
        assert process.calls[0]["args"][:4] == ["az", "storage", "blob", "download"]


class TestDelete:
    def test_deleted(self) -> None:
        storage = CloudStorage(CommandRunner(run_func=FakeProcess((0, "", ""))))
        assert storage.delete("migstore", "backups", "orders.bak") is True

    def test_already_gone(self) -> None:
        process = FakeProcess((3, "", "ErrorCode:BlobNotFound"))
        assert CloudStorage(CommandRunner(run_func=process)).delete("migstore", "backups", "orders.bak") is False

    def test_other_failure(self) -> None:
        process = FakeProcess((1, "", "AuthorizationPermissionMismatch"))
        with pytest.raises(TransferError, match="AuthorizationPermissionMismatch"):
            CloudStorage(CommandRunner(run_func=process)).delete("migstore", "backups", "orders.bak")
