"""Tests for the run summary."""

from __future__ import annotations

import json
from pathlib import Path

from sql_migration_pipeline.runner.summary import RunSummary, format_summary, write_summary
from tests.factories import FakeAction, make_definition, make_runner, make_stage


def _failed_run() -> tuple[RunSummary, object]:
    definition = make_definition(
        make_stage("upload-backup", FakeAction(artifact="https://store/backups/orders.bak")),
        make_stage(
            "restore-staging",
            FakeAction(
                [RuntimeError("Msg 3201: cannot open backup device"), RuntimeError("Msg 3013: RESTORE terminated")],
                leaves_behind="staging database 'orders' (possibly in RESTORING state)",
            ),
            max_attempts=2,
        ),
        make_stage("export-package"),
    )
    run = make_runner(definition).run()
    return RunSummary.from_run(run, definition), run


class TestRunSummary:
    def test_failed_run(self) -> None:
        summary, _ = _failed_run()
        assert summary.status == "failed"
        assert summary.failed_stage == "restore-staging"
        assert summary.attempts_at_failed_stage == 2
        assert summary.error_detail == "Msg 3013: RESTORE terminated"
        assert summary.attempts_per_stage == {"upload-backup": 1, "restore-staging": 2}
        assert summary.artifacts == {"upload-backup": "https://store/backups/orders.bak"}

    def test_cleanup_notes(self) -> None:
        summary, _ = _failed_run()
        assert summary.cleanup_required == [
            "restore-staging: staging database 'orders' (possibly in RESTORING state)",
            "upload-backup: produced https://store/backups/orders.bak, left in place",
        ]

    def test_successful_run_needs_no_cleanup(self) -> None:
        definition = make_definition(make_stage("a", FakeAction(artifact="x")))
        summary = RunSummary.from_run(make_runner(definition).run(), definition)
        assert summary.status == "succeeded"
        assert summary.failed_stage is None
        assert summary.attempts_at_failed_stage == 0
        assert summary.cleanup_required == []

    def test_to_dict_is_json_serializable(self) -> None:
        summary, _ = _failed_run()
        data = json.loads(json.dumps(summary.to_dict()))
        assert data["failed_stage"] == "restore-staging"
        assert data["started_at"] is not None


class TestWriteSummary:
    def test_writes_json(self, tmp_path: Path) -> None:
        summary, _ = _failed_run()
        path = write_summary(summary, tmp_path / "out" / "run_summary.json")
        assert json.loads(path.read_text())["error_detail"] == "Msg 3013: RESTORE terminated"


class TestFormatSummary:
    def test_failed_run_text(self) -> None:
        summary, _ = _failed_run()
        text = format_summary(summary)
        assert "Status:    FAILED" in text
        assert "Failed at: restore-staging after 2 attempt(s)" in text
        assert "Msg 3013: RESTORE terminated" in text
        assert "Cleanup required:" in text

    def test_skipped_stages_listed(self) -> None:
        definition = make_definition(make_stage("a"), make_stage("b"))
        summary = RunSummary.from_run(make_runner(definition).run(completed_stages={"a"}), definition)
        assert "skipped (completed earlier)" in format_summary(summary)
