"""Tests for the checkpoint and resume system."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from sql_migration_pipeline.core.exceptions import ConfigurationError
from sql_migration_pipeline.runner.checkpoint import (
    CheckpointHooks,
    CheckpointState,
    LocalCheckpointStore,
    PipelineDefinitionChangedError,
    load_checkpoint_for_resume,
)
from sql_migration_pipeline.runner.result import PipelineRun, RunStatus, StageResult
from tests.factories import FakeAction, make_audit_log, make_definition, make_runner, make_stage

_NOW = datetime(2026, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


def _state(**overrides: object) -> CheckpointState:
    values: dict[str, object] = {
        "run_id": "run-1",
        "pipeline_name": "test-pipeline",
        "pipeline_fingerprint": "abc123",
    }
    values.update(overrides)
    return CheckpointState(**values)  # type: ignore[arg-type]


class TestCheckpointState:
    def test_defaults(self) -> None:
        state = _state()
        assert state.completed_stages == []
        assert state.artifacts == {}
        assert state.status == "in_progress"

    @pytest.mark.parametrize(
        "field_name",
        ["run_id", "pipeline_name", "pipeline_fingerprint"],
    )
    def test_required_fields(self, field_name: str) -> None:
        with pytest.raises(ValueError, match=field_name):
            _state(**{field_name: ""})

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Invalid status"):
            _state(status="paused")


class TestLocalCheckpointStore:
    def test_round_trip(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        state = _state(completed_stages=["upload-backup"], artifacts={"upload-backup": "https://x"})
        store.save(state)

        loaded = store.load("run-1", "test-pipeline")
        assert loaded == state
        assert store.exists("run-1", "test-pipeline")

    def test_layout(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        store.save(_state())
        path = tmp_path / "test-pipeline" / "run-1.json"
        assert path.is_file()
        assert json.loads(path.read_text())["run_id"] == "run-1"

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        store.save(_state())
        store.save(_state(status="failed"))
        assert list((tmp_path / "test-pipeline").glob("*.tmp")) == []

    def test_load_missing(self, tmp_path: Path) -> None:
        assert LocalCheckpointStore(tmp_path).load("nope", "test-pipeline") is None

    def test_delete(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        store.save(_state())
        store.delete("run-1", "test-pipeline")
        store.delete("run-1", "test-pipeline")
        assert not store.exists("run-1", "test-pipeline")


class TestCheckpointHooks:
    def test_tracks_completed_stages_and_artifacts(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        definition = make_definition(
            make_stage("upload", FakeAction(artifact="https://store/b.bak")),
            make_stage("restore", FakeAction([RuntimeError("boom")])),
        )
        hooks = CheckpointHooks(store, "run-1", definition.fingerprint(), now_func=lambda: _NOW)
        make_runner(definition, audit_log=make_audit_log("run-1")[0], hooks=hooks).run()

        state = store.load("run-1", "test-pipeline")
        assert state is not None
        assert state.completed_stages == ["upload"]
        assert state.artifacts == {"upload": "https://store/b.bak"}
        assert state.failed_stage == "restore"
        assert state.status == "failed"

    def test_completed_run(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        definition = make_definition()
        hooks = CheckpointHooks(store, "run-1", definition.fingerprint())
        make_runner(definition, hooks=hooks).run()
        state = store.load("run-1", "test-pipeline")
        assert state is not None
        assert state.status == "completed"

    def test_resume_carries_previous_progress(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        definition = make_definition(make_stage("A"), make_stage("B"))
        previous = _state(
            pipeline_fingerprint=definition.fingerprint(),
            completed_stages=["A"],
            artifacts={"A": "a-ref"},
            status="failed",
            failed_stage="B",
            created_at="2026-01-01T00:00:00+00:00",
        )
        hooks = CheckpointHooks(store, "run-1", definition.fingerprint(), resume_from=previous)
        hooks.before_pipeline(definition, "run-1")
        hooks.after_stage(make_stage("B"), 1, 2, StageResult("B", True, produced_artifact_ref="b-ref"))
        hooks.after_pipeline(definition, PipelineRun("run-1", "test-pipeline", ("A", "B"), status=RunStatus.SUCCEEDED))

        state = store.load("run-1", "test-pipeline")
        assert state is not None
        assert state.completed_stages == ["A", "B"]
        assert state.artifacts == {"A": "a-ref", "B": "b-ref"}
        assert state.created_at == "2026-01-01T00:00:00+00:00"
        assert state.status == "completed"
        assert state.failed_stage is None

    def test_events_before_pipeline_are_ignored(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        hooks = CheckpointHooks(store, "run-1", "fp")
        hooks.after_stage(make_stage(), 0, 1, StageResult("stage", True))
        assert not store.exists("run-1", "test-pipeline")


class TestLoadCheckpointForResume:
    def test_returns_state(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        definition = make_definition(make_stage("A"), make_stage("B"))
        store.save(_state(pipeline_fingerprint=definition.fingerprint(), completed_stages=["A"]))

        state = load_checkpoint_for_resume(store, "run-1", definition)
        assert state.completed_stages == ["A"]

    def test_missing_checkpoint(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="No checkpoint"):
            load_checkpoint_for_resume(LocalCheckpointStore(tmp_path), "run-1", make_definition())

    def test_changed_definition(self, tmp_path: Path) -> None:
        store = LocalCheckpointStore(tmp_path)
        store.save(_state(pipeline_fingerprint="stale"))
        with pytest.raises(PipelineDefinitionChangedError):
            load_checkpoint_for_resume(store, "run-1", make_definition())

    def test_changed_definition_is_configuration_error(self) -> None:
        assert issubclass(PipelineDefinitionChangedError, ConfigurationError)
