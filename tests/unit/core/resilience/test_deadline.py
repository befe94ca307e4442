"""Tests for running calls under a wall-clock deadline."""

from __future__ import annotations

import threading

import pytest

from sql_migration_pipeline.core.exceptions import StageTimeoutError, TransferError
from sql_migration_pipeline.core.resilience.deadline import call_with_deadline


def test_returns_value() -> None:
    assert call_with_deadline(lambda: 42, 5.0) == 42


def test_no_deadline_runs_inline() -> None:
    caller = threading.current_thread()
    assert call_with_deadline(lambda: threading.current_thread(), None) is caller


def test_reraises_error() -> None:
    def fail() -> None:
        raise TransferError("Upload failed", returncode=1)

    with pytest.raises(TransferError, match="Upload failed"):
        call_with_deadline(fail, 5.0)


def test_deadline_exceeded() -> None:
    release = threading.Event()
    try:
        with pytest.raises(StageTimeoutError) as exc_info:
            call_with_deadline(lambda: release.wait(10), 0.05, name="restore#1")
        assert exc_info.value.timeout_seconds == 0.05
        assert str(exc_info.value) == "timeout"
    finally:
        release.set()


def test_worker_thread_named() -> None:
    names: list[str] = []
    call_with_deadline(lambda: names.append(threading.current_thread().name), 5.0, name="upload#2")
    assert names == ["sqlmig-upload#2"]


def test_grace_waits_for_worker_to_stop() -> None:
    finished = threading.Event()

    def slow() -> None:
        threading.Event().wait(0.1)
        finished.set()

    with pytest.raises(StageTimeoutError):
        call_with_deadline(slow, 0.02, name="restore#1", grace_seconds=5.0)
    assert finished.is_set()


def test_grace_does_not_wait_past_limit() -> None:
    release = threading.Event()
    try:
        with pytest.raises(StageTimeoutError):
            call_with_deadline(lambda: release.wait(10), 0.02, grace_seconds=0.02)
    finally:
        release.set()
