"""Tests for the Prometheus meter registry adapter."""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from sql_migration_pipeline.core.metrics.exporters import PrometheusRegistry, prometheus_name
from sql_migration_pipeline.core.metrics.registry import MeterRegistry


class TestPrometheusName:
    def test_dots_replaced(self) -> None:
        assert prometheus_name("sqlmig.stage.duration") == "sqlmig_stage_duration"

    def test_valid_name_unchanged(self) -> None:
        assert prometheus_name("sqlmig_runs:total") == "sqlmig_runs:total"


class TestPrometheusRegistryImport:
    def test_missing_dependency(self) -> None:
        with patch.dict(sys.modules, {"prometheus_client": None}):
            with pytest.raises(ImportError, match="pip install prometheus-client"):
                PrometheusRegistry()


class TestPrometheusRegistry:
    @pytest.fixture(autouse=True)
    def _require_client(self) -> None:
        pytest.importorskip("prometheus_client")

    def test_implements_protocol(self) -> None:
        assert isinstance(PrometheusRegistry(), MeterRegistry)

    def test_counter(self) -> None:
        reg = PrometheusRegistry()
        reg.counter("sqlmig.stage.failures", tags={"stage": "restore-staging"})
        reg.counter("sqlmig.stage.failures", value=2.0, tags={"stage": "restore-staging"})
        value = reg.collector_registry.get_sample_value(
            "sqlmig_stage_failures_total", {"stage": "restore-staging"}
        )
        assert value == 3.0
        assert reg.get_metrics()["counters"] == ["sqlmig.stage.failures"]

    def test_gauge_without_tags(self) -> None:
        reg = PrometheusRegistry()
        reg.gauge("sqlmig.pipeline.succeeded", 1.0)
        assert reg.collector_registry.get_sample_value("sqlmig_pipeline_succeeded") == 1.0

    def test_timer(self) -> None:
        reg = PrometheusRegistry()
        reg.timer("sqlmig.stage.duration", 120.0, tags={"stage": "upload"})
        reg.timer("sqlmig.stage.duration", 80.0, tags={"stage": "upload"})
        sample = reg.collector_registry.get_sample_value
        assert sample("sqlmig_stage_duration_count", {"stage": "upload"}) == 2.0
        assert sample("sqlmig_stage_duration_sum", {"stage": "upload"}) == 200.0
        assert reg.get_metrics()["timers"] == ["sqlmig.stage.duration"]

    def test_registries_are_isolated(self) -> None:
        first = PrometheusRegistry()
        second = PrometheusRegistry()
        first.counter("sqlmig.runs")
        second.counter("sqlmig.runs")
        assert first.collector_registry.get_sample_value("sqlmig_runs_total") == 1.0

    def test_write_textfile(self, tmp_path: Path) -> None:
        reg = PrometheusRegistry()
        reg.gauge("sqlmig.pipeline.succeeded", 0.0, tags={"pipeline": "orders"})
        target = tmp_path / "textfile" / "sqlmig.prom"

        reg.write_textfile(target)

        text = target.read_text()
        assert 'sqlmig_pipeline_succeeded{pipeline="orders"} 0.0' in text
