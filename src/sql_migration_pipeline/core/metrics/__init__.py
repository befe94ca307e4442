"""Pluggable metrics registry."""

from sql_migration_pipeline.core.metrics.exporters import PrometheusRegistry
from sql_migration_pipeline.core.metrics.registry import InMemoryRegistry, MeterRegistry

__all__ = ["InMemoryRegistry", "MeterRegistry", "PrometheusRegistry"]
