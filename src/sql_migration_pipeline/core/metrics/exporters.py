"""Prometheus adapter for the meter registry.

The migration is a batch job, so instead of serving an HTTP endpoint the
adapter can write its metrics to a textfile for the node exporter's textfile
collector. ``prometheus_client`` is only required when the adapter is
instantiated::

    pip install sql-migration-pipeline[metrics]
"""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Any

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


def prometheus_name(name: str) -> str:
    """Convert a dotted metric name into a valid Prometheus name."""
    return _INVALID_NAME_CHARS.sub("_", name)


class PrometheusRegistry:
    """Adapter that forwards metrics to ``prometheus_client``.

    Counters map to ``Counter``, gauges to ``Gauge`` and timers to
    ``Summary`` (observed in milliseconds). All metrics live in a private
    ``CollectorRegistry`` so several runs in one process do not collide.

    Label names are fixed by the tag keys of the first call for a metric.

    Raises:
        ImportError: If ``prometheus_client`` is not installed.
    """

    def __init__(self) -> None:
        try:
            from prometheus_client import CollectorRegistry
        except ImportError:
            raise ImportError(
                "prometheus_client is required for PrometheusRegistry. Install it with: pip install prometheus-client"
            ) from None

        self._registry = CollectorRegistry()
        self._lock = threading.Lock()
        self._metrics: dict[str, tuple[str, Any]] = {}

    @property
    def collector_registry(self) -> Any:
        """Return the underlying ``CollectorRegistry``."""
        return self._registry

    def counter(
        self,
        name: str,
        value: float = 1.0,
        tags: dict[str, str] | None = None,
    ) -> None:
        self._child("counter", name, tags).inc(value)

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self._child("gauge", name, tags).set(value)

    def timer(
        self,
        name: str,
        duration_ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self._child("timer", name, tags).observe(duration_ms)

    def get_metrics(self) -> dict[str, Any]:
        """Return registered metric names grouped by kind."""
        with self._lock:
            grouped: dict[str, list[str]] = {"counters": [], "gauges": [], "timers": []}
            for name, (kind, _) in self._metrics.items():
                grouped[f"{kind}s"].append(name)
            return grouped

    def write_textfile(self, path: str | Path) -> None:
        """Write all metrics in the Prometheus text format to *path*."""
        from prometheus_client import write_to_textfile

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(target), self._registry)

    def _child(self, kind: str, name: str, tags: dict[str, str] | None) -> Any:
        metric = self._get_or_create(kind, name, tags)
        return metric.labels(**tags) if tags else metric

    def _get_or_create(self, kind: str, name: str, tags: dict[str, str] | None) -> Any:
        with self._lock:
            if name not in self._metrics:
                from prometheus_client import Counter, Gauge, Summary

                factory = {"counter": Counter, "gauge": Gauge, "timer": Summary}[kind]
                label_names = sorted(tags.keys()) if tags else []
                metric = factory(
                    prometheus_name(name),
                    f"{kind.capitalize()} {name}",
                    label_names,
                    registry=self._registry,
                )
                self._metrics[name] = (kind, metric)
            return self._metrics[name][1]
