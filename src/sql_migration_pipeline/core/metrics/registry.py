"""Meter registry protocol and in-memory implementation."""

from __future__ import annotations

import threading
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MeterRegistry(Protocol):
    """Protocol for recording pipeline metrics.

    Implementations receive metric data from :class:`MetricsHooks` and can
    export it to any observability backend.
    """

    def counter(
        self,
        name: str,
        value: float = 1.0,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...

    def timer(
        self,
        name: str,
        duration_ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a timing measurement in milliseconds."""
        ...

    def get_metrics(self) -> dict[str, Any]:
        """Return a snapshot of all recorded metrics."""
        ...


def _tag_key(tags: dict[str, str] | None) -> str:
    if not tags:
        return ""
    return ",".join(f"{k}={v}" for k, v in sorted(tags.items()))


class InMemoryRegistry:
    """In-memory metrics registry.

    Default registry when no external backend is configured; also used by
    tests. Timers keep a running total and count per tag set.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, dict[str, float]] = {}
        self._gauges: dict[str, dict[str, float]] = {}
        self._timers: dict[str, dict[str, tuple[float, int]]] = {}

    def counter(
        self,
        name: str,
        value: float = 1.0,
        tags: dict[str, str] | None = None,
    ) -> None:
        key = _tag_key(tags)
        with self._lock:
            bucket = self._counters.setdefault(name, {})
            bucket[key] = bucket.get(key, 0.0) + value

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        with self._lock:
            self._gauges.setdefault(name, {})[_tag_key(tags)] = value

    def timer(
        self,
        name: str,
        duration_ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        key = _tag_key(tags)
        with self._lock:
            bucket = self._timers.setdefault(name, {})
            total, count = bucket.get(key, (0.0, 0))
            bucket[key] = (total + duration_ms, count + 1)

    def get_metrics(self) -> dict[str, Any]:
        """Return counters, gauges and timers keyed by metric name then tag key."""
        with self._lock:
            return {
                "counters": {name: dict(b) for name, b in self._counters.items()},
                "gauges": {name: dict(b) for name, b in self._gauges.items()},
                "timers": {
                    name: {key: {"total_ms": total, "count": count} for key, (total, count) in b.items()}
                    for name, b in self._timers.items()
                },
            }

    def get_counter(self, name: str, tags: dict[str, str] | None = None) -> float:
        """Return a counter value, or ``0.0`` if it was never incremented."""
        with self._lock:
            return self._counters.get(name, {}).get(_tag_key(tags), 0.0)

    def get_gauge(self, name: str, tags: dict[str, str] | None = None) -> float | None:
        """Return a gauge value, or ``None`` if it was never set."""
        with self._lock:
            return self._gauges.get(name, {}).get(_tag_key(tags))

    def get_timer_count(self, name: str, tags: dict[str, str] | None = None) -> int:
        """Return the number of recordings for a timer."""
        with self._lock:
            return self._timers.get(name, {}).get(_tag_key(tags), (0.0, 0))[1]
