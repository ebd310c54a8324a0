"""MCP Relay Metrics Collection.

Prometheus-compatible in-process metrics. Values are collected while RPC
calls are dispatched and streams are served, and exposed in text format at
the ``/mcp/metrics`` endpoint.

Supported metric types:
- Counter: monotonically increasing values (e.g. relayed messages)
- Gauge: values that go up and down (e.g. open streams)
- Histogram: distribution of values with buckets (e.g. dispatch latency)

Example:
    >>> from mcp_relay.observability.metrics import get_metrics
    >>> metrics = get_metrics()
    >>> metrics.increment_counter("mcp_rpc_requests_total", {"method": "server.ping"})
    >>> metrics.observe_histogram("mcp_rpc_duration_seconds", 0.004, {"method": "server.ping"})
    >>> print(metrics.export_prometheus())
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import ClassVar

LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


@dataclass
class Counter:
    """A monotonically increasing counter metric."""

    name: str
    help_text: str
    values: dict[LabelKey, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment(self, labels: dict[str, str] | None = None, value: float = 1.0) -> None:
        key = _label_key(labels)
        with self._lock:
            self.values[key] = self.values.get(key, 0.0) + value

    def get(self, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self.values.get(_label_key(labels), 0.0)


@dataclass
class Gauge:
    """A metric that can be set, increased and decreased."""

    name: str
    help_text: str
    values: dict[LabelKey, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def set(self, value: float, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self.values[_label_key(labels)] = value

    def add(self, delta: float, labels: dict[str, str] | None = None) -> None:
        key = _label_key(labels)
        with self._lock:
            self.values[key] = self.values.get(key, 0.0) + delta

    def get(self, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self.values.get(_label_key(labels), 0.0)


# Default histogram buckets for latency (in seconds)
DEFAULT_LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


@dataclass
class Histogram:
    """A histogram metric for measuring distributions.

    ``values[label_key]`` holds per-bucket counts plus running sum and count.
    """

    name: str
    help_text: str
    buckets: tuple[float, ...] = DEFAULT_LATENCY_BUCKETS
    values: dict[LabelKey, dict[str, float | dict[float, float]]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        key = _label_key(labels)
        with self._lock:
            if key not in self.values:
                self.values[key] = {
                    "buckets": dict.fromkeys(self.buckets, 0.0),
                    "sum": 0.0,
                    "count": 0.0,
                }

            data = self.values[key]
            buckets = data["buckets"]
            if isinstance(buckets, dict):
                for bound in self.buckets:
                    if value <= bound:
                        buckets[bound] += 1.0

            if isinstance(data["sum"], float):
                data["sum"] += value
            if isinstance(data["count"], float):
                data["count"] += 1.0

    def get_count(self, labels: dict[str, str] | None = None) -> float:
        key = _label_key(labels)
        with self._lock:
            if key not in self.values:
                return 0.0
            count = self.values[key].get("count", 0.0)
            return count if isinstance(count, float) else 0.0


class MetricsCollector:
    """Collects relay metrics and exports them in Prometheus text format.

    All operations are thread-safe; metrics are recorded from the event loop
    and from executor threads running sync handlers.

    Example:
        >>> collector = MetricsCollector()
        >>> collector.increment_counter("mcp_relay_messages_total")
        >>> collector.get_counter("mcp_relay_messages_total")
        1.0
    """

    DEFAULT_COUNTERS: ClassVar[dict[str, str]] = {
        "mcp_rpc_requests_total": "Total number of JSON-RPC requests dispatched",
        "mcp_rpc_errors_total": "Total number of JSON-RPC error responses",
        "mcp_rpc_parse_errors_total": "Total number of unparseable request bodies",
        "mcp_sse_connections_opened_total": "Total number of SSE streams opened",
        "mcp_sse_connections_closed_total": "Total number of SSE streams closed",
        "mcp_sse_events_sent_total": "Total number of data frames written to streams",
        "mcp_sse_heartbeats_total": "Total number of heartbeat frames written",
        "mcp_relay_messages_total": "Total number of messages accepted by the relay",
        "mcp_relay_rejected_total": "Total number of relay deliveries rejected",
        "mcp_relay_replies_dropped_total": "Total number of replies dropped because the stream closed",
        "mcp_relay_process_errors_total": "Total number of relay deliveries that failed unexpectedly",
        "mcp_connections_swept_total": "Total number of idle connections evicted by the sweeper",
    }

    DEFAULT_GAUGES: ClassVar[dict[str, str]] = {
        "mcp_sse_connections_active": "Number of currently open SSE streams",
    }

    DEFAULT_HISTOGRAMS: ClassVar[dict[str, str]] = {
        "mcp_rpc_duration_seconds": "JSON-RPC handler execution duration in seconds",
        "mcp_sse_connection_duration_seconds": "Lifetime of SSE streams in seconds",
    }

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, Counter] = {}
        self._gauges: dict[str, Gauge] = {}
        self._histograms: dict[str, Histogram] = {}
        self._start_time = time.time()

        for name, help_text in self.DEFAULT_COUNTERS.items():
            self._counters[name] = Counter(name=name, help_text=help_text)

        for name, help_text in self.DEFAULT_GAUGES.items():
            self._gauges[name] = Gauge(name=name, help_text=help_text)

        for name, help_text in self.DEFAULT_HISTOGRAMS.items():
            self._histograms[name] = Histogram(name=name, help_text=help_text)

    def register_counter(self, name: str, help_text: str) -> None:
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name=name, help_text=help_text)

    def register_histogram(
        self, name: str, help_text: str, buckets: tuple[float, ...] = DEFAULT_LATENCY_BUCKETS
    ) -> None:
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name=name, help_text=help_text, buckets=buckets)

    def increment_counter(
        self, name: str, labels: dict[str, str] | None = None, value: float = 1.0
    ) -> None:
        with self._lock:
            if name in self._counters:
                self._counters[name].increment(labels, value)

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            if name in self._gauges:
                self._gauges[name].set(value, labels)

    def add_gauge(self, name: str, delta: float, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            if name in self._gauges:
                self._gauges[name].add(delta, labels)

    def observe_histogram(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        with self._lock:
            if name in self._histograms:
                self._histograms[name].observe(value, labels)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            if name in self._counters:
                return self._counters[name].get(labels)
            return 0.0

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            if name in self._gauges:
                return self._gauges[name].get(labels)
            return 0.0

    def get_histogram_count(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            if name in self._histograms:
                return self._histograms[name].get_count(labels)
            return 0.0

    def _format_labels(self, labels: LabelKey) -> str:
        if not labels:
            return ""

        def escape_label_value(value: str) -> str:
            value = value.replace("\\", "\\\\")
            return value.replace('"', '\\"')

        parts = [f'{k}="{escape_label_value(v)}"' for k, v in labels]
        return "{" + ",".join(parts) + "}"

    def _export_simple(self, lines: list[str], metric: Counter | Gauge, kind: str) -> None:
        lines.append(f"# HELP {metric.name} {metric.help_text}")
        lines.append(f"# TYPE {metric.name} {kind}")
        if not metric.values:
            lines.append(f"{metric.name} 0")
            return
        for label_key, value in metric.values.items():
            lines.append(f"{metric.name}{self._format_labels(label_key)} {value}")

    def _export_histogram(self, lines: list[str], histogram: Histogram) -> None:
        lines.append(f"# HELP {histogram.name} {histogram.help_text}")
        lines.append(f"# TYPE {histogram.name} histogram")
        if not histogram.values:
            for bound in histogram.buckets:
                lines.append(f'{histogram.name}_bucket{{le="{bound}"}} 0')
            lines.append(f'{histogram.name}_bucket{{le="+Inf"}} 0')
            lines.append(f"{histogram.name}_sum 0")
            lines.append(f"{histogram.name}_count 0")
            return

        for label_key, data in histogram.values.items():
            base_labels = self._format_labels(label_key)

            def with_le(bound: str) -> str:
                if base_labels:
                    return base_labels[:-1] + f',le="{bound}"' + "}"
                return f'{{le="{bound}"}}'

            # observe() already counts each value in every bucket it fits
            buckets = data["buckets"]
            if isinstance(buckets, dict):
                for bound in histogram.buckets:
                    lines.append(
                        f"{histogram.name}_bucket{with_le(str(bound))} {buckets.get(bound, 0.0)}"
                    )

            count = data.get("count", 0.0)
            lines.append(f"{histogram.name}_bucket{with_le('+Inf')} {count}")
            lines.append(f"{histogram.name}_sum{base_labels} {data.get('sum', 0.0)}")
            lines.append(f"{histogram.name}_count{base_labels} {count}")

    def export_prometheus(self) -> str:
        """Export all metrics in Prometheus text format.

        Example:
            >>> collector = MetricsCollector()
            >>> "mcp_rpc_requests_total" in collector.export_prometheus()
            True
        """
        lines: list[str] = []

        with self._lock:
            for counter in self._counters.values():
                self._export_simple(lines, counter, "counter")
            for gauge in self._gauges.values():
                self._export_simple(lines, gauge, "gauge")
            for histogram in self._histograms.values():
                self._export_histogram(lines, histogram)

            uptime = time.time() - self._start_time
            lines.append("# HELP mcp_process_uptime_seconds Time since server start")
            lines.append("# TYPE mcp_process_uptime_seconds gauge")
            lines.append(f"mcp_process_uptime_seconds {uptime:.3f}")

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Reset all metrics to zero. Useful for testing."""
        with self._lock:
            for counter in self._counters.values():
                counter.values.clear()
            for gauge in self._gauges.values():
                gauge.values.clear()
            for histogram in self._histograms.values():
                histogram.values.clear()


_metrics_collector: MetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    global _metrics_collector
    with _collector_lock:
        if _metrics_collector is None:
            _metrics_collector = MetricsCollector()
        return _metrics_collector


def reset_metrics() -> None:
    """Reset the process-wide metrics collector. Useful for testing."""
    global _metrics_collector
    with _collector_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset()
