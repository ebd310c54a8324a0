"""Tests for relay metrics collection."""

import threading

from mcp_relay.observability.metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsCollector,
    get_metrics,
    reset_metrics,
)


class TestCounter:
    """Tests for Counter metric."""

    def test_counter_increment_with_labels(self) -> None:
        """Counters keep one value per label set."""
        counter = Counter(name="test_counter", help_text="Test counter")
        counter.increment(labels={"status": "success"})
        counter.increment(labels={"status": "error"})
        counter.increment(labels={"status": "success"})

        assert counter.get(labels={"status": "success"}) == 2.0
        assert counter.get(labels={"status": "error"}) == 1.0
        assert counter.get(labels={"status": "unknown"}) == 0.0


class TestGauge:
    """Tests for Gauge metric."""

    def test_gauge_set_and_add(self) -> None:
        """Gauges move in both directions."""
        gauge = Gauge(name="test_gauge", help_text="Test gauge")
        gauge.set(3.0)
        gauge.add(-1.0)

        assert gauge.get() == 2.0


class TestHistogram:
    """Tests for Histogram metric."""

    def test_histogram_counts_observations(self) -> None:
        """Histograms count observations per label set."""
        histogram = Histogram(name="h", help_text="h", buckets=(0.1, 1.0))
        histogram.observe(0.05, labels={"method": "server.ping"})
        histogram.observe(0.5, labels={"method": "server.ping"})

        assert histogram.get_count(labels={"method": "server.ping"}) == 2.0


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_default_metrics_registered(self) -> None:
        """Relay metrics exist from the start."""
        output = MetricsCollector().export_prometheus()

        assert "# TYPE mcp_rpc_requests_total counter" in output
        assert "# TYPE mcp_sse_connections_active gauge" in output
        assert "# TYPE mcp_rpc_duration_seconds histogram" in output
        assert "mcp_process_uptime_seconds" in output

    def test_unknown_metric_is_ignored(self) -> None:
        """Recording an unregistered metric is a no-op."""
        collector = MetricsCollector()
        collector.increment_counter("not_registered_total")

        assert collector.get_counter("not_registered_total") == 0.0

    def test_register_counter(self) -> None:
        """Custom counters can be registered and exported."""
        collector = MetricsCollector()
        collector.register_counter("custom_total", "Custom counter")
        collector.increment_counter("custom_total", value=2.0)

        assert collector.get_counter("custom_total") == 2.0
        assert "custom_total 2.0" in collector.export_prometheus()

    def test_histogram_buckets_are_cumulative_once(self) -> None:
        """Exported buckets are cumulative counts, not sums of them."""
        collector = MetricsCollector()
        collector.register_histogram("latency_seconds", "Latency", buckets=(0.1, 1.0))
        collector.observe_histogram("latency_seconds", 0.05)
        collector.observe_histogram("latency_seconds", 0.5)

        output = collector.export_prometheus()

        assert 'latency_seconds_bucket{le="0.1"} 1.0' in output
        assert 'latency_seconds_bucket{le="1.0"} 2.0' in output
        assert 'latency_seconds_bucket{le="+Inf"} 2.0' in output
        assert "latency_seconds_count 2.0" in output

    def test_label_values_are_escaped(self) -> None:
        """Quotes in label values are escaped."""
        collector = MetricsCollector()
        collector.increment_counter("mcp_rpc_errors_total", {"code": 'a"b'})

        assert 'mcp_rpc_errors_total{code="a\\"b"} 1.0' in collector.export_prometheus()

    def test_gauge_tracks_active_streams(self) -> None:
        """The active-streams gauge goes up and down."""
        collector = MetricsCollector()
        collector.add_gauge("mcp_sse_connections_active", 1)
        collector.add_gauge("mcp_sse_connections_active", 1)
        collector.add_gauge("mcp_sse_connections_active", -1)

        assert collector.get_gauge("mcp_sse_connections_active") == 1.0

    def test_concurrent_increments(self) -> None:
        """Increments from many threads are not lost."""
        collector = MetricsCollector()

        def work() -> None:
            for _ in range(500):
                collector.increment_counter("mcp_relay_messages_total")

        threads = [threading.Thread(target=work) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert collector.get_counter("mcp_relay_messages_total") == 2000.0


class TestGlobalCollector:
    """Tests for the process-wide collector."""

    def test_get_metrics_is_singleton(self) -> None:
        """get_metrics returns the same collector."""
        assert get_metrics() is get_metrics()

    def test_reset_metrics_clears_values(self) -> None:
        """reset_metrics zeroes recorded values."""
        get_metrics().increment_counter("mcp_relay_messages_total")
        reset_metrics()

        assert get_metrics().get_counter("mcp_relay_messages_total") == 0.0
