"""Prometheus metrics for upstream calls, retrieval and ingestion."""

from prometheus_client import Counter, Histogram

# Upstream (embedding / generation) metrics
upstream_latency_ms = Histogram(
    "upstream_latency_ms",
    "Upstream service call latency in milliseconds",
    ["service", "outcome"],
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000],
)

upstream_errors_total = Counter(
    "upstream_errors_total",
    "Total upstream service errors",
    ["service", "reason"],
)

# Retrieval metrics
retrieval_mode_total = Counter(
    "retrieval_mode_total",
    "Retrieval calls by the path that produced the context",
    ["mode"],
)

# Ingestion metrics
documents_ingested_total = Counter(
    "documents_ingested_total",
    "Documents stored by the ingestion pipeline",
    ["kind"],
)


class UpstreamMetrics:
    """Interface for upstream call metrics (no-op by default)."""

    def record_latency(self, service: str, outcome: str, latency_ms: float) -> None:
        """Record upstream call latency."""
        pass

    def inc_error(self, service: str, reason: str) -> None:
        """Increment error counter."""
        pass


class PrometheusUpstreamMetrics(UpstreamMetrics):
    """Prometheus-based upstream metrics implementation."""

    def record_latency(self, service: str, outcome: str, latency_ms: float) -> None:
        """Record upstream call latency."""
        upstream_latency_ms.labels(service=service, outcome=outcome).observe(latency_ms)

    def inc_error(self, service: str, reason: str) -> None:
        """Increment error counter."""
        upstream_errors_total.labels(service=service, reason=reason).inc()
