"""Prometheus metrics for discovery, booking and pipeline runs."""

from prometheus_client import Counter, Histogram

# HTTP layer metrics
http_request_latency_ms = Histogram(
    "http_request_latency_ms",
    "Outbound HTTP request latency in milliseconds",
    ["source", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000],
)

http_retries_total = Counter(
    "http_retries_total",
    "Total outbound HTTP retries",
    ["source", "reason"],
)

# Discovery metrics
discovery_events_total = Counter(
    "discovery_events_total",
    "Total events returned by discovery sources",
    ["source", "mode"],
)

# Execution metrics
booking_results_total = Counter(
    "booking_results_total",
    "Total booking results by status",
    ["status"],
)

# Pipeline metrics
pipeline_runs_total = Counter(
    "pipeline_runs_total",
    "Total pipeline runs by outcome",
    ["outcome"],
)

stage_latency_ms = Histogram(
    "stage_latency_ms",
    "Pipeline stage latency in milliseconds",
    ["stage"],
    buckets=[10, 50, 100, 500, 1000, 5000, 15000, 60000, 300000],
)


class PipelineMetrics:
    """Interface for pipeline metrics (no-op by default)."""

    def record_http_latency(self, source: str, outcome: str, latency_ms: float) -> None:
        """Record outbound HTTP latency."""
        pass

    def inc_http_retry(self, source: str, reason: str) -> None:
        """Increment HTTP retry counter."""
        pass

    def inc_discovery_events(self, source: str, mode: str, count: int) -> None:
        """Add to the discovered event counter."""
        pass

    def inc_booking_result(self, status: str) -> None:
        """Increment booking result counter."""
        pass

    def inc_pipeline_run(self, outcome: str) -> None:
        """Increment pipeline run counter."""
        pass

    def record_stage_latency(self, stage: str, latency_ms: float) -> None:
        """Record pipeline stage latency."""
        pass


class PrometheusPipelineMetrics(PipelineMetrics):
    """Prometheus-based pipeline metrics implementation."""

    def record_http_latency(self, source: str, outcome: str, latency_ms: float) -> None:
        """Record outbound HTTP latency."""
        http_request_latency_ms.labels(source=source, outcome=outcome).observe(latency_ms)

    def inc_http_retry(self, source: str, reason: str) -> None:
        """Increment HTTP retry counter."""
        http_retries_total.labels(source=source, reason=reason).inc()

    def inc_discovery_events(self, source: str, mode: str, count: int) -> None:
        """Add to the discovered event counter."""
        discovery_events_total.labels(source=source, mode=mode).inc(count)

    def inc_booking_result(self, status: str) -> None:
        """Increment booking result counter."""
        booking_results_total.labels(status=status).inc()

    def inc_pipeline_run(self, outcome: str) -> None:
        """Increment pipeline run counter."""
        pipeline_runs_total.labels(outcome=outcome).inc()

    def record_stage_latency(self, stage: str, latency_ms: float) -> None:
        """Record pipeline stage latency."""
        stage_latency_ms.labels(stage=stage).observe(latency_ms)
