"""
Shared metrics configuration for the Atlas OS gateway.
"""

from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info


class MetricsCollector:
    """Centralized metrics collector backed by a per-service registry."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service",
            "Service information",
            registry=self.registry,
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0",
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry,
        )
        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry,
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry,
        )
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type"],
            registry=self.registry,
        )

        self._setup_gateway_metrics()

    def _setup_gateway_metrics(self):
        """Set up gateway-specific metrics."""
        self._metrics["upstream_requests_total"] = Counter(
            "upstream_requests_total",
            "Total upstream provider calls",
            ["provider", "outcome"],
            registry=self.registry,
        )
        self._metrics["upstream_request_duration_seconds"] = Histogram(
            "upstream_request_duration_seconds",
            "Upstream provider call duration in seconds",
            ["provider"],
            registry=self.registry,
        )
        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            ["cache_type"],
            registry=self.registry,
        )
        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses",
            ["cache_type"],
            registry=self.registry,
        )
        self._metrics["auth_failures_total"] = Counter(
            "auth_failures_total",
            "Rejected credential checks",
            ["reason"],
            registry=self.registry,
        )
        self._metrics["usage_record_failures_total"] = Counter(
            "usage_record_failures_total",
            "Usage events that could not be written",
            registry=self.registry,
        )
        self._metrics["rate_limit_hits_total"] = Counter(
            "rate_limit_hits_total",
            "Requests rejected by the rate limiter",
            ["endpoint"],
            registry=self.registry,
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code),
        ).inc()
        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str):
        """Record error metrics."""
        self._metrics["errors_total"].labels(error_type=error_type).inc()

    def record_upstream_call(self, provider: str, outcome: str, duration: float):
        """Record one upstream call and its outcome (e.g. '2xx', '4xx', 'unreachable')."""
        self._metrics["upstream_requests_total"].labels(provider=provider, outcome=outcome).inc()
        self._metrics["upstream_request_duration_seconds"].labels(provider=provider).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        if labels:
            metric = metric.labels(**labels)
        metric.inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
