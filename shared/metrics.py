"""
Prometheus metrics for the Campus Access Layer.

Each service owns a private ``CollectorRegistry`` so several services can be
built in one process (tests, the in-process integration flow) without
colliding on metric names. Metrics are declared as data: the common set plus
a per-service set keyed by service name.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional, Sequence, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest

# name -> (type, help, labels)
MetricSpec = Tuple[type, str, Sequence[str]]

COMMON_METRICS: Dict[str, MetricSpec] = {
    "http_requests_total": (Counter, "Total HTTP requests", ("method", "endpoint", "status_code")),
    "http_request_duration_seconds": (Histogram, "HTTP request duration in seconds", ("method", "endpoint")),
    "health_check_total": (Counter, "Total health check requests", ("status",)),
    "errors_total": (Counter, "Errors answered to callers, by error code", ("error_type", "service")),
    "business_events_total": (Counter, "Domain events", ("event_type", "service")),
}

SERVICE_METRICS: Dict[str, Dict[str, MetricSpec]] = {
    "entitlements": {
        "entitlement_checks_total": (Counter, "Entitlement checks by decision", ("decision",)),
        "flag_store_fallbacks_total": (Counter, "Flag reads that degraded to the fail-closed default", ("reason",)),
    },
    "identity": {
        "reconciliations_total": (Counter, "Reconciliations by resolved role and outcome", ("role", "outcome")),
        "partition_read_failures_total": (Counter, "Partition calls absorbed as not-found", ("partition",)),
        "reconciliation_duration_seconds": (Histogram, "Reconciliation duration in seconds", ()),
    },
    "portal": {
        "logins_total": (Counter, "Session bootstraps by outcome", ("outcome",)),
    },
}


class MetricsCollector:
    """Metrics for one service."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}

        info = Info("service", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})

        specs = {**COMMON_METRICS, **SERVICE_METRICS.get(service_name, {})}
        for name, (metric_type, description, labels) in specs.items():
            self._metrics[name] = metric_type(name, description, list(labels), registry=self.registry)

    def _labelled(self, name: str, labels: Dict[str, str]):
        metric = self._metrics[name]
        return metric.labels(**labels) if labels else metric

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self._labelled("http_requests_total", {
            "method": method, "endpoint": endpoint, "status_code": str(status_code)
        }).inc()
        self._labelled("http_request_duration_seconds", {"method": method, "endpoint": endpoint}).observe(duration)

    def record_health_check(self, status: str):
        self._labelled("health_check_total", {"status": status}).inc()

    def record_error(self, error_type: str):
        self._labelled("errors_total", {"error_type": error_type, "service": self.service_name}).inc()

    def record_business_event(self, event_type: str):
        self._labelled("business_events_total", {"event_type": event_type, "service": self.service_name}).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a service counter; unknown names are ignored."""
        if metric_name in self._metrics:
            self._labelled(metric_name, labels).inc()

    @contextmanager
    def time_operation(self, metric_name: str, **labels):
        """Observe the duration of the enclosed block into a histogram."""
        started = time.perf_counter()
        try:
            yield
        finally:
            if metric_name in self._metrics:
                self._labelled(metric_name, labels).observe(time.perf_counter() - started)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get the metrics collector for a service, creating it once."""
    with _collectors_lock:
        if service_name not in _collectors:
            _collectors[service_name] = MetricsCollector(service_name)
        return _collectors[service_name]
