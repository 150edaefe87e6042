"""
Shared metrics for the access token layer.

Metrics are registered once on the default Prometheus registry at import;
collectors only hold references, so building several services in one
process (as tests do) never re-registers a series.
"""

from typing import Any, Dict

from prometheus_client import Counter, Histogram

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["service", "method", "endpoint"],
)

HEALTH_CHECK_TOTAL = Counter(
    "health_check_total",
    "Total health check requests",
    ["service", "status"],
)

TOKENS_ISSUED_TOTAL = Counter(
    "access_tokens_issued_total",
    "Total access token strings produced",
    ["form"],
)

TOKEN_VERIFICATIONS_TOTAL = Counter(
    "access_token_verifications_total",
    "Total access token verifications",
    ["result"],
)


def record_token_issued(form: str) -> None:
    """Record a produced token string ('signed' or 'encrypted')."""
    TOKENS_ISSUED_TOTAL.labels(form=form).inc()


def record_token_verification(result: str) -> None:
    """Record a verification outcome ('ok', 'invalid' or 'expired')."""
    TOKEN_VERIFICATIONS_TOTAL.labels(result=result).inc()


class MetricsCollector:
    """Per-service view over the shared metrics."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self._metrics: Dict[str, Any] = {
            "http_requests_total": HTTP_REQUESTS_TOTAL,
            "http_request_duration_seconds": HTTP_REQUEST_DURATION_SECONDS,
            "health_check_total": HEALTH_CHECK_TOTAL,
        }

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            service=self.service_name,
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            service=self.service_name,
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(service=self.service_name, status=status).inc()


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name)
