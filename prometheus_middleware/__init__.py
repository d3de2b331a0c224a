from prometheus_middleware.common.config import DEFAULT_BUCKETS, MetricsOptions
from prometheus_middleware.infra.observability.metrics import HttpMetrics, metrics_app
from prometheus_middleware.infra.observability.middleware import (
    PrometheusMiddleware,
    ResponseObserver,
    compute_approximate_request_size,
    resolve_route_template,
)

__all__ = [
    "DEFAULT_BUCKETS",
    "HttpMetrics",
    "MetricsOptions",
    "PrometheusMiddleware",
    "ResponseObserver",
    "compute_approximate_request_size",
    "metrics_app",
    "resolve_route_template",
]
