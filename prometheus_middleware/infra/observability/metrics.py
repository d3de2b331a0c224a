"""HTTP request instruments registered into a prometheus_client registry."""

from __future__ import annotations

import logging
from typing import TypeVar

from prometheus_client import CollectorRegistry, Counter, Histogram, make_asgi_app

from prometheus_middleware.common.config import MetricsOptions

logger = logging.getLogger(__name__)

# 所有指标使用同一组低基数标签；path 为路由模板（如 /users/{id}）
LABEL_NAMES: tuple[str, ...] = ("code", "method", "path")

REQUEST_NAME = "http_requests_total"
LATENCY_NAME = "http_request_duration_seconds"
REQUEST_SIZE_NAME = "request_size_bytes"
RESPONSE_SIZE_NAME = "response_size_bytes"

_Instrument = TypeVar("_Instrument", Counter, Histogram)


def full_metric_name(name: str, options: MetricsOptions) -> str:
    return "_".join(part for part in (options.namespace, options.subsystem, name) if part)


def _registered_collector(
    registry: CollectorRegistry, name: str, kind: type[_Instrument]
) -> _Instrument | None:
    # prometheus_client 没有公开按名称查询的接口，这里依赖私有属性；
    # pyproject.toml 中限定了 prometheus-client 的版本上限
    existing = getattr(registry, "_names_to_collectors", {}).get(name)
    if not isinstance(existing, kind):
        return None
    if tuple(getattr(existing, "_labelnames", ())) != LABEL_NAMES:
        return None
    return existing


def _register(
    kind: type[_Instrument],
    name: str,
    documentation: str,
    options: MetricsOptions,
    registry: CollectorRegistry | None,
    **kwargs,
) -> _Instrument:
    """Create ``kind`` and register it; a name collision is logged, not raised.

    On collision the collector already registered under the same name is
    reused when it has the same kind and labels, so series keep accumulating
    in one place. Otherwise an unregistered instrument is returned and its
    observations are simply not exposed.
    """

    try:
        return kind(
            name,
            documentation,
            LABEL_NAMES,
            namespace=options.namespace,
            subsystem=options.subsystem,
            registry=registry,
            **kwargs,
        )
    except ValueError as exc:
        if "Duplicated timeseries" not in str(exc):
            raise
        full_name = full_metric_name(name, options)
        logger.warning(
            "%s was not registered: %s",
            full_name,
            exc,
            extra={"extra": {"metric": full_name, "error": str(exc)}},
        )

    existing = _registered_collector(registry, full_metric_name(name, options), kind)
    if existing is not None:
        return existing
    return kind(
        name,
        documentation,
        LABEL_NAMES,
        namespace=options.namespace,
        subsystem=options.subsystem,
        registry=None,
        **kwargs,
    )


class HttpMetrics:
    """The four request instruments sharing the ``(code, method, path)`` labels.

    ``registry=None`` leaves the instruments unregistered; callers that want
    them exposed pass a registry explicitly (``create_app`` uses the global one).
    """

    def __init__(
        self,
        options: MetricsOptions | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self.options = options or MetricsOptions()
        self.registry = registry
        buckets = self.options.buckets

        self.requests = _register(
            Counter,
            REQUEST_NAME,
            "How many HTTP requests processed, partitioned by status code, method and HTTP path.",
            self.options,
            registry,
        )
        self.latency = _register(
            Histogram,
            LATENCY_NAME,
            "How long it took to process the request, partitioned by status code, method and HTTP path.",
            self.options,
            registry,
            buckets=buckets,
        )
        self.request_size = _register(
            Histogram,
            REQUEST_SIZE_NAME,
            "How large was the request, partitioned by status code, method and HTTP path.",
            self.options,
            registry,
            buckets=buckets,
        )
        self.response_size = _register(
            Histogram,
            RESPONSE_SIZE_NAME,
            "How large was the response, partitioned by status code, method and HTTP path.",
            self.options,
            registry,
            buckets=buckets,
        )

    def observe(
        self,
        code: str,
        method: str,
        path: str,
        duration: float,
        request_size: int,
        response_size: int,
    ) -> None:
        self.requests.labels(code, method, path).inc()
        self.latency.labels(code, method, path).observe(duration)
        self.request_size.labels(code, method, path).observe(request_size)
        self.response_size.labels(code, method, path).observe(response_size)


def metrics_app(registry: CollectorRegistry):
    """/metrics 端点 ASGI 应用"""
    return make_asgi_app(registry=registry)
