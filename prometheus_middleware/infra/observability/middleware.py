import logging
import time
from typing import Callable, Iterable

from prometheus_client import CollectorRegistry
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from prometheus_middleware.common.config import MetricsOptions
from prometheus_middleware.common.logging import HTTP_LOGGER
from prometheus_middleware.infra.observability.metrics import HttpMetrics

RouteResolver = Callable[[Scope], str]


def resolve_route_template(scope: Scope) -> str:
    """Path template of the route the router matched, or ``""``.

    Starlette/FastAPI routers store the matched route in the shared scope
    while dispatching, so it is readable once the inner app has returned.
    """

    route = scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else ""


def sanitize_method(method: str) -> str:
    return method.lower()


def sanitize_code(status: int) -> str:
    return str(status)


def _content_length(headers: Iterable[tuple[bytes, bytes]]) -> int:
    """Declared Content-Length, or -1 when absent or unparseable."""
    for name, value in headers:
        if name.lower() != b"content-length":
            continue
        try:
            return int(value)
        except ValueError:
            return -1
    return -1


def compute_approximate_request_size(scope: Scope) -> int:
    """Approximate request size from what the server already parsed.

    Path, method, protocol, every header name and value except Host, the host
    itself, plus the declared Content-Length when it is known. The body is not
    read.
    """

    headers = scope.get("headers") or []
    size = len(scope.get("path") or "")
    size += len(scope.get("method") or "")
    size += len(f"HTTP/{scope.get('http_version', '1.1')}")

    host: bytes | str = b""
    for name, value in headers:
        if name.lower() == b"host":
            host = value
            continue
        size += len(name) + len(value)
    if not host and scope.get("server"):
        server_host, server_port = scope["server"]
        host = f"{server_host}:{server_port}" if server_port else server_host
    size += len(host)

    content_length = _content_length(headers)
    if content_length >= 0:
        size += content_length
    return size


class ResponseObserver:
    """Interposed ``send`` that forwards every message and taps status and size."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self.status = 200
        self.written = 0
        self.wrote_header = False

    async def write_header(self, status: int, message: Message | None = None) -> None:
        if not self.wrote_header:
            self.status = status
            self.wrote_header = True
        if message is None:
            message = {"type": "http.response.start", "status": status, "headers": []}
        await self._send(message)

    async def __call__(self, message: Message) -> None:
        message_type = message["type"]
        if message_type == "http.response.start":
            await self.write_header(message["status"], message)
            return
        if message_type == "http.response.body":
            if not self.wrote_header:
                await self.write_header(200)
            await self._send(message)
            self.written += len(message.get("body", b""))
            return
        await self._send(message)


class PrometheusMiddleware:
    """ASGI middleware recording request count, latency and sizes.

    Every request ends up in the four instruments of :class:`HttpMetrics`
    labelled ``(code, method, path)`` once the wrapped app has returned. The
    response passed to the client is not modified. Without ``registry`` (or a
    prebuilt ``metrics``) the instruments are not registered anywhere.
    """

    def __init__(
        self,
        app: ASGIApp,
        options: MetricsOptions | None = None,
        registry: CollectorRegistry | None = None,
        route_resolver: RouteResolver = resolve_route_template,
        exclude_paths: Iterable[str] = (),
        log_requests: bool = False,
        metrics: HttpMetrics | None = None,
    ) -> None:
        self.app = app
        self.metrics = metrics or HttpMetrics(options, registry=registry)
        self.route_resolver = route_resolver
        self.exclude_paths = frozenset(exclude_paths)
        self.log_requests = log_requests

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path") in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        begin = time.perf_counter()
        observer = ResponseObserver(send)
        try:
            await self.app(scope, receive, observer)
        except Exception as exc:
            elapsed = time.perf_counter() - begin
            # 未发送响应头时，外层错误处理会返回 500
            status = observer.status if observer.wrote_header else 500
            self._record(scope, status, observer.written, elapsed)
            logging.getLogger(HTTP_LOGGER).exception(
                "request_error method=%s path=%s status=%s duration_ms=%.3f",
                scope.get("method"),
                scope.get("path"),
                status,
                round(elapsed * 1000, 3),
                extra={
                    "extra": {
                        "method": scope.get("method"),
                        "path": scope.get("path"),
                        "status": status,
                        "duration_ms": round(elapsed * 1000, 3),
                        "exception": repr(exc),
                    }
                },
            )
            raise

        elapsed = time.perf_counter() - begin
        self._record(scope, observer.status, observer.written, elapsed)

    def _record(self, scope: Scope, status: int, written: int, elapsed: float) -> None:
        code = sanitize_code(status)
        method = sanitize_method(scope.get("method", ""))
        path = self.route_resolver(scope)
        self.metrics.observe(
            code,
            method,
            path,
            duration=elapsed,
            request_size=compute_approximate_request_size(scope),
            response_size=written,
        )

        if not self.log_requests:
            return
        level = logging.INFO
        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        duration_ms = round(elapsed * 1000, 3)
        logging.getLogger(HTTP_LOGGER).log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.3f bytes=%s",
            method,
            path or "-",
            code,
            duration_ms,
            written,
            extra={
                "extra": {
                    "method": method,
                    "route": path,
                    "url_path": scope.get("path"),
                    "status": status,
                    "duration_ms": duration_ms,
                    "response_bytes": written,
                }
            },
        )
