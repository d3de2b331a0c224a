import logging

import uvicorn
from fastapi import FastAPI
from prometheus_client import REGISTRY, CollectorRegistry

from prometheus_middleware.common.config import get_settings
from prometheus_middleware.common.logging import STARTUP_LOGGER, setup_logging
from prometheus_middleware.infra.observability.metrics import full_metric_name, metrics_app
from prometheus_middleware.infra.observability.middleware import PrometheusMiddleware


def create_app(registry: CollectorRegistry = REGISTRY) -> FastAPI:
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title="Prometheus Middleware Demo",
        version="v1.0",
        description="HTTP request metrics labelled by status code, method and route",
    )

    # Metrics
    if settings.ENABLE_METRICS:
        options = settings.metrics_options()
        app.add_middleware(
            PrometheusMiddleware,
            options=options,
            registry=registry,
            exclude_paths=(
                settings.METRICS_PATH,
                settings.METRICS_PATH.rstrip("/") + "/",
            ),
            log_requests=settings.METRICS_LOG_REQUESTS,
        )
        app.mount(settings.METRICS_PATH, metrics_app(registry))
        logging.getLogger(STARTUP_LOGGER).info(
            "metrics enabled path=%s requests_metric=%s buckets=%s",
            settings.METRICS_PATH,
            full_metric_name("http_requests_total", options),
            list(options.buckets),
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("prometheus_middleware.main:app", host="0.0.0.0", port=8000, reload=True)
