from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from prometheus_middleware.common import config
from prometheus_middleware.common.config import get_settings

ENV_VARS = (
    "ENABLE_METRICS",
    "METRICS_PATH",
    "METRICS_BUCKETS",
    "METRICS_SUBSYSTEM",
    "METRICS_NAMESPACE",
    "METRICS_LOG_REQUESTS",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    # 避免读取工作目录下的 .env
    monkeypatch.setattr(config, "ENV_FILE", tmp_path / ".env")
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()
