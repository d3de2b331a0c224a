"""测试环境变量配置加载。"""

from __future__ import annotations

import pytest

from prometheus_middleware.common import config
from prometheus_middleware.common.config import (
    DEFAULT_BUCKETS,
    MetricsOptions,
    Settings,
    get_settings,
)


def test_defaults():
    settings = Settings.from_environment()
    assert settings.ENABLE_METRICS is True
    assert settings.METRICS_PATH == "/metrics"
    assert settings.METRICS_BUCKETS == []
    assert settings.METRICS_LOG_REQUESTS is False
    options = settings.metrics_options()
    assert options == MetricsOptions()
    assert options.buckets == DEFAULT_BUCKETS
    assert options.subsystem == ""


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("ENABLE_METRICS", "off")
    monkeypatch.setenv("METRICS_PATH", "/prom")
    monkeypatch.setenv("METRICS_BUCKETS", "0.1, 0.5,2")
    monkeypatch.setenv("METRICS_SUBSYSTEM", "api")
    monkeypatch.setenv("METRICS_NAMESPACE", "shop")
    monkeypatch.setenv("METRICS_LOG_REQUESTS", "yes")

    settings = get_settings()
    assert settings.ENABLE_METRICS is False
    assert settings.METRICS_PATH == "/prom"
    assert settings.METRICS_BUCKETS == [0.1, 0.5, 2.0]
    assert settings.METRICS_LOG_REQUESTS is True
    options = settings.metrics_options()
    assert options.buckets == (0.1, 0.5, 2.0)
    assert options.subsystem == "api"
    assert options.namespace == "shop"


def test_malformed_buckets_raise(monkeypatch):
    monkeypatch.setenv("METRICS_BUCKETS", "0.1,fast")
    with pytest.raises(ValueError, match="METRICS_BUCKETS"):
        Settings.from_environment()


def test_metrics_path_must_be_absolute():
    with pytest.raises(ValueError):
        Settings(METRICS_PATH="metrics")


def test_env_file_does_not_override_environment(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\nMETRICS_SUBSYSTEM='from_file'\nMETRICS_PATH=/from-file\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(config, "ENV_FILE", env_file)
    monkeypatch.setenv("METRICS_PATH", "/from-env")
    # .env 会直接写入 os.environ，先登记以便测试结束后还原
    monkeypatch.setenv("METRICS_SUBSYSTEM", "placeholder")
    monkeypatch.delenv("METRICS_SUBSYSTEM")

    settings = Settings.from_environment()
    assert settings.METRICS_SUBSYSTEM == "from_file"
    assert settings.METRICS_PATH == "/from-env"
