from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

DEFAULT_BUCKETS: tuple[float, ...] = (0.3, 1.0, 2.5, 5.0)


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_floats(value: str | None) -> list[float]:
    items = _as_list(value)
    try:
        return [float(item) for item in items]
    except ValueError as exc:
        raise ValueError(
            f"METRICS_BUCKETS must be a comma-separated list of numbers, got {value!r}"
        ) from exc


def validate_buckets(buckets: tuple[float, ...]) -> tuple[float, ...]:
    """Return ``buckets`` if they are positive and strictly increasing."""

    previous = 0.0
    for bound in buckets:
        if bound <= previous:
            raise ValueError(
                "Histogram buckets must be positive and strictly increasing: "
                f"{list(buckets)}"
            )
        previous = bound
    return buckets


@dataclass(frozen=True)
class MetricsOptions:
    """Construction-time options for the HTTP metrics.

    ``buckets`` is shared by the latency histogram (seconds) and the two size
    histograms (bytes). An empty sequence selects ``DEFAULT_BUCKETS``.
    ``namespace`` and ``subsystem`` are joined in front of every metric name.
    """

    buckets: tuple[float, ...] = ()
    subsystem: str = ""
    namespace: str = ""

    def __post_init__(self) -> None:
        buckets = tuple(float(b) for b in self.buckets) or DEFAULT_BUCKETS
        object.__setattr__(self, "buckets", validate_buckets(buckets))
        object.__setattr__(self, "subsystem", (self.subsystem or "").strip())
        object.__setattr__(self, "namespace", (self.namespace or "").strip())


@dataclass
class Settings:
    ENABLE_METRICS: bool = True
    METRICS_PATH: str = "/metrics"
    METRICS_BUCKETS: list[float] = field(default_factory=list)
    METRICS_SUBSYSTEM: str = ""
    METRICS_NAMESPACE: str = ""
    METRICS_LOG_REQUESTS: bool = False

    def __post_init__(self) -> None:
        if not self.METRICS_PATH.startswith("/"):
            raise ValueError("METRICS_PATH must start with '/'.")

    def metrics_options(self) -> MetricsOptions:
        return MetricsOptions(
            buckets=tuple(self.METRICS_BUCKETS),
            subsystem=self.METRICS_SUBSYSTEM,
            namespace=self.METRICS_NAMESPACE,
        )

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            METRICS_PATH=os.environ.get("METRICS_PATH", cls.METRICS_PATH),
            METRICS_BUCKETS=_as_floats(os.environ.get("METRICS_BUCKETS")),
            METRICS_SUBSYSTEM=os.environ.get(
                "METRICS_SUBSYSTEM", cls.METRICS_SUBSYSTEM
            ),
            METRICS_NAMESPACE=os.environ.get(
                "METRICS_NAMESPACE", cls.METRICS_NAMESPACE
            ),
            METRICS_LOG_REQUESTS=_as_bool(
                os.environ.get("METRICS_LOG_REQUESTS"), cls.METRICS_LOG_REQUESTS
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
