from __future__ import annotations

from typing import Any, Dict, Optional

from osrbac.core.ports import MetricsSink

try:
    from prometheus_client import REGISTRY, Counter, Histogram  # type: ignore
except Exception:  # pragma: no cover
    REGISTRY = Counter = Histogram = None  # type: ignore


class PrometheusMetrics(MetricsSink):
    """Prometheus-based MetricsSink.

    Exposes:
      - osrbac_decisions_total{decision="allowed|forbidden|unauthorized|error"}
      - osrbac_reloads_total{result="ok|error|skipped"}
      - osrbac_reload_seconds (Histogram)
    """

    # Explicit attribute annotations for mypy
    _counters: Dict[str, Any]
    _hist: Optional[Any]

    def __init__(self, registry: Any | None = None) -> None:
        self._counters = {}
        self._hist = None

        if Counter is None or Histogram is None:  # pragma: no cover
            return

        registry = registry if registry is not None else REGISTRY
        self._counters["osrbac_decisions_total"] = Counter(
            "osrbac_decisions_total",
            "Total enforcement outcomes.",
            labelnames=("decision",),
            registry=registry,
        )
        self._counters["osrbac_reloads_total"] = Counter(
            "osrbac_reloads_total",
            "Policy reload attempts by result.",
            labelnames=("result",),
            registry=registry,
        )
        self._hist = Histogram(
            "osrbac_reload_seconds",
            "Policy reload duration in seconds.",
            registry=registry,
        )

    # -- MetricsSink ------------------------------------------------------------

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        counter = self._counters.get(name)
        if counter is None:
            return
        try:
            counter.labels(**(labels or {})).inc()
        except Exception:  # pragma: no cover
            # never raise from metrics path
            pass

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        if self._hist is None or name != "osrbac_reload_seconds":
            return
        try:
            self._hist.observe(float(value))
        except Exception:  # pragma: no cover
            pass
