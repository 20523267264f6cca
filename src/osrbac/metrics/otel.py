from __future__ import annotations

from typing import Any, Dict, Optional

from osrbac.core.ports import MetricsSink

try:
    from opentelemetry.metrics import get_meter  # type: ignore
except Exception:  # pragma: no cover
    get_meter = None  # type: ignore


class OpenTelemetryMetrics(MetricsSink):
    """OpenTelemetry-based MetricsSink using the same names as PrometheusMetrics.

    Creates:
      - Counters: osrbac_decisions_total, osrbac_reloads_total
      - Histogram: osrbac_reload_seconds (unit: s)
    """

    _counters: Dict[str, Any]
    _hist: Optional[Any]

    def __init__(self, meter: Any | None = None) -> None:
        self._counters = {}
        self._hist = None

        if meter is None:
            if get_meter is None:  # pragma: no cover
                return
            meter = get_meter("osrbac.metrics")

        try:
            self._counters["osrbac_decisions_total"] = meter.create_counter(
                name="osrbac_decisions_total",
                description="Total enforcement outcomes.",
            )
            self._counters["osrbac_reloads_total"] = meter.create_counter(
                name="osrbac_reloads_total",
                description="Policy reload attempts by result.",
            )
        except Exception:  # pragma: no cover
            self._counters = {}

        create_hist = getattr(meter, "create_histogram", None)
        if create_hist is not None:
            try:
                self._hist = create_hist(
                    name="osrbac_reload_seconds",
                    description="Policy reload duration in seconds.",
                    unit="s",
                )
            except Exception:  # pragma: no cover
                self._hist = None

    # -- MetricsSink ------------------------------------------------------------

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        counter = self._counters.get(name)
        if counter is None:
            return
        try:
            counter.add(1, dict(labels or {}))
        except Exception:  # pragma: no cover
            pass

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        if self._hist is None or name != "osrbac_reload_seconds":
            return
        try:
            self._hist.record(float(value), dict(labels or {}))
        except Exception:  # pragma: no cover
            pass
