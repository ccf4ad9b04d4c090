from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional

from loguru import logger
from prometheus_client import CollectorRegistry, Counter, Gauge, push_to_gateway

from .config import PerformanceSettings
from .performance import PerformanceMonitor, Snapshot


ROLLING_SOURCE = "rolling_window_100"


class EmissionFailure(RuntimeError):
    """The telemetry backend could not be reached."""


class TelemetrySink:
    """Destination for aggregated performance metrics and events."""

    def track_metric(self, name: str, value: float, properties: Optional[Dict[str, str]] = None) -> None:
        raise NotImplementedError

    def track_event(self, name: str, properties: Dict[str, str]) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        pass


_METRIC_HELP = {
    "perf_rolling_avg_ms": "Average response time over the rolling window (ms)",
    "perf_rolling_p95_ms": "95th percentile response time over the rolling window (ms)",
    "perf_rolling_max_ms": "Maximum response time over the rolling window (ms)",
    "perf_sample_count": "Samples currently held in the rolling window",
    "perf_baseline_deviation_percent": "Rolling average deviation from baseline (%)",
}


class PrometheusSink(TelemetrySink):
    """Keeps the last emitted values as gauges in a private registry.

    When a Pushgateway URL is configured, ``flush`` pushes the registry there.
    """

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        pushgateway_url: Optional[str] = None,
        job: str = "sre-perf-demo",
        timeout: float = 2.0,
    ) -> None:
        self.registry = registry or CollectorRegistry()
        self.pushgateway_url = pushgateway_url
        self.job = job
        self.timeout = timeout
        self._lock = threading.Lock()
        self._gauges: Dict[str, Gauge] = {}
        self._events = Counter(
            "perf_snapshot_events",
            "Performance snapshot events emitted, by health status",
            ["status"],
            registry=self.registry,
        )

    def _gauge(self, name: str) -> Gauge:
        with self._lock:
            g = self._gauges.get(name)
            if g is None:
                g = Gauge(name, _METRIC_HELP.get(name, name), registry=self.registry)
                self._gauges[name] = g
            return g

    def track_metric(self, name: str, value: float, properties: Optional[Dict[str, str]] = None) -> None:
        self._gauge(name).set(float(value))
        if properties:
            logger.debug("metric {} = {} {}", name, value, properties)

    def track_event(self, name: str, properties: Dict[str, str]) -> None:
        self._events.labels(status=properties.get("status", "Unknown")).inc()
        logger.bind(event=name, **properties).info("telemetry event {}: {}", name, properties)

    def flush(self) -> None:
        if not self.pushgateway_url:
            return
        try:
            push_to_gateway(self.pushgateway_url, job=self.job, registry=self.registry, timeout=self.timeout)
        except OSError as e:
            raise EmissionFailure(f"push to {self.pushgateway_url} failed: {e}") from e


def build_sink(settings: PerformanceSettings) -> PrometheusSink:
    return PrometheusSink(
        pushgateway_url=settings.pushgateway_url,
        job=settings.pushgateway_job,
        timeout=settings.pushgateway_timeout_sec,
    )


class MetricsEmitter:
    """Pushes rolling-window aggregates to a sink at most once per interval."""

    def __init__(
        self,
        monitor: PerformanceMonitor,
        sink: TelemetrySink,
        interval_sec: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.monitor = monitor
        self.sink = sink
        self.interval_sec = monitor.settings.emit_interval_sec if interval_sec is None else interval_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._last_emit: Optional[float] = None

    def try_open_gate(self) -> bool:
        # check and update under the same lock so concurrent callers cannot both pass
        with self._lock:
            now = self._clock()
            if self._last_emit is not None and now - self._last_emit < self.interval_sec:
                return False
            self._last_emit = now
            return True

    def maybe_emit(self) -> bool:
        """Emit if the interval has elapsed. Returns whether the gate opened."""
        if not self.try_open_gate():
            return False
        self.emit()
        return True

    def emit(self) -> Optional[Snapshot]:
        snap = self.monitor.snapshot()
        if snap.sample_count == 0:
            return None
        try:
            self._push(snap)
        except Exception as e:
            logger.warning("Metrics emission failed: {}", e)
        return snap

    def _push(self, snap: Snapshot) -> None:
        settings = self.monitor.settings
        rolling = {"source": ROLLING_SOURCE}
        self.sink.track_metric("perf_rolling_avg_ms", snap.avg_ms, rolling)
        self.sink.track_metric("perf_rolling_p95_ms", snap.p95_ms, rolling)
        self.sink.track_metric("perf_rolling_max_ms", snap.max_ms, rolling)
        self.sink.track_metric("perf_sample_count", snap.sample_count)

        deviation = snap.deviation_percent
        if snap.baseline_established and deviation is not None:
            self.sink.track_metric(
                "perf_baseline_deviation_percent",
                deviation,
                {"baseline_ms": f"{snap.baseline_avg_ms:.2f}", "current_ms": f"{snap.avg_ms:.2f}"},
            )
            if abs(deviation) > settings.significant_deviation_pct:
                logger.warning(
                    "Significant performance deviation detected: {:.1f}% from baseline. Current: {:.2f}ms, Baseline: {:.2f}ms",
                    deviation,
                    snap.avg_ms,
                    snap.baseline_avg_ms,
                )
            self.sink.track_event("PerformanceSnapshot", snapshot_properties(snap))
        self.sink.flush()


def snapshot_properties(snap: Snapshot) -> Dict[str, Any]:
    return {
        "status": snap.status.value,
        "avgMs": f"{snap.avg_ms:.2f}",
        "p95Ms": f"{snap.p95_ms:.2f}",
        "maxMs": f"{snap.max_ms:.2f}",
        "sampleCount": str(snap.sample_count),
        "baselineMs": f"{snap.baseline_avg_ms or 0.0:.2f}",
        "deviationPercent": f"{snap.deviation_percent:.1f}" if snap.deviation_percent is not None else "N/A",
    }
