from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from .config import PerformanceSettings


class InvalidSample(ValueError):
    """A response time that is negative or not a finite number."""


class InvalidBaseline(ValueError):
    """A manual baseline that is not a positive finite number."""


class InsufficientSamples(Exception):
    def __init__(self, current: int, required: int) -> None:
        super().__init__(f"Need at least {required} samples to establish baseline")
        self.current = current
        self.required = required


class HealthStatus(str, Enum):
    UNKNOWN = "Unknown"
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    UNHEALTHY = "Unhealthy"


@dataclass(frozen=True)
class Snapshot:
    sample_count: int
    avg_ms: float
    p95_ms: float
    max_ms: float
    min_ms: float
    status: HealthStatus
    baseline_avg_ms: Optional[float]
    baseline_established: bool
    deviation_percent: Optional[float]


def deviation_percent(avg_ms: float, baseline_ms: Optional[float]) -> Optional[float]:
    """Signed change of ``avg_ms`` relative to the baseline; None without a usable baseline."""
    if baseline_ms is None or baseline_ms <= 0:
        return None
    return round((avg_ms - baseline_ms) / baseline_ms * 100, 2)


def p95_of(sorted_values: List[float]) -> float:
    n = len(sorted_values)
    return sorted_values[min(int(math.floor(n * 0.95)), n - 1)]


class PerformanceMonitor:
    """Rolling response-time window plus the baseline it is compared against.

    One lock guards the window, the establishment buffer and the baseline so an
    auto-established baseline can never race a concurrent reset.
    """

    def __init__(self, settings: PerformanceSettings | None = None) -> None:
        self.settings = settings or PerformanceSettings()
        self._lock = threading.Lock()
        self._window: Deque[float] = deque(maxlen=self.settings.window_size)
        self._baseline_window: List[float] = []
        self._baseline_ms: Optional[float] = None
        self._baseline_established = False

    def record(self, duration_ms: float) -> None:
        try:
            value = float(duration_ms)
        except (TypeError, ValueError):
            raise InvalidSample(f"response time must be a number, got {duration_ms!r}")
        if not math.isfinite(value) or value < 0:
            raise InvalidSample(f"response time must be a finite non-negative number, got {duration_ms!r}")
        with self._lock:
            self._window.append(value)
            if self._baseline_established:
                return
            self._baseline_window.append(value)
            if len(self._baseline_window) >= self.settings.baseline_window_size:
                avg = sum(self._baseline_window) / len(self._baseline_window)
                self._baseline_window.clear()
                # only a healthy-looking window becomes the baseline; otherwise start over
                if avg < self.settings.auto_baseline_ceiling_ms:
                    self._baseline_ms = avg
                    self._baseline_established = True

    def set_baseline(self, baseline_ms: float) -> None:
        try:
            value = float(baseline_ms)
        except (TypeError, ValueError):
            raise InvalidBaseline("Baseline must be positive")
        if not math.isfinite(value) or value <= 0:
            raise InvalidBaseline("Baseline must be positive")
        with self._lock:
            self._baseline_ms = value
            self._baseline_established = True
            self._baseline_window.clear()

    def reset_baseline(self) -> None:
        with self._lock:
            self._baseline_ms = None
            self._baseline_established = False
            self._baseline_window.clear()

    def window(self) -> List[float]:
        with self._lock:
            return list(self._window)

    def pending_baseline_samples(self) -> int:
        with self._lock:
            return len(self._baseline_window)

    def establish_from_window(self, min_samples: int) -> Snapshot:
        """Adopt the rounded rolling average as the baseline.

        The count check, the average and the commit share one lock with
        ``reset_baseline``.
        """
        with self._lock:
            values = list(self._window)
            if len(values) < min_samples:
                raise InsufficientSamples(len(values), min_samples)
            avg = round(sum(values) / len(values), 2)
            if avg <= 0:
                raise InvalidBaseline("Baseline must be positive")
            self._baseline_ms = avg
            self._baseline_established = True
            self._baseline_window.clear()
        return self._summarize(values, avg, True)

    def snapshot(self) -> Snapshot:
        with self._lock:
            values = list(self._window)
            baseline = self._baseline_ms
            established = self._baseline_established
        return self._summarize(values, baseline, established)

    def _summarize(self, values: List[float], baseline: Optional[float], established: bool) -> Snapshot:
        baseline_out = round(baseline, 2) if baseline is not None else None
        if not values:
            return Snapshot(
                sample_count=0,
                avg_ms=0.0,
                p95_ms=0.0,
                max_ms=0.0,
                min_ms=0.0,
                status=HealthStatus.UNKNOWN,
                baseline_avg_ms=baseline_out,
                baseline_established=established,
                deviation_percent=None,
            )
        ordered = sorted(values)
        avg = sum(values) / len(values)
        p95 = p95_of(ordered)
        avg_out = round(avg, 2)
        return Snapshot(
            sample_count=len(values),
            avg_ms=avg_out,
            p95_ms=round(p95, 2),
            max_ms=round(ordered[-1], 2),
            min_ms=round(ordered[0], 2),
            status=classify_status(avg, p95, self.settings),
            baseline_avg_ms=baseline_out,
            baseline_established=established,
            deviation_percent=deviation_percent(avg_out, baseline_out),
        )


def classify_status(avg_ms: float, p95_ms: float, settings: PerformanceSettings) -> HealthStatus:
    # an unhealthy average wins over an acceptable p95
    if avg_ms > settings.unhealthy_avg_ms:
        return HealthStatus.UNHEALTHY
    if p95_ms > settings.degraded_p95_ms:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def establish_baseline_from_window(monitor: PerformanceMonitor) -> Snapshot:
    """Adopt the current rolling average as the baseline.

    Raises InsufficientSamples when the window holds fewer than
    ``min_establish_samples`` observations.
    """
    return monitor.establish_from_window(monitor.settings.min_establish_samples)


@dataclass
class HealthCheckResult:
    status: HealthStatus
    description: str
    data: Dict[str, Any] = field(default_factory=dict)


def classify_health(snap: Snapshot) -> HealthCheckResult:
    if snap.sample_count == 0:
        return HealthCheckResult(HealthStatus.HEALTHY, "No response time data available yet")
    data = {
        "avgResponseTimeMs": snap.avg_ms,
        "maxResponseTimeMs": snap.max_ms,
        "p95ResponseTimeMs": snap.p95_ms,
        "sampleCount": snap.sample_count,
    }
    if snap.status == HealthStatus.UNHEALTHY:
        return HealthCheckResult(
            HealthStatus.UNHEALTHY, f"Average response time is too high: {snap.avg_ms:.2f}ms", data
        )
    if snap.status == HealthStatus.DEGRADED:
        return HealthCheckResult(
            HealthStatus.DEGRADED, f"95th percentile response time is high: {snap.p95_ms:.2f}ms", data
        )
    return HealthCheckResult(
        HealthStatus.HEALTHY,
        f"Performance is good. Avg: {snap.avg_ms:.2f}ms, P95: {snap.p95_ms:.2f}ms",
        data,
    )
