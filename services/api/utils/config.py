from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Optional

from loguru import logger


def _get_float(name: str, default: float, min_v: float | None = 0.0, max_v: float | None = None) -> float:
    try:
        v = float(os.getenv(name, ""))
    except Exception:
        return default
    if v != v:  # NaN
        return default
    if min_v is not None:
        v = max(min_v, v)
    if max_v is not None:
        v = min(max_v, v)
    return v


def _get_int(name: str, default: int, min_v: int | None = 0, max_v: int | None = None) -> int:
    try:
        v = int(os.getenv(name, str(default)))
    except Exception:
        return default
    if min_v is not None:
        v = max(min_v, v)
    if max_v is not None:
        v = min(max_v, v)
    return v


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class PerformanceSettings:
    # Rolling window and baseline auto-establishment
    window_size: int = 100
    baseline_window_size: int = 100
    auto_baseline_ceiling_ms: float = 500.0
    min_establish_samples: int = 10
    # Health classification
    unhealthy_avg_ms: float = 1000.0
    degraded_p95_ms: float = 2000.0
    slow_request_ms: float = 500.0
    # Deviation alerts, in percent of baseline
    significant_deviation_pct: float = 50.0
    rollback_deviation_pct: float = 100.0
    # Emission gate
    emit_interval_sec: float = 30.0
    # Fault modes
    enable_slow_endpoints: bool = False
    enable_cpu_intensive_endpoints: bool = False
    response_time_threshold_ms: int = 1000
    cpu_threshold_percentage: int = 80
    memory_threshold_mb: int = 256
    fault_delay_scale: float = 1.0
    # Telemetry push target
    pushgateway_url: Optional[str] = None
    pushgateway_job: str = "sre-perf-demo"
    pushgateway_timeout_sec: float = 2.0
    log_level: str = "INFO"


def load_performance_settings() -> PerformanceSettings:
    """Build settings from the environment; unparseable values keep their defaults."""
    gateway = (os.getenv("PUSHGATEWAY_URL") or "").strip() or None
    return PerformanceSettings(
        window_size=_get_int("PERF_WINDOW_SIZE", 100, 1),
        baseline_window_size=_get_int("PERF_BASELINE_WINDOW_SIZE", 100, 1),
        auto_baseline_ceiling_ms=_get_float("PERF_AUTO_BASELINE_CEILING_MS", 500.0),
        min_establish_samples=_get_int("PERF_MIN_ESTABLISH_SAMPLES", 10, 1),
        unhealthy_avg_ms=_get_float("PERF_UNHEALTHY_AVG_MS", 1000.0),
        degraded_p95_ms=_get_float("PERF_DEGRADED_P95_MS", 2000.0),
        slow_request_ms=_get_float("PERF_SLOW_REQUEST_MS", 500.0),
        significant_deviation_pct=_get_float("PERF_SIGNIFICANT_DEVIATION_PCT", 50.0),
        rollback_deviation_pct=_get_float("PERF_ROLLBACK_DEVIATION_PCT", 100.0),
        emit_interval_sec=_get_float("PERF_EMIT_INTERVAL_SEC", 30.0),
        enable_slow_endpoints=_get_bool("ENABLE_SLOW_ENDPOINTS", False),
        enable_cpu_intensive_endpoints=_get_bool("ENABLE_CPU_INTENSIVE_ENDPOINTS", False),
        response_time_threshold_ms=_get_int("RESPONSE_TIME_THRESHOLD_MS", 1000),
        cpu_threshold_percentage=_get_int("CPU_THRESHOLD_PERCENTAGE", 80, 0, 100),
        memory_threshold_mb=_get_int("MEMORY_THRESHOLD_MB", 256, 1),
        fault_delay_scale=_get_float("FAULT_DELAY_SCALE", 1.0, 0.0, 10.0),
        pushgateway_url=gateway,
        pushgateway_job=os.getenv("PUSHGATEWAY_JOB", "sre-perf-demo"),
        pushgateway_timeout_sec=_get_float("PUSHGATEWAY_TIMEOUT_SEC", 2.0, 0.1, 30.0),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


def setup_logging(level: str = "INFO") -> None:
    """Route loguru output to stderr with a single handler."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level,
    )
