from __future__ import annotations

import time
from typing import Any, Dict, List

import psutil
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..utils.performance import HealthCheckResult, HealthStatus, classify_health


router = APIRouter(tags=["health"])

_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}


def check_performance(request: Request) -> HealthCheckResult:
    return classify_health(request.app.state.monitor.snapshot())


def check_memory(request: Request) -> HealthCheckResult:
    threshold_mb = request.app.state.settings.memory_threshold_mb
    rss = psutil.Process().memory_info().rss
    used_mb = rss // (1024 * 1024)
    data = {"rssBytes": rss, "thresholdMb": threshold_mb}
    if used_mb < threshold_mb:
        return HealthCheckResult(HealthStatus.HEALTHY, f"Memory usage: {used_mb}MB", data)
    return HealthCheckResult(HealthStatus.DEGRADED, f"High memory usage: {used_mb}MB", data)


CHECKS = [("performance", check_performance), ("memory", check_memory)]


@router.get("/health")
def health(request: Request):
    started = time.perf_counter()
    entries: List[Dict[str, Any]] = []
    overall = HealthStatus.HEALTHY
    for name, check in CHECKS:
        t0 = time.perf_counter()
        try:
            result = check(request)
        except Exception as e:
            result = HealthCheckResult(HealthStatus.UNHEALTHY, f"Check failed: {e}")
        entries.append({
            "name": name,
            "status": result.status.value,
            "description": result.description,
            "duration": round((time.perf_counter() - t0) * 1000.0, 4),
            "data": result.data,
        })
        if _SEVERITY[result.status] > _SEVERITY[overall]:
            overall = result.status
    body = {
        "status": overall.value,
        "checks": entries,
        "totalDuration": round((time.perf_counter() - started) * 1000.0, 4),
    }
    return JSONResponse(body, status_code=503 if overall == HealthStatus.UNHEALTHY else 200)
