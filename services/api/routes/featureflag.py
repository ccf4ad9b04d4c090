from __future__ import annotations

import gc
import random
from datetime import datetime, timezone
from typing import Any, Dict

import psutil
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

from ..utils.fault_injector import FaultInjector


router = APIRouter(prefix="/api/featureflag", tags=["featureflag"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _injector(request: Request) -> FaultInjector:
    return request.app.state.faults


@router.get("/performance-mode")
def get_performance_mode(request: Request) -> Dict[str, Any]:
    faults = _injector(request)
    settings = request.app.state.settings
    return {
        "slowEndpointsEnabled": faults.slow_mode,
        "cpuIntensiveEndpointsEnabled": faults.cpu_intensive_mode,
        "responseTimeThresholdMs": settings.response_time_threshold_ms,
        "cpuThresholdPercentage": settings.cpu_threshold_percentage,
        "mode": faults.mode_name(),
        "timestamp": _now(),
    }


@router.post("/enable-slow-mode")
def enable_slow_mode(request: Request) -> Dict[str, Any]:
    _injector(request).slow_mode = True
    logger.warning("PERFORMANCE DEGRADATION: Slow mode has been enabled manually via API")
    return {
        "message": "Slow mode enabled.",
        "warning": "This will cause performance degradation in the application.",
        "timestamp": _now(),
    }


@router.post("/disable-slow-mode")
def disable_slow_mode(request: Request) -> Dict[str, Any]:
    _injector(request).slow_mode = False
    logger.info("PERFORMANCE RECOVERY: Slow mode has been disabled manually via API")
    return {"message": "Slow mode disabled. Performance should return to normal.", "timestamp": _now()}


@router.post("/enable-cpu-intensive-mode")
def enable_cpu_intensive_mode(request: Request) -> Dict[str, Any]:
    _injector(request).cpu_intensive_mode = True
    logger.warning("CPU INTENSIVE MODE: CPU-intensive operations have been enabled manually via API")
    return {
        "message": "CPU-intensive mode enabled.",
        "warning": "This will cause high CPU usage and performance degradation in the application.",
        "timestamp": _now(),
    }


@router.post("/disable-cpu-intensive-mode")
def disable_cpu_intensive_mode(request: Request) -> Dict[str, Any]:
    _injector(request).cpu_intensive_mode = False
    logger.info("CPU INTENSIVE MODE DISABLED: CPU-intensive operations have been disabled manually via API")
    return {"message": "CPU-intensive mode disabled. Performance should return to normal.", "timestamp": _now()}


@router.get("/metrics")
def get_process_metrics() -> Dict[str, Any]:
    rss = psutil.Process().memory_info().rss
    stats = gc.get_stats()
    return {
        "memoryUsage": {
            "totalMemoryBytes": rss,
            "totalMemoryMB": round(rss / (1024.0 * 1024.0), 2),
        },
        "garbageCollection": {
            f"gen{i}Collections": s.get("collections", 0) for i, s in enumerate(stats)
        },
        "timestamp": _now(),
    }


@router.get("/error-spike")
def error_spike():
    """Fails about 85% of calls so failure-anomaly alerting has something to find."""
    roll = random.randint(0, 99)
    if roll < 85:
        logger.error("SIMULATED ERROR SPIKE: Intentional error for failure anomaly detection (random={})", roll)
        if roll < 30:
            return JSONResponse(status_code=500, content={
                "error": "Internal Server Error",
                "message": "Database connection failed",
                "timestamp": _now(),
                "errorCode": "DB_CONNECTION_FAILED",
            })
        if roll < 60:
            return JSONResponse(status_code=503, content={
                "error": "Service Unavailable",
                "message": "Downstream service timeout",
                "timestamp": _now(),
                "errorCode": "SERVICE_TIMEOUT",
            })
        raise RuntimeError("Simulated unhandled exception for failure anomaly detection")
    return {
        "message": "Success",
        "timestamp": _now(),
        "note": "This endpoint randomly generates errors to trigger anomaly detection",
    }
