from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request
from loguru import logger
from pydantic import BaseModel

from ..utils.performance import (
    HealthStatus,
    InsufficientSamples,
    InvalidBaseline,
    PerformanceMonitor,
    establish_baseline_from_window,
)


router = APIRouter(prefix="/api/baseline", tags=["baseline"])


class SetBaselineRequest(BaseModel):
    baselineMs: float


def _monitor(request: Request) -> PerformanceMonitor:
    return request.app.state.monitor


@router.get("")
def get_snapshot(request: Request) -> Dict[str, Any]:
    """Current rolling-window metrics, baseline and the alert flags an operator polls."""
    monitor = _monitor(request)
    settings = monitor.settings
    snap = monitor.snapshot()
    dev = snap.deviation_percent
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metrics": {
            "sampleCount": snap.sample_count,
            "avgResponseTimeMs": snap.avg_ms,
            "p95ResponseTimeMs": snap.p95_ms,
            "maxResponseTimeMs": snap.max_ms,
            "minResponseTimeMs": snap.min_ms,
            "status": snap.status.value,
        },
        "baseline": {
            "established": snap.baseline_established,
            "avgMs": snap.baseline_avg_ms,
            "deviationPercent": dev,
        },
        "alerts": {
            "significantDeviation": dev is not None and abs(dev) > settings.significant_deviation_pct,
            "isUnhealthy": snap.status == HealthStatus.UNHEALTHY,
            "isDegraded": snap.status == HealthStatus.DEGRADED,
            # 2x slower than baseline
            "requiresRollback": dev is not None and dev > settings.rollback_deviation_pct,
        },
    }


@router.post("/establish")
def establish_baseline(request: Request) -> Dict[str, Any]:
    try:
        snap = establish_baseline_from_window(_monitor(request))
    except InsufficientSamples as e:
        raise HTTPException(status_code=400, detail={"error": str(e), "currentSamples": e.current})
    except InvalidBaseline as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    logger.info("Baseline established at {}ms from {} samples", snap.avg_ms, snap.sample_count)
    return {"message": "Baseline established", "baselineMs": snap.avg_ms, "fromSamples": snap.sample_count}


@router.post("/set")
def set_baseline(req: SetBaselineRequest, request: Request) -> Dict[str, Any]:
    try:
        _monitor(request).set_baseline(req.baselineMs)
    except InvalidBaseline as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    logger.info("Baseline manually set to {}ms", req.baselineMs)
    return {"message": "Baseline set", "baselineMs": req.baselineMs}


@router.post("/reset")
def reset_baseline(request: Request) -> Dict[str, Any]:
    _monitor(request).reset_baseline()
    logger.info("Baseline reset")
    return {"message": "Baseline reset"}
