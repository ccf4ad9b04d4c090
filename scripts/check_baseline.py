"""
Triage probe: is the service deviating from its baseline?

Reads /api/baseline and /health and prints a one-line verdict per signal.
Exit code 2 means a rollback is recommended or health is Unhealthy, 1 means
the probe could not reach the service, 0 otherwise.

Usage:
  python scripts/check_baseline.py --base http://localhost:8000
"""
from __future__ import annotations

import argparse
import sys
import requests
from typing import Any, Dict


def verdict(baseline: Dict[str, Any], health: Dict[str, Any]) -> int:
    metrics = baseline.get("metrics", {})
    base = baseline.get("baseline", {})
    alerts = baseline.get("alerts", {})
    print(f"window: {metrics.get('sampleCount', 0)} samples, avg {metrics.get('avgResponseTimeMs')}ms, "
          f"p95 {metrics.get('p95ResponseTimeMs')}ms, status {metrics.get('status')}")
    if base.get("established"):
        print(f"baseline: {base.get('avgMs')}ms, deviation {base.get('deviationPercent')}%")
    else:
        print("baseline: not established")
    for check in health.get("checks", []):
        print(f"health/{check.get('name')}: {check.get('status')} - {check.get('description')}")

    if alerts.get("requiresRollback"):
        print("VERDICT: rollback recommended (average more than 2x baseline)")
        return 2
    if health.get("status") == "Unhealthy":
        print("VERDICT: unhealthy")
        return 2
    if alerts.get("significantDeviation") or alerts.get("isDegraded"):
        print("VERDICT: degraded, keep watching")
        return 0
    print("VERDICT: ok")
    return 0


def main(base: str, timeout: float) -> int:
    try:
        b = requests.get(f"{base}/api/baseline", timeout=timeout)
        b.raise_for_status()
        # /health answers 503 when unhealthy but still carries the report
        h = requests.get(f"{base}/health", timeout=timeout)
    except requests.RequestException as e:
        print(f"probe failed: {e}")
        return 1
    return verdict(b.json(), h.json())


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument('--base', default='http://localhost:8000')
    ap.add_argument('--timeout', type=float, default=10.0)
    args = ap.parse_args()
    sys.exit(main(args.base, args.timeout))
