"""
Load generator for rehearsing a regression.

Sends a batch of requests to one endpoint and records client-side latency,
then prints the server's own rolling-window view from /api/baseline.

Usage:
  python scripts/generate_load.py --path /api/products --count 120
  python scripts/generate_load.py --path /api/slowproducts --count 20 --out docs/load/slow.json
"""
from __future__ import annotations

import argparse
import json
import time
from typing import List, Dict, Any
import requests
from pathlib import Path


def _pct(values: List[float], p: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    return ordered[min(int(len(ordered) * p), len(ordered) - 1)]


def run_load(base: str, path: str, count: int, timeout: float) -> Dict[str, Any]:
    rows: List[Dict[str, Any]] = []
    errors = 0
    for i in range(count):
        t0 = time.perf_counter()
        try:
            r = requests.get(f"{base}{path}", timeout=timeout)
            status = r.status_code
            server_ms = r.headers.get("X-Response-Time-Ms")
        except requests.RequestException as e:
            status = 0
            server_ms = None
            print(f"request {i} failed: {e}")
        dt_ms = (time.perf_counter() - t0) * 1000
        if status == 0 or status >= 500:
            errors += 1
        rows.append({
            "i": i,
            "status": status,
            "client_ms": round(dt_ms, 2),
            "server_ms": float(server_ms) if server_ms else None,
        })

    latencies = [r["client_ms"] for r in rows]
    summary = {
        "path": path,
        "count": len(rows),
        "errors": errors,
        "avg_ms": round(sum(latencies) / len(latencies), 2) if latencies else 0.0,
        "p95_ms": _pct(latencies, 0.95),
        "max_ms": max(latencies) if latencies else 0.0,
    }
    try:
        summary["server_view"] = requests.get(f"{base}/api/baseline", timeout=timeout).json()
    except requests.RequestException as e:
        summary["server_view"] = {"error": str(e)}
    return {"summary": summary, "rows": rows}


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument('--base', default='http://localhost:8000')
    ap.add_argument('--path', default='/api/products')
    ap.add_argument('--count', type=int, default=100)
    ap.add_argument('--timeout', type=float, default=30.0)
    ap.add_argument('--out', default=None)
    args = ap.parse_args()

    res = run_load(args.base, args.path, args.count, args.timeout)
    if args.out:
        Path(args.out).parent.mkdir(parents=True, exist_ok=True)
        Path(args.out).write_text(json.dumps(res, indent=2), encoding='utf-8')
    print(json.dumps(res["summary"], indent=2))
