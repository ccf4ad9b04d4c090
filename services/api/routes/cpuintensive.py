from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ..utils import catalog
from ..utils.catalog import Product
from ..utils.fault_injector import FaultInjector


router = APIRouter(prefix="/api/cpuintensive", tags=["cpuintensive"])

STRESS_SECONDS = 30


def _injector(request: Request) -> FaultInjector:
    return request.app.state.faults


def _expensive_hash(faults: FaultInjector, text: str) -> int:
    return int(faults.burn_cpu(len(text) * 100, seed=text)) & 0xFFFF


@router.get("", response_model=List[Product])
async def get_products(request: Request):
    faults = _injector(request)
    logger.info("Getting all products (CPU-intensive version)")

    def work() -> List[Product]:
        faults.burn_cpu(1_000_000, seed="product")
        ordered = sorted(catalog.products(), key=lambda p: (_expensive_hash(faults, p.name), p.category))
        return ordered[:20]

    return await run_in_threadpool(work)


@router.get("/search", response_model=List[Product])
async def search_products(request: Request, query: Optional[str] = Query(None)):
    faults = _injector(request)
    logger.info("Searching products with query: {} (CPU-intensive version)", query)

    def work() -> List[Product]:
        faults.burn_cpu(500_000, seed=f"search_{query}")
        items = catalog.products()
        if not query or not query.strip():
            chosen = []
            for _ in range(10):
                idx = faults.randint(0, len(items) - 1)
                faults.burn_cpu(200_000, seed=items[idx].name)
                chosen.append(items[idx])
            return chosen
        results = [p for p in items if catalog.matches(p, query.strip())]
        for p in items:
            faults.burn_cpu(len(p.name) * 1000, seed=p.name)
        return results[:10]

    return await run_in_threadpool(work)


@router.get("/cpu-stress")
async def cpu_stress(request: Request) -> Dict[str, Any]:
    faults = _injector(request)
    logger.info("Running CPU stress test")
    t0 = time.perf_counter()
    rounds = await run_in_threadpool(faults.stress_for, STRESS_SECONDS)
    duration = time.perf_counter() - t0
    return {
        "message": f"CPU stress test completed. Iterations: {rounds}, Duration: {duration:.2f}s, CPU usage should be high",
        "iterations": rounds,
        "durationSec": round(duration, 2),
    }


@router.get("/memory-cpu-leak")
async def memory_cpu_leak(request: Request) -> Dict[str, Any]:
    faults = _injector(request)
    logger.info("Triggering memory and CPU leak simulation")

    def work() -> int:
        held = faults.hold_memory(100, chunk_mb=2)
        faults.burn_cpu(5_000_000, seed="leak")
        return held

    added = await run_in_threadpool(work)
    return {
        "message": f"Memory leak created: {added} MB allocated. Total static memory: {faults.held_megabytes()} MB",
        "addedMb": added,
        "totalHeldMb": faults.held_megabytes(),
    }


@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: int, request: Request):
    faults = _injector(request)
    logger.info("Getting product {} (CPU-intensive version)", product_id)

    def work() -> Optional[Product]:
        for i in range(20):
            faults.burn_cpu(100_000, seed=f"product_{product_id}_{i}")
            faults.sleep_blocking(10)
        for p in catalog.products():
            _expensive_hash(faults, p.name + p.category)
            if p.id == product_id:
                return p
        return None

    product = await run_in_threadpool(work)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
