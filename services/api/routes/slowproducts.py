from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ..utils import catalog
from ..utils.catalog import Product
from ..utils.fault_injector import FaultInjector


router = APIRouter(prefix="/api/slowproducts", tags=["slowproducts"])


def _injector(request: Request) -> FaultInjector:
    return request.app.state.faults


@router.get("", response_model=List[Product])
async def get_products(request: Request):
    faults = _injector(request)
    logger.info("Getting all products (slow version)")
    await faults.delay(2000, 5000)
    ordered = sorted(catalog.products(), key=lambda p: (p.name, p.category, p.price))
    for _ in ordered[:200]:
        await faults.delay(1, 1)
    return ordered[:20]


@router.get("/search", response_model=List[Product])
async def search_products(request: Request, query: Optional[str] = Query(None)):
    faults = _injector(request)
    logger.info("Searching products with query: {} (slow version)", query)
    # full table scan without an index
    await faults.delay(1500, 3000)
    items = catalog.products()
    if not query or not query.strip():
        def pick() -> List[Product]:
            chosen = []
            for _ in range(10):
                idx = faults.randint(0, len(items) - 1)
                chosen.append(items[idx])
                faults.burn_cpu(100_000, seed=str(idx))
            return chosen
        return await run_in_threadpool(pick)

    words = query.lower().split()

    def scan() -> List[Product]:
        results = []
        for p in items:
            text = f"{p.name.lower()} {p.category.lower()}"
            if any(w in text for w in words):
                results.append(p)
            faults.burn_cpu(len(p.name) * 100, seed=p.name)
        return results[:10]

    return await run_in_threadpool(scan)


@router.get("/memory-leak")
async def memory_leak(request: Request) -> Dict[str, Any]:
    faults = _injector(request)
    logger.info("Triggering memory leak simulation")
    added = await run_in_threadpool(faults.hold_memory, 100)
    return {
        "message": f"Added {added} MB to memory. Total static memory: {faults.held_megabytes()} MB",
        "addedMb": added,
        "totalHeldMb": faults.held_megabytes(),
    }


@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: int, request: Request):
    faults = _injector(request)
    logger.info("Getting product {} (slow version)", product_id)
    # N+1: ten round trips before the lookup even starts
    for _ in range(10):
        await faults.delay(100, 300)

    def scan() -> Optional[Product]:
        for p in catalog.products():
            if p.id == product_id:
                return p
            faults.sleep_blocking(1)
        return None

    product = await run_in_threadpool(scan)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
