from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ..utils import catalog
from ..utils.catalog import Product
from ..utils.fault_injector import FaultInjector


router = APIRouter(prefix="/api/products", tags=["products"])

# healthy responses are safe to cache briefly at the client
CACHE_CONTROL = "public, max-age=30"
VALIDATION_ITERATIONS = 100_000
CPU_MODE_ITERATIONS = 1_000_000


def _injector(request: Request) -> FaultInjector:
    return request.app.state.faults


def _validate(faults: FaultInjector, product: Product) -> None:
    # the "security check" a bad deployment bolted on
    faults.burn_cpu(VALIDATION_ITERATIONS, seed=f"{product.name}_{product.id}")


async def _cpu_load(faults: FaultInjector) -> None:
    if faults.cpu_intensive_mode:
        await run_in_threadpool(faults.burn_cpu, CPU_MODE_ITERATIONS)


@router.get("", response_model=List[Product])
async def get_products(request: Request, response: Response):
    faults = _injector(request)
    logger.info("Getting all products (SlowMode: {})", faults.slow_mode)
    await _cpu_load(faults)
    if faults.slow_mode:
        result: List[Product] = []
        for p in catalog.products()[:20]:
            # one lookup per item instead of a batch query
            await faults.delay(50, 150)
            await run_in_threadpool(_validate, faults, p)
            result.append(p)
        return result
    await faults.delay(10, 50)
    response.headers["Cache-Control"] = CACHE_CONTROL
    return catalog.products()[:20]


@router.get("/search", response_model=List[Product])
async def search_products(request: Request, response: Response, query: Optional[str] = Query(None)):
    faults = _injector(request)
    logger.info("Searching products with query: {} (SlowMode: {})", query, faults.slow_mode)
    await _cpu_load(faults)
    if faults.slow_mode:
        await faults.delay(500, 1500)

        def scan() -> List[Product]:
            results: List[Product] = []
            for p in catalog.products():
                _validate(faults, p)
                if not query or not query.strip() or catalog.matches(p, query.strip()):
                    results.append(p)
                    if len(results) >= 10:
                        break
            return results

        return await run_in_threadpool(scan)
    await faults.delay(20, 100)
    response.headers["Cache-Control"] = CACHE_CONTROL
    return catalog.search(query)


@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: int, request: Request):
    faults = _injector(request)
    logger.info("Getting product {} (SlowMode: {})", product_id, faults.slow_mode)
    await _cpu_load(faults)
    if faults.slow_mode:
        # missing index: full scan with validation on every row
        await faults.delay(200, 500)

        def scan() -> Optional[Product]:
            for p in catalog.products():
                _validate(faults, p)
                if p.id == product_id:
                    return p
            return None

        product = await run_in_threadpool(scan)
    else:
        await faults.delay(5, 25)
        product = catalog.find_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
