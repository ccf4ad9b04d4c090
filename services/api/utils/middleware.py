from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, Set

from fastapi import Request, Response
from loguru import logger
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from .performance import PerformanceMonitor
from .telemetry import MetricsEmitter


RESPONSE_TIME_HEADER = "X-Response-Time-Ms"


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Times every request and feeds the rolling window.

    The elapsed time is recorded on every exit path, including when the
    downstream handler raises or the request is cancelled; the exception
    propagates unchanged. Metrics emission is scheduled on the threadpool and
    never awaited by the request.

    An unhandled exception never reaches a response here, so the 500 that
    Starlette's ``ServerErrorMiddleware`` sends carries no
    ``X-Response-Time-Ms`` header. The sample is still recorded.
    """

    def __init__(self, app, monitor: PerformanceMonitor, emitter: MetricsEmitter) -> None:
        super().__init__(app)
        self.monitor = monitor
        self.emitter = emitter
        self.slow_ms = monitor.settings.slow_request_ms
        self._pending: Set[asyncio.Task] = set()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]):
        t0 = time.perf_counter()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            return response
        finally:
            elapsed_ms = (time.perf_counter() - t0) * 1000.0
            self.monitor.record(elapsed_ms)
            status = response.status_code if response is not None else 500
            logger.info(
                "Request {} {} completed in {:.2f}ms with status {}",
                request.method, request.url.path, elapsed_ms, status,
            )
            if response is not None:
                response.headers[RESPONSE_TIME_HEADER] = f"{elapsed_ms:.2f}"
            if elapsed_ms > self.slow_ms:
                logger.warning(
                    "Slow request detected: {} {} took {:.2f}ms",
                    request.method, request.url.path, elapsed_ms,
                )
            self._schedule_emission()

    def _schedule_emission(self) -> None:
        try:
            if not self.emitter.try_open_gate():
                return
            task = asyncio.get_running_loop().create_task(run_in_threadpool(self.emitter.emit))
        except Exception as e:
            logger.warning("Could not schedule metrics emission: {}", e)
            return
        self._pending.add(task)
        task.add_done_callback(self._emission_done)

    def _emission_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Metrics emission failed: {}", exc)
