from __future__ import annotations

import asyncio
import math
import random
import threading
import time
from typing import List

from .config import PerformanceSettings


class FaultInjector:
    """Simulated slow and CPU-heavy request handling.

    Every sleep and busy loop is multiplied by ``scale`` so a test app can run
    the degraded code paths instantly.
    """

    def __init__(self, settings: PerformanceSettings | None = None, rng: random.Random | None = None) -> None:
        settings = settings or PerformanceSettings()
        self.scale = settings.fault_delay_scale
        self.slow_mode = settings.enable_slow_endpoints
        self.cpu_intensive_mode = settings.enable_cpu_intensive_endpoints
        self._rng = rng or random.Random()
        self._held_lock = threading.Lock()
        self._held: List[List[bytearray]] = []

    def mode_name(self) -> str:
        if self.cpu_intensive_mode:
            return "CPU-Intensive Performance"
        if self.slow_mode:
            return "Degraded Performance"
        return "Good Performance"

    def randint(self, lo: int, hi: int) -> int:
        return self._rng.randint(lo, hi)

    async def delay(self, lo_ms: int, hi_ms: int) -> None:
        ms = self._rng.uniform(lo_ms, hi_ms) * self.scale
        if ms > 0:
            await asyncio.sleep(ms / 1000.0)

    def sleep_blocking(self, ms: float) -> None:
        if ms * self.scale > 0:
            time.sleep(ms * self.scale / 1000.0)

    def burn_cpu(self, iterations: int, seed: str = "") -> float:
        acc = 0.0
        for i in range(int(iterations * self.scale)):
            acc += math.sqrt(i) * math.sin(i) + (hash(f"{seed}_{i}") & 0xFF)
        return acc

    def stress_for(self, seconds: float) -> int:
        """Spin for ``seconds`` (scaled) and return the number of rounds completed."""
        deadline = time.monotonic() + seconds * self.scale
        rounds = 0
        while time.monotonic() < deadline:
            self.burn_cpu(10_000, seed=str(rounds))
            rounds += 1
        return rounds

    def hold_memory(self, megabytes: int, chunk_mb: int = 1) -> int:
        """Allocate and retain ``megabytes`` of buffers; returns MB actually held by this call."""
        chunks = [bytearray(chunk_mb * 1024 * 1024) for _ in range(max(0, int(megabytes * self.scale)) // chunk_mb)]
        with self._held_lock:
            self._held.append(chunks)
        return len(chunks) * chunk_mb

    def held_megabytes(self) -> int:
        with self._held_lock:
            return sum(len(c) for group in self._held for c in group) // (1024 * 1024)
