from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from loguru import logger

from services.api.main import create_app
from services.api.utils.config import PerformanceSettings
from services.api.utils.telemetry import EmissionFailure, TelemetrySink


def quiet_settings(**overrides) -> PerformanceSettings:
    # no injected delays, no memory alarm, one emission per test at most
    base = dict(fault_delay_scale=0.0, memory_threshold_mb=1_000_000, emit_interval_sec=3600.0, log_level="WARNING")
    base.update(overrides)
    return PerformanceSettings(**base)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink(TelemetrySink):
    def __init__(self) -> None:
        self.metrics: List[Tuple[str, float, Optional[Dict[str, str]]]] = []
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.flushes = 0

    def track_metric(self, name, value, properties=None):
        self.metrics.append((name, value, properties))

    def track_event(self, name, properties):
        self.events.append((name, properties))

    def flush(self):
        self.flushes += 1

    def names(self) -> List[str]:
        return [m[0] for m in self.metrics]


class BrokenSink(RecordingSink):
    def flush(self):
        raise EmissionFailure("sink unavailable")


@pytest.fixture
def app():
    return create_app(quiet_settings())


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during the test (add after create_app, which resets handlers)."""
    messages = []
    sink_id = logger.add(lambda m: messages.append(m.record), level="DEBUG")
    yield messages
    logger.remove(sink_id)
