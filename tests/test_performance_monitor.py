from __future__ import annotations

import threading

import pytest

from services.api.utils.config import PerformanceSettings
from services.api.utils.performance import (
    HealthStatus,
    InsufficientSamples,
    InvalidBaseline,
    InvalidSample,
    PerformanceMonitor,
    classify_health,
    establish_baseline_from_window,
)


def _feed(monitor: PerformanceMonitor, values) -> None:
    for v in values:
        monitor.record(v)


def test_window_keeps_most_recent_100_in_order():
    m = PerformanceMonitor()
    _feed(m, range(150))
    assert m.window() == [float(v) for v in range(50, 150)]
    assert m.snapshot().sample_count == 100


def test_empty_snapshot_is_unknown():
    snap = PerformanceMonitor().snapshot()
    assert snap.sample_count == 0
    assert snap.status == HealthStatus.UNKNOWN
    assert snap.baseline_established is False
    assert snap.deviation_percent is None


def test_uniform_fast_window_is_healthy():
    m = PerformanceMonitor()
    _feed(m, [10.0] * 100)
    snap = m.snapshot()
    assert snap.avg_ms == 10.0
    assert snap.p95_ms == 10.0
    assert snap.min_ms == 10.0 and snap.max_ms == 10.0
    assert snap.status == HealthStatus.HEALTHY


def test_high_average_is_unhealthy_even_with_high_p95():
    m = PerformanceMonitor()
    _feed(m, [100.0] * 5 + [2300.0] * 5)
    snap = m.snapshot()
    assert snap.avg_ms == 1200.0
    assert snap.p95_ms == 2300.0
    assert snap.status == HealthStatus.UNHEALTHY


def test_high_average_alone_is_unhealthy():
    m = PerformanceMonitor()
    _feed(m, [1200.0] * 10)
    assert m.snapshot().status == HealthStatus.UNHEALTHY


def test_high_p95_with_acceptable_average_is_degraded():
    m = PerformanceMonitor()
    _feed(m, [125.0, 125.0, 125.0, 125.0, 2500.0])
    snap = m.snapshot()
    assert snap.avg_ms == 600.0
    assert snap.p95_ms == 2500.0
    assert snap.status == HealthStatus.DEGRADED


def test_p95_index_uses_floor_of_n_times_095():
    m = PerformanceMonitor()
    _feed(m, range(1, 21))  # sorted[19] for n=20
    assert m.snapshot().p95_ms == 20.0
    m2 = PerformanceMonitor()
    _feed(m2, range(1, 101))  # sorted[95]
    assert m2.snapshot().p95_ms == 96.0


def test_values_are_rounded_to_two_places():
    m = PerformanceMonitor()
    _feed(m, [1.111, 2.226, 3.3333])
    snap = m.snapshot()
    assert snap.avg_ms == 2.22
    assert snap.max_ms == 3.33
    assert snap.min_ms == 1.11


def test_manual_baseline_deviation():
    m = PerformanceMonitor()
    m.set_baseline(50)
    _feed(m, [100.0] * 10)
    snap = m.snapshot()
    assert snap.baseline_established is True
    assert snap.baseline_avg_ms == 50.0
    assert snap.deviation_percent == 100.0


def test_negative_deviation_is_signed():
    m = PerformanceMonitor()
    m.set_baseline(200)
    _feed(m, [100.0] * 10)
    assert m.snapshot().deviation_percent == -50.0


@pytest.mark.parametrize("bad", [0, -1, -0.01, float("nan"), float("inf"), "abc"])
def test_invalid_manual_baseline_rejected(bad):
    m = PerformanceMonitor()
    with pytest.raises(InvalidBaseline):
        m.set_baseline(bad)
    assert m.snapshot().baseline_established is False


@pytest.mark.parametrize("bad", [-1, -0.001, float("nan"), float("-inf"), None])
def test_invalid_sample_rejected_and_not_recorded(bad):
    m = PerformanceMonitor()
    with pytest.raises(InvalidSample):
        m.record(bad)
    assert m.snapshot().sample_count == 0
    assert m.pending_baseline_samples() == 0


def test_zero_duration_is_a_valid_sample():
    m = PerformanceMonitor()
    m.record(0)
    assert m.snapshot().sample_count == 1


def test_reset_clears_baseline_and_deviation():
    m = PerformanceMonitor()
    _feed(m, [20.0] * 10)
    m.set_baseline(10)
    m.reset_baseline()
    snap = m.snapshot()
    assert snap.baseline_established is False
    assert snap.baseline_avg_ms is None
    assert snap.deviation_percent is None
    assert snap.sample_count == 10


def test_auto_establishes_from_healthy_first_hundred():
    m = PerformanceMonitor()
    _feed(m, [200.0, 400.0] * 49)
    assert m.snapshot().baseline_established is False
    assert m.pending_baseline_samples() == 98
    _feed(m, [200.0, 400.0])
    snap = m.snapshot()
    assert snap.baseline_established is True
    assert snap.baseline_avg_ms == 300.0
    assert m.pending_baseline_samples() == 0


def test_slow_first_hundred_is_discarded_and_retried():
    m = PerformanceMonitor()
    _feed(m, [600.0] * 100)
    assert m.snapshot().baseline_established is False
    assert m.pending_baseline_samples() == 0
    _feed(m, [100.0] * 50)
    assert m.pending_baseline_samples() == 50
    assert m.snapshot().baseline_established is False
    _feed(m, [100.0] * 50)
    snap = m.snapshot()
    assert snap.baseline_established is True
    assert snap.baseline_avg_ms == 100.0


def test_established_baseline_is_not_overwritten_by_later_samples():
    m = PerformanceMonitor()
    _feed(m, [100.0] * 100)
    _feed(m, [50.0] * 100)
    assert m.snapshot().baseline_avg_ms == 100.0
    assert m.pending_baseline_samples() == 0


def test_reset_clears_in_progress_establishment():
    m = PerformanceMonitor()
    _feed(m, [100.0] * 60)
    m.reset_baseline()
    assert m.pending_baseline_samples() == 0
    _feed(m, [100.0] * 60)
    assert m.snapshot().baseline_established is False
    _feed(m, [100.0] * 40)
    assert m.snapshot().baseline_established is True


def test_establish_requires_ten_samples():
    m = PerformanceMonitor()
    _feed(m, [40.0] * 5)
    with pytest.raises(InsufficientSamples) as exc:
        establish_baseline_from_window(m)
    assert exc.value.current == 5
    assert exc.value.required == 10
    assert m.snapshot().baseline_established is False

    _feed(m, [40.0] * 5)
    snap = establish_baseline_from_window(m)
    assert snap.sample_count == 10
    after = m.snapshot()
    assert after.baseline_established is True
    assert after.baseline_avg_ms == 40.0
    assert after.deviation_percent == 0.0


class CountingLock:
    def __init__(self) -> None:
        self._inner = threading.Lock()
        self.acquired = 0

    def __enter__(self):
        self._inner.acquire()
        self.acquired += 1
        return self

    def __exit__(self, *exc) -> None:
        self._inner.release()


def test_establish_reads_and_commits_under_one_lock():
    m = PerformanceMonitor()
    _feed(m, [30.0] * 20)
    m._lock = CountingLock()
    snap = establish_baseline_from_window(m)
    # a reset cannot slip in between reading the average and committing it
    assert m._lock.acquired == 1
    assert snap.baseline_avg_ms == 30.0
    assert snap.deviation_percent == 0.0


def test_reset_after_establish_is_not_overwritten():
    m = PerformanceMonitor()
    _feed(m, [30.0] * 20)
    establish_baseline_from_window(m)
    m.reset_baseline()
    assert m.snapshot().baseline_established is False


def test_thresholds_follow_settings():
    m = PerformanceMonitor(PerformanceSettings(unhealthy_avg_ms=50.0, window_size=5))
    _feed(m, [60.0] * 8)
    snap = m.snapshot()
    assert snap.sample_count == 5
    assert snap.status == HealthStatus.UNHEALTHY


def test_concurrent_records_keep_window_bounded_and_intact():
    m = PerformanceMonitor()
    start = threading.Barrier(50)

    def worker(tid: int) -> None:
        start.wait()
        for j in range(10):
            m.record(tid * 1000 + j)

    threads = [threading.Thread(target=worker, args=(t,)) for t in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    window = m.window()
    assert len(window) == 100
    expected = {float(t * 1000 + j) for t in range(50) for j in range(10)}
    assert set(window) <= expected
    assert len(set(window)) == 100
    # each thread's samples keep their arrival order
    for t in range(50):
        own = [v for v in window if int(v) // 1000 == t]
        assert own == sorted(own)
    # five full establishment windows, all far above the ceiling, all discarded
    assert m.snapshot().baseline_established is False
    assert m.pending_baseline_samples() == 0


def test_health_classifier_no_data_is_healthy():
    result = classify_health(PerformanceMonitor().snapshot())
    assert result.status == HealthStatus.HEALTHY
    assert result.description == "No response time data available yet"


def test_health_classifier_reports_evidence():
    m = PerformanceMonitor()
    _feed(m, [125.0, 125.0, 125.0, 125.0, 2500.0])
    result = classify_health(m.snapshot())
    assert result.status == HealthStatus.DEGRADED
    assert result.data == {
        "avgResponseTimeMs": 600.0,
        "maxResponseTimeMs": 2500.0,
        "p95ResponseTimeMs": 2500.0,
        "sampleCount": 5,
    }
    assert "2500.00ms" in result.description


def test_health_classifier_unhealthy_and_healthy():
    slow = PerformanceMonitor()
    _feed(slow, [1500.0] * 10)
    assert classify_health(slow.snapshot()).status == HealthStatus.UNHEALTHY
    fast = PerformanceMonitor()
    _feed(fast, [15.0] * 10)
    res = classify_health(fast.snapshot())
    assert res.status == HealthStatus.HEALTHY
    assert res.description == "Performance is good. Avg: 15.00ms, P95: 15.00ms"
