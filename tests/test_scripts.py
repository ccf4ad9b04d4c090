from scripts.check_baseline import verdict


def _baseline(dev=None, established=False, rollback=False, significant=False, degraded=False):
    return {
        "metrics": {"sampleCount": 50, "avgResponseTimeMs": 120.0, "p95ResponseTimeMs": 300.0, "status": "Healthy"},
        "baseline": {"established": established, "avgMs": 60.0 if established else None, "deviationPercent": dev},
        "alerts": {"requiresRollback": rollback, "significantDeviation": significant, "isDegraded": degraded, "isUnhealthy": False},
    }


def test_verdict_ok(capsys):
    assert verdict(_baseline(), {"status": "Healthy", "checks": []}) == 0
    assert "VERDICT: ok" in capsys.readouterr().out


def test_verdict_rollback(capsys):
    code = verdict(_baseline(dev=150.0, established=True, rollback=True, significant=True), {"status": "Healthy"})
    assert code == 2
    assert "rollback recommended" in capsys.readouterr().out


def test_verdict_unhealthy_health():
    assert verdict(_baseline(), {"status": "Unhealthy", "checks": [{"name": "performance", "status": "Unhealthy"}]}) == 2


def test_verdict_degraded_keeps_watching(capsys):
    assert verdict(_baseline(dev=60.0, established=True, significant=True), {"status": "Healthy"}) == 0
    assert "degraded" in capsys.readouterr().out
