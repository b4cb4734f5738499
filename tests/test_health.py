"""
Tests for health scoring and the operation log.
"""
import pytest

from sitecache.cache.core import CacheStats, HealthState, OperationType, Severity
from sitecache.cache.health import RECOMMENDATIONS, HealthMonitor, HealthThresholds
from sitecache.cache.oplog import OperationLog


def stats(**overrides):
    values = dict(total_entries=10, total_size=1024, hits=0, misses=0)
    values.update(overrides)
    reads = values["hits"] + values["misses"]
    if reads:
        values.setdefault("hit_rate", values["hits"] / reads)
        values.setdefault("miss_rate", values["misses"] / reads)
    return CacheStats(**values)


@pytest.fixture
def monitor():
    return HealthMonitor(HealthThresholds(max_disk_bytes=10_000))


class TestHealthMonitor:
    """Tests for the health status mapping."""

    def test_healthy(self, monitor):
        health = monitor.evaluate(stats(hits=90, misses=10))
        assert health.status == HealthState.HEALTHY
        assert health.issues == []

    def test_hit_rate_ignored_below_min_reads(self, monitor):
        assert monitor.evaluate(stats(hits=0, misses=5)).status == HealthState.HEALTHY

    @pytest.mark.parametrize("hits,misses,severity", [
        (70, 30, Severity.LOW),
        (30, 70, Severity.MEDIUM),
        (10, 90, Severity.HIGH),
    ])
    def test_hit_rate_severity(self, monitor, hits, misses, severity):
        (issue,) = monitor.evaluate(stats(hits=hits, misses=misses)).issues
        assert issue.type == "low_hit_rate"
        assert issue.severity == severity

    def test_expired_ratio(self, monitor):
        health = monitor.evaluate(stats(total_entries=6, expired_entries=4))
        (issue,) = health.issues
        assert issue.type == "expired_entries"
        assert health.status == HealthState.DEGRADED

    def test_disk_usage_high_then_critical(self, monitor):
        high = monitor.evaluate(stats(), disk_usage=12_000)
        assert high.issues[0].severity == Severity.HIGH
        assert high.status == HealthState.DEGRADED

        critical = monitor.evaluate(stats(), disk_usage=20_000)
        assert critical.issues[0].severity == Severity.CRITICAL
        assert critical.status == HealthState.CRITICAL

    def test_failure_rate(self, monitor):
        assert monitor.evaluate(stats(), failure_rate=0.1).issues[0].severity == Severity.MEDIUM
        assert monitor.evaluate(stats(), failure_rate=0.5).status == HealthState.CRITICAL

    def test_one_recommendation_per_issue_type(self, monitor):
        health = monitor.evaluate(
            stats(hits=1, misses=99, expired_entries=50),
            failure_rate=0.2,
            disk_usage=12_000,
            corrupted_keys=["a", "b"],
        )
        types = [i.type for i in health.issues]
        assert sorted(types) == sorted(RECOMMENDATIONS)
        assert len(health.recommendations) == len(types)
        assert health.recommendations == [RECOMMENDATIONS[t] for t in types]


class TestOperationLog:
    """Tests for the bounded operation history."""

    def test_recent_is_newest_first(self):
        log = OperationLog(capacity=10)
        for key in ("a", "b", "c"):
            log.record(OperationType.GET, key, True, 1.0)
        assert [r.key for r in log.recent(2)] == ["c", "b"]

    def test_oldest_evicted_at_capacity(self):
        log = OperationLog(capacity=3)
        for i in range(5):
            log.record(OperationType.SET, str(i), True, 1.0)
        assert len(log) == 3
        assert [r.key for r in log.recent(10)] == ["4", "3", "2"]

    def test_failure_rate(self):
        log = OperationLog()
        assert log.failure_rate() == 0.0
        log.record(OperationType.SET, "a", True, 1.0)
        log.record(OperationType.SET, "b", False, 1.0, error="disk full")
        assert log.failure_rate() == 0.5

    def test_average_duration_by_type(self):
        log = OperationLog()
        log.record(OperationType.GET, "a", True, 2.0)
        log.record(OperationType.GET, "b", True, 4.0)
        log.record(OperationType.SET, "c", True, 10.0)
        assert log.average_duration(OperationType.GET) == 3.0
        assert log.average_duration(OperationType.MERGE) == 0.0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            OperationLog(capacity=0)
