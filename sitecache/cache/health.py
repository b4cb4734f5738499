"""
Health scoring derived from cache statistics.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .core import CacheStats, HealthIssue, HealthState, HealthStatus, Severity

logger = logging.getLogger("cache.health")


# One recommendation per issue type
RECOMMENDATIONS: Dict[str, str] = {
    "low_hit_rate": "Increase the TTL (maxAge) for the affected domains to improve the hit rate",
    "expired_entries": "Run cache maintenance more often to sweep expired entries",
    "disk_usage": "Enable compression or raise the cache size limit",
    "operation_failures": "Check cache directory permissions and free disk space",
    "corruption": "Invalidate the corrupted entries so they are refetched",
}


@dataclass(frozen=True)
class HealthThresholds:
    """Limits beyond which the cache is reported unhealthy."""
    min_hit_rate: float = 0.8
    min_reads_for_hit_rate: int = 10
    max_expired_ratio: float = 0.2
    max_disk_bytes: int = 100 * 1024 * 1024
    max_failure_rate: float = 0.05


class HealthMonitor:
    """
    Turns a CacheStats snapshot into a HealthStatus.

    Each check emits at most one issue. The overall status is ``critical`` if
    any issue is critical, ``degraded`` if any other issue fired, else
    ``healthy``.
    """

    def __init__(self, thresholds: Optional[HealthThresholds] = None):
        self.thresholds = thresholds or HealthThresholds()

    def evaluate(
        self,
        stats: CacheStats,
        failure_rate: float = 0.0,
        disk_usage: Optional[int] = None,
        corrupted_keys: Sequence[str] = (),
    ) -> HealthStatus:
        disk_usage = stats.total_size if disk_usage is None else disk_usage

        issues: List[HealthIssue] = []
        for issue in (
            self._check_corruption(corrupted_keys),
            self._check_failure_rate(failure_rate),
            self._check_disk_usage(disk_usage),
            self._check_expired(stats),
            self._check_hit_rate(stats),
        ):
            if issue is not None:
                issues.append(issue)

        recommendations: List[str] = []
        for issue in issues:
            text = RECOMMENDATIONS[issue.type]
            if text not in recommendations:
                recommendations.append(text)

        status = self._overall(issues)
        if status is not HealthState.HEALTHY:
            logger.info(f"Cache health {status.value}: {[i.type for i in issues]}")

        return HealthStatus(status=status, issues=issues, recommendations=recommendations)

    @staticmethod
    def _overall(issues: List[HealthIssue]) -> HealthState:
        if not issues:
            return HealthState.HEALTHY
        worst = max(issues, key=lambda i: i.severity.rank).severity
        if worst is Severity.CRITICAL:
            return HealthState.CRITICAL
        return HealthState.DEGRADED

    # =========================================================================
    # Individual checks
    # =========================================================================

    def _check_hit_rate(self, stats: CacheStats) -> Optional[HealthIssue]:
        t = self.thresholds
        if stats.total_reads < t.min_reads_for_hit_rate or stats.hit_rate >= t.min_hit_rate:
            return None

        if stats.hit_rate < t.min_hit_rate / 4:
            severity = Severity.HIGH
        elif stats.hit_rate < t.min_hit_rate / 2:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW

        return HealthIssue(
            type="low_hit_rate",
            description=(
                f"Hit rate {stats.hit_rate:.0%} is below {t.min_hit_rate:.0%} "
                f"over {stats.total_reads} reads"
            ),
            severity=severity,
        )

    def _check_expired(self, stats: CacheStats) -> Optional[HealthIssue]:
        t = self.thresholds
        ratio = stats.expired_ratio
        if stats.expired_entries == 0 or ratio <= t.max_expired_ratio:
            return None

        severity = Severity.HIGH if ratio > min(1.0, t.max_expired_ratio * 2.5) else Severity.MEDIUM
        return HealthIssue(
            type="expired_entries",
            description=f"{stats.expired_entries} expired entries ({ratio:.0%} of the cache) since last cleanup",
            severity=severity,
        )

    def _check_disk_usage(self, disk_usage: int) -> Optional[HealthIssue]:
        limit = self.thresholds.max_disk_bytes
        if disk_usage <= limit:
            return None

        severity = Severity.CRITICAL if disk_usage > limit * 1.5 else Severity.HIGH
        return HealthIssue(
            type="disk_usage",
            description=(
                f"Cache size ({disk_usage / 1024 / 1024:.1f}MB) exceeds limit "
                f"({limit / 1024 / 1024:.1f}MB)"
            ),
            severity=severity,
        )

    def _check_failure_rate(self, failure_rate: float) -> Optional[HealthIssue]:
        limit = self.thresholds.max_failure_rate
        if failure_rate <= limit:
            return None

        if failure_rate >= 0.5:
            severity = Severity.CRITICAL
        elif failure_rate > limit * 3:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM

        return HealthIssue(
            type="operation_failures",
            description=f"{failure_rate:.0%} of recent cache operations failed",
            severity=severity,
        )

    @staticmethod
    def _check_corruption(corrupted_keys: Sequence[str]) -> Optional[HealthIssue]:
        if not corrupted_keys:
            return None
        return HealthIssue(
            type="corruption",
            description=f"Found {len(corrupted_keys)} corrupted cache entries",
            severity=Severity.HIGH,
            affected_keys=list(corrupted_keys),
        )
