"""
Pydantic schemas for the cache diagnostics API
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel

from sitecache.cache import (
    CacheStats,
    HealthStatus,
    MaintenanceReport,
    OperationRecord,
    PerformanceMetrics,
)


def _to_datetime(timestamp: Optional[float]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


# ===== SERVICE SCHEMAS =====

class ServiceHealth(BaseModel):
    """Liveness of the diagnostics service"""
    status: str
    cache_directory: str
    cache_open: bool


# ===== STATS SCHEMAS =====

class CacheStatsResponse(BaseModel):
    """Cache statistics snapshot"""
    total_entries: int
    total_size: int
    hit_rate: float
    miss_rate: float
    expired_entries: int
    last_cleanup: Optional[datetime] = None
    hits: int
    misses: int
    corrupted_entries: int

    @classmethod
    def from_stats(cls, stats: CacheStats) -> "CacheStatsResponse":
        return cls(
            total_entries=stats.total_entries,
            total_size=stats.total_size,
            hit_rate=round(stats.hit_rate, 4),
            miss_rate=round(stats.miss_rate, 4),
            expired_entries=stats.expired_entries,
            last_cleanup=_to_datetime(stats.last_cleanup),
            hits=stats.hits,
            misses=stats.misses,
            corrupted_entries=stats.corrupted_entries,
        )


# ===== HEALTH SCHEMAS =====

class HealthIssueSchema(BaseModel):
    type: str
    description: str
    severity: str
    affected_keys: List[str] = []


class CacheHealthResponse(BaseModel):
    """Derived cache health with one recommendation per issue type"""
    status: str
    issues: List[HealthIssueSchema]
    recommendations: List[str]
    last_check: datetime

    @classmethod
    def from_status(cls, health: HealthStatus) -> "CacheHealthResponse":
        return cls(
            status=health.status.value,
            issues=[
                HealthIssueSchema(
                    type=issue.type,
                    description=issue.description,
                    severity=issue.severity.value,
                    affected_keys=list(issue.affected_keys),
                )
                for issue in health.issues
            ],
            recommendations=list(health.recommendations),
            last_check=_to_datetime(health.last_check),
        )


# ===== OPERATION LOG SCHEMAS =====

class OperationSchema(BaseModel):
    type: str
    key: str
    success: bool
    duration_ms: float
    timestamp: datetime
    error: Optional[str] = None

    @classmethod
    def from_record(cls, record: OperationRecord) -> "OperationSchema":
        return cls(
            type=record.type.value,
            key=record.key,
            success=record.success,
            duration_ms=round(record.duration_ms, 3),
            timestamp=_to_datetime(record.timestamp),
            error=record.error,
        )


class OperationsResponse(BaseModel):
    """Most recent operations first"""
    count: int
    operations: List[OperationSchema]


# ===== MAINTENANCE SCHEMAS =====

class PerformanceMetricsSchema(BaseModel):
    average_read_ms: float
    average_write_ms: float
    compression_ratio: float
    memory_usage: int
    disk_usage: int
    network_savings: int
    removed_expired: int

    @classmethod
    def from_metrics(cls, metrics: PerformanceMetrics) -> "PerformanceMetricsSchema":
        return cls(
            average_read_ms=round(metrics.average_read_ms, 3),
            average_write_ms=round(metrics.average_write_ms, 3),
            compression_ratio=round(metrics.compression_ratio, 4),
            memory_usage=metrics.memory_usage,
            disk_usage=metrics.disk_usage,
            network_savings=metrics.network_savings,
            removed_expired=metrics.removed_expired,
        )


class MaintenanceResponse(BaseModel):
    duration_ms: float
    removed_outdated: int
    health_before: str
    health_after: str
    metrics: PerformanceMetricsSchema
    stats: CacheStatsResponse

    @classmethod
    def from_report(cls, report: MaintenanceReport) -> "MaintenanceResponse":
        return cls(
            duration_ms=round(report.duration_ms, 3),
            removed_outdated=report.removed_outdated,
            health_before=report.health_before.status.value,
            health_after=report.health_after.status.value,
            metrics=PerformanceMetricsSchema.from_metrics(report.metrics),
            stats=CacheStatsResponse.from_stats(report.stats_after),
        )


# ===== INVALIDATION SCHEMAS =====

class InvalidationResponse(BaseModel):
    prefix: str
    removed: int
