"""
Core cache data structures.
"""
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def to_iso(timestamp: Optional[float]) -> Optional[str]:
    """Format an epoch timestamp as an ISO-8601 UTC string."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class DataDomain(Enum):
    """Logical categories of cached data, each with its own TTL policy."""
    STATUS = "status"          # Status/monitoring, shortest TTL
    BLOG = "blog"              # Blog platform posts and taxonomy
    REPOSITORY = "repository"  # Source-control repositories and members
    AI = "ai"                  # AI summaries of repositories
    METADATA = "metadata"      # SEO metadata, longest TTL


class OperationType(Enum):
    """Kinds of cache operations recorded in the operation log."""
    GET = "get"
    SET = "set"
    INVALIDATE = "invalidate"
    MERGE = "merge"
    CLEANUP = "cleanup"


class MergeType(Enum):
    MERGE = "merge"
    REPLACE = "replace"
    APPEND = "append"   # Lists concatenate as-is, anything else is replaced


class ConflictResolution(Enum):
    LATEST = "latest"   # Candidate wins on scalar conflicts
    OLDEST = "oldest"   # Stored value wins on scalar conflicts


class HealthState(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


@dataclass(frozen=True)
class DomainConfig:
    """TTL/source/version policy for one logical data domain."""
    max_age_seconds: float
    source: str
    version: str = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxAge": self.max_age_seconds,
            "source": self.source,
            "version": self.version,
        }


@dataclass(frozen=True)
class DataSource:
    """An upstream system and how often it is worth asking it for new data."""
    name: str
    domain: DataDomain
    fetch_interval_seconds: float
    priority: str = "medium"   # high | medium | low
    dependencies: Tuple[str, ...] = ()

    def next_fetch(self, last_fetch: float) -> float:
        return last_fetch + self.fetch_interval_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "domain": self.domain.value,
            "fetchInterval": self.fetch_interval_seconds,
            "priority": self.priority,
            "dependencies": list(self.dependencies),
        }


@dataclass
class CacheEntry:
    """
    A cached value with the metadata needed for TTL and integrity tracking.

    Timestamps are epoch seconds. ``hit_count`` lives in memory only and is
    not part of the persisted record.
    """
    key: str
    value: Any
    created_at: float
    updated_at: float
    expires_at: float
    source: str
    version: str
    size_bytes: int = 0
    checksum: str = ""
    compression: str = "none"
    hit_count: int = 0

    @property
    def age_seconds(self) -> float:
        """Seconds since the entry was last written."""
        return time.time() - self.updated_at

    @property
    def ttl_remaining(self) -> float:
        return self.expires_at - time.time()

    def is_expired(self, now: Optional[float] = None) -> bool:
        """An entry is live only while now < expires_at."""
        now = time.time() if now is None else now
        return now >= self.expires_at

    def to_record(self, stored_value: Any = None) -> Dict[str, Any]:
        """
        Build the persisted record.

        Args:
            stored_value: The on-disk form of the value (e.g. compressed text).
                Defaults to the value itself.
        """
        return {
            "key": self.key,
            "value": self.value if stored_value is None else stored_value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "expiresAt": self.expires_at,
            "source": self.source,
            "version": self.version,
            "sizeBytes": self.size_bytes,
            "checksum": self.checksum,
            "compression": self.compression,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], value: Any) -> "CacheEntry":
        """Rebuild an entry from a persisted record and its decoded value."""
        return cls(
            key=record["key"],
            value=value,
            created_at=float(record["createdAt"]),
            updated_at=float(record["updatedAt"]),
            expires_at=float(record["expiresAt"]),
            source=record.get("source", ""),
            version=record.get("version", ""),
            size_bytes=int(record.get("sizeBytes", 0)),
            checksum=record.get("checksum", ""),
            compression=record.get("compression", "none"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "expiresAt": to_iso(self.expires_at),
            "source": self.source,
            "version": self.version,
            "sizeBytes": self.size_bytes,
            "hitCount": self.hit_count,
        }


@dataclass
class CacheStats:
    """Point-in-time snapshot of cache statistics."""
    total_entries: int = 0
    total_size: int = 0
    hit_rate: float = 0.0
    miss_rate: float = 0.0
    expired_entries: int = 0
    last_cleanup: Optional[float] = None
    hits: int = 0
    misses: int = 0
    corrupted_entries: int = 0

    @property
    def total_reads(self) -> int:
        return self.hits + self.misses

    @property
    def expired_ratio(self) -> float:
        """Expired entries relative to everything the cache has held since cleanup."""
        population = self.total_entries + self.expired_entries
        if population == 0:
            return 0.0
        return self.expired_entries / population

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalEntries": self.total_entries,
            "totalSize": self.total_size,
            "hitRate": round(self.hit_rate, 4),
            "missRate": round(self.miss_rate, 4),
            "expiredEntries": self.expired_entries,
            "lastCleanup": to_iso(self.last_cleanup),
            "hits": self.hits,
            "misses": self.misses,
            "corruptedEntries": self.corrupted_entries,
        }


@dataclass
class OperationRecord:
    """One entry in the operation log."""
    type: OperationType
    key: str
    success: bool
    duration_ms: float
    timestamp: float = field(default_factory=time.time)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "key": self.key,
            "success": self.success,
            "durationMs": round(self.duration_ms, 3),
            "timestamp": to_iso(self.timestamp),
            "error": self.error,
        }


@dataclass
class ChangeResult:
    """Outcome of a structural diff between a stored and a candidate value."""
    changed_fields: List[str] = field(default_factory=list)
    added_fields: List[str] = field(default_factory=list)
    removed_fields: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changed_fields or self.added_fields or self.removed_fields)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hasChanges": self.has_changes,
            "changedFields": list(self.changed_fields),
            "addedFields": list(self.added_fields),
            "removedFields": list(self.removed_fields),
        }


@dataclass(frozen=True)
class MergeConfig:
    """Policy used when combining a stored value with a fresh one."""
    type: MergeType = MergeType.MERGE
    conflict_resolution: ConflictResolution = ConflictResolution.LATEST

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MergeConfig":
        return cls(
            type=MergeType(data.get("type", "merge")),
            conflict_resolution=ConflictResolution(
                data.get("conflict_resolution", data.get("conflictResolution", "latest"))
            ),
        )


@dataclass
class HealthIssue:
    type: str
    description: str
    severity: Severity
    affected_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "severity": self.severity.value,
            "affectedKeys": list(self.affected_keys),
        }


@dataclass
class HealthStatus:
    """Derived health of the cache."""
    status: HealthState
    issues: List[HealthIssue] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    last_check: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "issues": [issue.to_dict() for issue in self.issues],
            "recommendations": list(self.recommendations),
            "lastCheck": to_iso(self.last_check),
        }


@dataclass
class PerformanceMetrics:
    """Snapshot produced by an optimization pass."""
    average_read_ms: float = 0.0
    average_write_ms: float = 0.0
    compression_ratio: float = 1.0   # stored bytes / raw bytes
    memory_usage: int = 0            # process RSS in bytes
    disk_usage: int = 0              # bytes on disk under the cache directory
    network_savings: int = 0         # payload bytes served from cache instead of upstream
    removed_expired: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "averageReadMs": round(self.average_read_ms, 3),
            "averageWriteMs": round(self.average_write_ms, 3),
            "compressionRatio": round(self.compression_ratio, 4),
            "memoryUsage": self.memory_usage,
            "diskUsage": self.disk_usage,
            "networkSavings": self.network_savings,
            "removedExpired": self.removed_expired,
        }
