"""
Main cache façade: persistent TTL cache with change detection, merging,
invalidation, statistics and health.
"""
import copy
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import psutil

from .core import (
    CacheEntry,
    CacheStats,
    ChangeResult,
    DataDomain,
    DomainConfig,
    HealthStatus,
    MergeConfig,
    OperationRecord,
    OperationType,
    PerformanceMetrics,
)
from .diff import detect_changes
from .exceptions import CacheError, CacheIOError
from .health import HealthMonitor, HealthThresholds
from .matchers import InvalidationRule, KeyMatcher, to_matcher
from .merge import merge_values
from .oplog import OperationLog
from .scheduler import PeriodicTask
from .store import CacheStore
from .ttl_policies import (
    CACHE_CONFIGS,
    DEFAULT_INVALIDATION_RULES,
    HOUR,
    get_config_for_key,
    get_data_source_for_key,
    get_merge_strategy,
)

logger = logging.getLogger("cache.manager")

DEFAULT_CACHE_DIR = Path("./data/cache")

DomainConfigLike = Union[DomainConfig, DataDomain, None]


class _KeyLock:
    """A per-key RLock plus the number of threads using or waiting on it."""
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


@dataclass
class CacheConfig:
    """Behavioural settings for a CacheManager."""
    default_max_age_seconds: float = 24 * HOUR
    max_size_bytes: int = 100 * 1024 * 1024
    compression_enabled: bool = False
    compression_threshold_bytes: int = 10 * 1024
    checksum_algorithm: str = "sha256"
    auto_cleanup: bool = True
    cleanup_interval_seconds: float = HOUR
    operation_log_capacity: int = 1000
    purge_on_destroy: bool = False
    incremental_updates: bool = True
    min_hit_rate: float = 0.8
    max_expired_ratio: float = 0.2
    max_failure_rate: float = 0.05

    @classmethod
    def from_settings(cls, settings: Any) -> "CacheConfig":
        """Build from the application Settings object."""
        return cls(
            default_max_age_seconds=settings.cache_default_max_age_seconds,
            max_size_bytes=settings.cache_max_size_bytes,
            compression_enabled=settings.cache_compression_enabled,
            compression_threshold_bytes=settings.cache_compression_threshold_bytes,
            checksum_algorithm=settings.cache_checksum_algorithm,
            auto_cleanup=settings.cache_auto_cleanup,
            cleanup_interval_seconds=settings.cache_cleanup_interval_seconds,
            operation_log_capacity=settings.cache_operation_log_capacity,
            purge_on_destroy=settings.cache_purge_on_destroy,
            incremental_updates=settings.cache_incremental_updates,
            min_hit_rate=settings.cache_min_hit_rate,
            max_expired_ratio=settings.cache_max_expired_ratio,
            max_failure_rate=settings.cache_max_failure_rate,
        )

    def health_thresholds(self) -> HealthThresholds:
        return HealthThresholds(
            min_hit_rate=self.min_hit_rate,
            max_expired_ratio=self.max_expired_ratio,
            max_disk_bytes=self.max_size_bytes,
            max_failure_rate=self.max_failure_rate,
        )


class CacheManager:
    """
    Persistent key/value cache with:
    - Per-domain TTL, lazy eviction of expired entries on read
    - Structural change detection and policy-driven merging
    - Pattern, source and predicate based invalidation
    - Hit/miss statistics, an operation log and health scoring
    - A cancellable background sweep of expired entries

    Usage:
        with CacheManager(Path("./data/cache")) as cache:
            cache.set("github-repositories", repos, CACHE_CONFIGS[DataDomain.REPOSITORY])
            repos = cache.get("github-repositories")
    """

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        config: Optional[CacheConfig] = None,
        invalidation_rules: Optional[Iterable[InvalidationRule]] = None,
    ):
        """
        Initialize the cache manager.

        Args:
            cache_dir: Directory holding one record per key
            config: Behavioural settings; defaults apply when omitted
            invalidation_rules: Age limits enforced by cleanup_expired on top
                of each entry's TTL; the registry defaults when omitted
        """
        self.config = config or CacheConfig()
        self.cache_dir = Path(cache_dir) if cache_dir is not None else DEFAULT_CACHE_DIR
        self.invalidation_rules: List[InvalidationRule] = list(
            DEFAULT_INVALIDATION_RULES if invalidation_rules is None else invalidation_rules
        )

        self._store = CacheStore(
            self.cache_dir,
            compression_enabled=self.config.compression_enabled,
            compression_threshold=self.config.compression_threshold_bytes,
            checksum_algorithm=self.config.checksum_algorithm,
        )
        self._oplog = OperationLog(capacity=self.config.operation_log_capacity)
        self._health = HealthMonitor(self.config.health_thresholds())

        # Per-key locks serialize read-evict and write sequences on one key;
        # a key's lock is dropped once nobody uses it
        self._key_locks: Dict[str, _KeyLock] = {}
        self._key_locks_guard = threading.Lock()

        # Stats tracking
        self._stats_lock = threading.Lock()
        self._hit_counts: Dict[str, int] = {}
        metadata = self._store.load_metadata()
        self._hits = int(metadata.get("hits", 0))
        self._misses = int(metadata.get("misses", 0))
        self._bytes_served = int(metadata.get("bytesServed", 0))
        self._last_cleanup = float(metadata.get("lastCleanup", time.time()))
        self._expired_since_cleanup = 0

        self._destroyed = False
        self._lifecycle_lock = threading.Lock()
        self._cleanup_task: Optional[PeriodicTask] = None
        if self.config.auto_cleanup:
            self._cleanup_task = PeriodicTask(
                self.config.cleanup_interval_seconds,
                self.cleanup_expired,
                name="cache-sweep",
            ).start()

        logger.info(f"Cache manager ready at {self.cache_dir}")

    def __enter__(self) -> "CacheManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()

    # =========================================================================
    # Read / write
    # =========================================================================

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value while it is fresh, else None.

        Expired entries are removed and counted as misses.
        """
        entry = self.lookup(key)
        return None if entry is None else entry.value

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """
        Counted read like get(), returning the whole entry so that a stored
        None can be told apart from a miss.
        """
        start = time.perf_counter()
        try:
            entry = self._load_live(key)
        except CacheIOError as e:
            self._count_miss()
            self._record(OperationType.GET, key, start, success=False, error=e.message)
            logger.warning(f"CACHE READ FAILED: {key} - {e.details.get('original_error', e.message)}")
            return None

        if entry is None:
            self._count_miss()
            self._record(OperationType.GET, key, start, success=True)
            logger.info(f"CACHE MISS: {key}")
            return None

        with self._stats_lock:
            self._hits += 1
            self._bytes_served += entry.size_bytes
            self._hit_counts[key] = self._hit_counts.get(key, 0) + 1
            entry.hit_count = self._hit_counts[key]
        self._record(OperationType.GET, key, start, success=True)
        logger.debug(f"CACHE HIT: {key} [age={entry.age_seconds:.1f}s]")
        return entry

    def peek(self, key: str) -> Optional[Any]:
        """Like get() but without touching hit/miss counters or the operation log."""
        try:
            entry = self._load_live(key)
        except CacheIOError:
            return None
        return None if entry is None else entry.value

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Full entry (with metadata) for a live key."""
        try:
            entry = self._load_live(key)
        except CacheIOError:
            return None
        if entry is not None:
            with self._stats_lock:
                entry.hit_count = self._hit_counts.get(key, 0)
        return entry

    def set(self, key: str, value: Any, domain_config: DomainConfigLike = None) -> bool:
        """
        Store a value; the TTL comes from the domain policy in force now.

        Args:
            key: Cache key
            value: JSON-serializable payload
            domain_config: DomainConfig or DataDomain; resolved from the key
                prefix when omitted

        Returns:
            True if the entry was written
        """
        policy = self._resolve_config(key, domain_config)
        start = time.perf_counter()

        try:
            with self._key_lock(key):
                now = time.time()
                try:
                    previous = self._store.read(key)
                except CacheIOError:
                    previous = None
                created_at = now
                if previous is not None and not previous.is_expired(now):
                    created_at = previous.created_at

                entry = CacheEntry(
                    key=key,
                    value=value,
                    created_at=created_at,
                    updated_at=now,
                    expires_at=now + policy.max_age_seconds,
                    source=policy.source,
                    version=policy.version,
                )
                self._store.write(entry)
        except CacheError as e:
            self._record(OperationType.SET, key, start, success=False, error=e.message)
            logger.warning(f"CACHE WRITE FAILED: {key} - {e.message}")
            return False

        self._record(OperationType.SET, key, start, success=True)
        logger.info(
            f"CACHE SET: {key} [{entry.size_bytes}B, ttl={policy.max_age_seconds:g}s, source={policy.source}]"
        )
        return True

    def delete(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        return self._remove_keys([key], label=key) == 1

    # =========================================================================
    # Incremental updates
    # =========================================================================

    def needs_incremental_update(self, key: str, now: Optional[float] = None) -> bool:
        """
        Whether the upstream behind ``key`` is due to be polled again.

        A key with no live entry always needs an update. Otherwise the entry's
        last write is compared with its data source's fetch interval; keys
        with no registered source never do. Always False when incremental
        updates are disabled.
        """
        if not self.config.incremental_updates:
            return False

        entry = self.get_entry(key)
        if entry is None:
            return True

        source = get_data_source_for_key(key)
        if source is None:
            return False

        now = time.time() if now is None else now
        return now >= source.next_fetch(entry.updated_at)

    def detect_incremental_changes(self, key: str, candidate: Any) -> ChangeResult:
        """Structural diff of ``candidate`` against the stored value (absent = {})."""
        changes = detect_changes(self.peek(key), candidate)
        logger.debug(
            f"Changes for {key}: {len(changes.changed_fields)} changed, "
            f"{len(changes.added_fields)} added, {len(changes.removed_fields)} removed"
        )
        return changes

    def merge_data(
        self,
        key: str,
        candidate: Any,
        merge_config: Optional[MergeConfig] = None,
        domain_config: DomainConfigLike = None,
    ) -> Any:
        """
        Merge ``candidate`` into the stored value, write the result back and
        return it.

        Args:
            merge_config: Merge policy; the key's domain default when omitted
            domain_config: TTL policy for the write-back
        """
        merge_config = merge_config or get_merge_strategy(key)
        start = time.perf_counter()

        with self._key_lock(key):
            stored = self.peek(key)
            if stored is None:
                merged = copy.deepcopy(candidate)
            else:
                merged = merge_values(stored, candidate, merge_config)
            written = self.set(key, merged, domain_config)

        self._record(
            OperationType.MERGE,
            key,
            start,
            success=written,
            error=None if written else "write-back failed",
        )
        logger.info(f"CACHE MERGE: {key} [{merge_config.type.value}/{merge_config.conflict_resolution.value}]")
        return merged

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate_cache(self, pattern: Union[str, KeyMatcher, Any]) -> int:
        """
        Remove every entry whose key matches ``pattern``.

        Args:
            pattern: Exact key, compiled regular expression or KeyMatcher

        Returns:
            Number of entries removed

        Raises:
            InvalidPatternError: If the pattern is malformed (nothing is removed)
        """
        matcher = to_matcher(pattern)
        keys = [key for key in self._store.list() if matcher.matches(key)]
        return self._remove_keys(keys, label=matcher.describe())

    def invalidate_entries(self, predicate: Callable[[CacheEntry], bool], label: str = "predicate") -> int:
        """Remove every readable entry for which ``predicate`` holds."""
        keys = [key for key, entry in self._store.scan() if entry is not None and predicate(entry)]
        return self._remove_keys(keys, label=label)

    def invalidate_by_source(self, source: str) -> int:
        """Remove every entry tagged with ``source``."""
        return self.invalidate_entries(lambda entry: entry.source == source, label=f"source:{source}")

    def keys(self) -> List[str]:
        return self._store.list()

    # =========================================================================
    # Maintenance
    # =========================================================================

    def cleanup_expired(self) -> int:
        """
        Sweep expired entries from disk, along with entries that have
        outlived an invalidation rule.

        Returns:
            Number of entries removed
        """
        start = time.perf_counter()
        now = time.time()
        removed = 0
        failures = 0

        for key, entry in self._store.scan():
            if entry is None or not self._is_stale(entry, now):
                continue
            with self._key_lock(key):
                try:
                    current = self._store.read(key)
                    # A concurrent set may have refreshed it since the scan
                    if current is None or not self._is_stale(current, time.time()):
                        continue
                    if self._store.remove(key):
                        removed += 1
                        self._forget(key)
                except CacheIOError as e:
                    failures += 1
                    logger.warning(f"Failed to sweep expired entry {key}: {e.message}")

        with self._stats_lock:
            self._expired_since_cleanup = 0
            self._last_cleanup = time.time()

        self._record(
            OperationType.CLEANUP,
            "expired",
            start,
            success=failures == 0,
            error=f"{failures} entries could not be removed" if failures else None,
        )
        if removed:
            logger.info(f"Swept {removed} expired cache entries")
        return removed

    def optimize_cache(self) -> PerformanceMetrics:
        """
        Evict expired entries, re-encode entries whose compression no longer
        matches the configuration, and measure the cache.
        """
        start = time.perf_counter()
        removed = self.cleanup_expired()
        rewritten = self._rewrite_entries()

        payload_bytes = 0
        for _, entry in self._store.scan():
            if entry is not None:
                payload_bytes += entry.size_bytes
        disk_usage = self._store.disk_usage()

        with self._stats_lock:
            bytes_served = self._bytes_served

        metrics = PerformanceMetrics(
            average_read_ms=self._oplog.average_duration(OperationType.GET),
            average_write_ms=self._oplog.average_duration(OperationType.SET),
            compression_ratio=(disk_usage / payload_bytes) if payload_bytes else 1.0,
            memory_usage=psutil.Process().memory_info().rss,
            disk_usage=disk_usage,
            network_savings=bytes_served,
            removed_expired=removed,
        )

        self._record(OperationType.CLEANUP, "optimize", start, success=True)
        logger.info(f"Cache optimized: removed {removed} expired, re-encoded {rewritten}")
        return metrics

    def flush_metadata(self) -> bool:
        """Persist counters so the next process picks them up."""
        with self._stats_lock:
            metadata = {
                "hits": self._hits,
                "misses": self._misses,
                "bytesServed": self._bytes_served,
                "lastCleanup": self._last_cleanup,
            }
        try:
            self._store.save_metadata(metadata)
        except CacheIOError as e:
            logger.warning(f"Failed to save cache metadata: {e.message}")
            return False
        return True

    def destroy(self) -> None:
        """
        Release in-process resources: cancel the sweep and flush counters.

        Entries stay on disk for the next process unless ``purge_on_destroy``
        is set. Safe to call more than once.
        """
        with self._lifecycle_lock:
            if self._destroyed:
                return
            self._destroyed = True

        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None

        if self.config.purge_on_destroy:
            purged = self._remove_keys(self._store.list(), label="destroy")
            logger.info(f"Purged {purged} cache entries on destroy")

        self.flush_metadata()
        logger.info(f"Cache manager at {self.cache_dir} destroyed")

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def get_stats(self) -> CacheStats:
        return self._snapshot()[0]

    def get_recent_operations(self, n: int = 100) -> List[OperationRecord]:
        return self._oplog.recent(n)

    def get_health_status(self) -> HealthStatus:
        stats, corrupted = self._snapshot()
        return self._health.evaluate(
            stats,
            failure_rate=self._oplog.failure_rate(),
            disk_usage=stats.total_size,
            corrupted_keys=corrupted,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _snapshot(self) -> Tuple[CacheStats, List[str]]:
        now = time.time()
        live = 0
        expired_on_disk = 0
        corrupted: List[str] = []
        for key, entry in self._store.scan():
            if entry is None:
                corrupted.append(key)
            elif entry.is_expired(now):
                expired_on_disk += 1
            else:
                live += 1

        with self._stats_lock:
            reads = self._hits + self._misses
            return CacheStats(
                total_entries=live,
                total_size=self._store.disk_usage(),
                hit_rate=(self._hits / reads) if reads else 0.0,
                miss_rate=(self._misses / reads) if reads else 0.0,
                expired_entries=self._expired_since_cleanup + expired_on_disk,
                last_cleanup=self._last_cleanup,
                hits=self._hits,
                misses=self._misses,
                corrupted_entries=len(corrupted),
            ), corrupted

    def _load_live(self, key: str) -> Optional[CacheEntry]:
        """Read an entry, evicting it if expired."""
        with self._key_lock(key):
            entry = self._store.read(key)
            if entry is None or not entry.is_expired():
                return entry

            try:
                self._store.remove(key)
            except CacheIOError as e:
                logger.warning(f"Failed to evict expired entry {key}: {e.message}")
            self._forget(key)
            with self._stats_lock:
                self._expired_since_cleanup += 1
            logger.info(f"CACHE EXPIRED: {key} [age={entry.age_seconds:.1f}s]")
            return None

    def _rewrite_entries(self) -> int:
        rewritten = 0
        for key, entry in self._store.scan():
            if entry is None or not self._needs_reencoding(entry):
                continue
            with self._key_lock(key):
                try:
                    # Rewrite what is on disk now, never the scanned snapshot
                    current = self._store.read(key)
                    if current is None or not self._needs_reencoding(current):
                        continue
                    self._store.write(current)
                    rewritten += 1
                except CacheError as e:
                    logger.warning(f"Failed to re-encode {key}: {e.message}")
        return rewritten

    def _needs_reencoding(self, entry: CacheEntry) -> bool:
        wants_gzip = (
            self._store.compression_enabled
            and entry.size_bytes >= self._store.compression_threshold
        )
        return (entry.compression == "gzip") != wants_gzip

    def _is_stale(self, entry: CacheEntry, now: float) -> bool:
        if entry.is_expired(now):
            return True
        return any(rule.applies_to(entry, now) for rule in self.invalidation_rules)

    def _remove_keys(self, keys: Iterable[str], label: str) -> int:
        start = time.perf_counter()
        removed = 0
        errors: List[str] = []
        for key in keys:
            with self._key_lock(key):
                try:
                    if self._store.remove(key):
                        removed += 1
                except CacheIOError as e:
                    errors.append(key)
                    logger.warning(f"Failed to invalidate {key}: {e.message}")
            self._forget(key)

        self._record(
            OperationType.INVALIDATE,
            label,
            start,
            success=not errors,
            error=f"failed to remove {len(errors)} entries" if errors else None,
        )
        if removed:
            logger.info(f"Invalidated {removed} entries matching '{label}'")
        return removed

    def _resolve_config(self, key: str, domain_config: DomainConfigLike) -> DomainConfig:
        if isinstance(domain_config, DomainConfig):
            return domain_config
        if isinstance(domain_config, DataDomain):
            return CACHE_CONFIGS[domain_config]
        return get_config_for_key(key, self.config.default_max_age_seconds)

    @contextmanager
    def _key_lock(self, key: str) -> Iterator[None]:
        with self._key_locks_guard:
            slot = self._key_locks.get(key)
            if slot is None:
                slot = self._key_locks[key] = _KeyLock()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._key_locks_guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._key_locks[key]

    def _forget(self, key: str) -> None:
        with self._stats_lock:
            self._hit_counts.pop(key, None)

    def _count_miss(self) -> None:
        with self._stats_lock:
            self._misses += 1

    def _record(
        self,
        op_type: OperationType,
        key: str,
        start: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        duration_ms = (time.perf_counter() - start) * 1000
        self._oplog.record(op_type, key, success, duration_ms, error=error)
