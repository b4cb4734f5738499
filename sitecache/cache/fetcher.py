"""
Fetch orchestration on top of the cache manager.

- CachedDataFetcher: fetch-or-use-cache with per-key coalescing, batches
- CacheMonitor: maintenance heuristics and scheduled maintenance
- CacheWarmer: best-effort parallel warm-up of the known domains
- GitHubDataCache, WordPressDataCache, StatusDataCache, SEODataCache:
  per-upstream helpers over the well-known keys
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from .coalescer import RequestCoalescer
from .core import (
    CacheStats,
    ConflictResolution,
    DataDomain,
    DomainConfig,
    HealthStatus,
    MergeConfig,
    MergeType,
    PerformanceMetrics,
    to_iso,
)
from .manager import CacheManager, DomainConfigLike
from .matchers import PrefixMatcher
from .scheduler import PeriodicTask
from .ttl_policies import (
    CACHE_CONFIGS,
    HOUR,
    MERGE_STRATEGIES,
    PRIMARY_KEYS,
    CacheKeys,
    resolve_domain,
)

logger = logging.getLogger("cache.fetcher")

Fetcher = Callable[[], Any]


@dataclass
class FetchSpec:
    """Everything needed to fetch and cache one named piece of data."""
    fetcher: Fetcher
    cache_key: str
    domain_config: DomainConfigLike = None
    force_refresh: bool = False
    merge_config: Optional[MergeConfig] = None


@dataclass
class FetchResult:
    """Per-domain outcome of a batch fetch."""
    name: str
    value: Any = None
    error: Optional[Exception] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ok": self.ok,
            "error": None if self.error is None else f"{type(self.error).__name__}: {self.error}",
            "durationMs": round(self.duration_ms, 3),
        }


def spec_for_domain(domain: DataDomain, fetcher: Fetcher, force_refresh: bool = False) -> FetchSpec:
    """FetchSpec for a domain's primary key, using the registry policies."""
    return FetchSpec(
        fetcher=fetcher,
        cache_key=PRIMARY_KEYS[domain],
        domain_config=CACHE_CONFIGS[domain],
        force_refresh=force_refresh,
        merge_config=MERGE_STRATEGIES.get(domain),
    )


class CachedDataFetcher:
    """
    Fetch-or-use-cache with at most one in-flight fetch per key.

    Usage:
        fetcher = CachedDataFetcher(manager)
        repos = fetcher.get_or_fetch(
            CacheKeys.GITHUB_REPOSITORIES,
            fetch_repositories,
            CACHE_CONFIGS[DataDomain.REPOSITORY],
        )
    """

    def __init__(
        self,
        manager: CacheManager,
        coalescer: Optional[RequestCoalescer] = None,
        max_workers: Optional[int] = None,
    ):
        self.manager = manager
        self._coalescer = coalescer or RequestCoalescer()
        self._max_workers = max_workers

    def get_or_fetch(
        self,
        key: str,
        fetcher: Fetcher,
        domain_config: DomainConfigLike = None,
        force_refresh: bool = False,
        merge_config: Optional[MergeConfig] = None,
    ) -> Any:
        """
        Return the cached value for ``key`` or fetch, store and return it.

        Concurrent calls that need a fetch share one invocation of
        ``fetcher``; its failure reaches every caller and nothing is cached.
        A stored None is a cached value like any other.

        Args:
            key: Cache key
            fetcher: Zero-argument callable producing a serializable value
            domain_config: TTL policy for the stored value
            force_refresh: Skip the cache read and always fetch
            merge_config: Merge a fresh value into a live stored one instead
                of overwriting it
        """
        if not force_refresh:
            entry = self.manager.lookup(key)
            if entry is not None:
                return entry.value

        return self._coalescer.get_or_fetch(
            key,
            lambda: self._fetch_and_store(key, fetcher, domain_config, force_refresh, merge_config),
        )

    def batch_fetch(self, named: Dict[str, Union[FetchSpec, Fetcher]]) -> Dict[str, FetchResult]:
        """
        Run get_or_fetch for every named entry concurrently.

        Values are FetchSpecs, or bare fetchers keyed by a registered domain
        name (``repository``, ``github``, ``blog``, ...). A failing entry is
        reported in its FetchResult and never affects the others.

        Returns:
            {name: FetchResult} in the order given
        """
        if not named:
            return {}

        results: Dict[str, FetchResult] = {}
        workers = self._max_workers or len(named)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="cache-fetch") as executor:
            future_to_name = {
                executor.submit(self._run_named, name, item): name
                for name, item in named.items()
            }

            for future in as_completed(future_to_name):
                name = future_to_name[future]
                results[name] = future.result()
                if not results[name].ok:
                    logger.warning(f"Batch fetch failed for {name}: {results[name].error}")

        return {name: results[name] for name in named}

    def invalidate_related(self, source: Union[str, DataDomain]) -> int:
        """Invalidate every entry tagged with a source (or a domain's source)."""
        if isinstance(source, DataDomain):
            source = CACHE_CONFIGS[source].source
        return self.manager.invalidate_by_source(source)

    @property
    def coalescer(self) -> RequestCoalescer:
        return self._coalescer

    def _run_named(self, name: str, item: Union[FetchSpec, Fetcher]) -> FetchResult:
        start = time.perf_counter()
        try:
            spec = item if isinstance(item, FetchSpec) else spec_for_domain(resolve_domain(name), item)
            value = self.get_or_fetch(
                spec.cache_key,
                spec.fetcher,
                spec.domain_config,
                force_refresh=spec.force_refresh,
                merge_config=spec.merge_config,
            )
        except Exception as e:
            return FetchResult(name=name, error=e, duration_ms=(time.perf_counter() - start) * 1000)
        return FetchResult(name=name, value=value, duration_ms=(time.perf_counter() - start) * 1000)

    def _fetch_and_store(
        self,
        key: str,
        fetcher: Fetcher,
        domain_config: DomainConfigLike,
        force_refresh: bool,
        merge_config: Optional[MergeConfig],
    ) -> Any:
        if not force_refresh:
            # A caller that finished just before we registered may have stored it
            entry = self.manager.get_entry(key)
            if entry is not None:
                logger.debug(f"Fetched by a concurrent caller: {key}")
                return entry.value

        start = time.perf_counter()
        data = fetcher()
        logger.info(f"FETCHED: {key} [{(time.perf_counter() - start) * 1000:.0f}ms]")

        if merge_config is not None and self.manager.peek(key) is not None:
            changes = self.manager.detect_incremental_changes(key, data)
            if changes.has_changes:
                return self.manager.merge_data(key, data, merge_config, domain_config)

        self.manager.set(key, data, domain_config)
        return data


@dataclass
class MaintenanceReport:
    duration_ms: float
    stats_before: CacheStats
    stats_after: CacheStats
    health_before: HealthStatus
    health_after: HealthStatus
    metrics: PerformanceMetrics
    removed_outdated: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "durationMs": round(self.duration_ms, 3),
            "statsBefore": self.stats_before.to_dict(),
            "statsAfter": self.stats_after.to_dict(),
            "healthBefore": self.health_before.to_dict(),
            "healthAfter": self.health_after.to_dict(),
            "metrics": self.metrics.to_dict(),
            "removedOutdated": self.removed_outdated,
        }


class CacheMonitor:
    """Decides when the cache needs maintenance and performs it."""

    def __init__(
        self,
        manager: CacheManager,
        max_expired_ratio: float = 0.2,
        max_seconds_since_cleanup: float = 6 * HOUR,
    ):
        self.manager = manager
        self.max_expired_ratio = max_expired_ratio
        self.max_seconds_since_cleanup = max_seconds_since_cleanup

    def get_status(self, recent: int = 50) -> Dict[str, Any]:
        """Health, stats and recent operations in one snapshot."""
        return {
            "health": self.manager.get_health_status(),
            "stats": self.manager.get_stats(),
            "recentOperations": self.manager.get_recent_operations(recent),
            "timestamp": to_iso(time.time()),
        }

    def needs_maintenance(self) -> bool:
        stats = self.manager.get_stats()

        if stats.expired_entries > 0 and stats.expired_ratio > self.max_expired_ratio:
            logger.debug(f"Maintenance needed: expired ratio {stats.expired_ratio:.0%}")
            return True

        if stats.last_cleanup is None or time.time() - stats.last_cleanup > self.max_seconds_since_cleanup:
            logger.debug("Maintenance needed: last cleanup too long ago")
            return True

        return False

    def perform_maintenance(self) -> MaintenanceReport:
        """Optimize the cache and drop entries written under an outdated schema version."""
        logger.info("Starting cache maintenance")
        start = time.perf_counter()

        stats_before = self.manager.get_stats()
        health_before = self.manager.get_health_status()

        metrics = self.manager.optimize_cache()
        removed_outdated = self._purge_outdated_versions()

        stats_after = self.manager.get_stats()
        health_after = self.manager.get_health_status()
        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"Cache maintenance completed in {duration_ms:.0f}ms "
            f"({health_before.status.value} -> {health_after.status.value})"
        )
        return MaintenanceReport(
            duration_ms=duration_ms,
            stats_before=stats_before,
            stats_after=stats_after,
            health_before=health_before,
            health_after=health_after,
            metrics=metrics,
            removed_outdated=removed_outdated,
        )

    def schedule_auto_maintenance(self, interval_seconds: float = HOUR) -> PeriodicTask:
        """Check periodically and maintain when needed. Cancel the returned task to stop."""

        def run_if_needed():
            if self.needs_maintenance():
                self.perform_maintenance()

        return PeriodicTask(interval_seconds, run_if_needed, name="cache-maintenance").start()

    def _purge_outdated_versions(self) -> int:
        current = {config.source: config.version for config in CACHE_CONFIGS.values()}
        return self.manager.invalidate_entries(
            lambda entry: entry.source in current and entry.version != current[entry.source],
            label="outdated-version",
        )


class CacheWarmer:
    """Best-effort warm-up of the registered domains."""

    WARM_DOMAINS = (
        DataDomain.REPOSITORY,
        DataDomain.BLOG,
        DataDomain.STATUS,
        DataDomain.METADATA,
        DataDomain.AI,
    )

    def __init__(self, fetcher: CachedDataFetcher):
        self.fetcher = fetcher

    def warm_all_caches(self, fetchers: Dict[str, Fetcher]) -> Dict[str, FetchResult]:
        """
        Populate each known domain's primary key in parallel.

        Args:
            fetchers: {domain name: fetcher}; names may be domain values or
                source aliases (``github``, ``wordpress``, ``status``, ``seo``)

        Returns:
            {domain: FetchResult}. Failures are logged, never raised.
        """
        logger.info("Warming up caches...")

        named: Dict[str, FetchSpec] = {}
        for name, fn in fetchers.items():
            try:
                domain = resolve_domain(name)
            except ValueError:
                logger.warning(f"Skipping warm-up for unknown domain: {name}")
                continue
            if domain in self.WARM_DOMAINS:
                named[domain.value] = spec_for_domain(domain, fn)

        results = self.fetcher.batch_fetch(named)
        failed = [name for name, result in results.items() if not result.ok]
        for name in failed:
            logger.warning(f"Cache warm-up failed for {name}: {results[name].error}")

        logger.info(f"Cache warming completed ({len(results) - len(failed)}/{len(results)} domains)")
        return results

    def warm_cache(self, key: str, fetcher: Fetcher, domain_config: Optional[DomainConfig] = None) -> Any:
        """Refresh one key unconditionally."""
        return self.fetcher.get_or_fetch(key, fetcher, domain_config, force_refresh=True)


MERGE_LATEST = MergeConfig(MergeType.MERGE, ConflictResolution.LATEST)


class DomainDataCache:
    """Per-upstream helper: fetch-or-use-cache on well-known keys, bulk invalidation."""

    domain: DataDomain
    key_prefix: str

    def __init__(self, fetcher: CachedDataFetcher):
        self.fetcher = fetcher

    def invalidate_all(self) -> int:
        """Remove every entry under this upstream's key prefix."""
        return self.fetcher.manager.invalidate_cache(PrefixMatcher(self.key_prefix))

    def needs_update(self, key: str) -> bool:
        return self.fetcher.manager.needs_incremental_update(key)

    def _get(
        self,
        key: str,
        fetcher: Fetcher,
        force_refresh: bool,
        merge_config: Optional[MergeConfig] = None,
    ) -> Any:
        return self.fetcher.get_or_fetch(
            key,
            fetcher,
            CACHE_CONFIGS[self.domain],
            force_refresh=force_refresh,
            merge_config=merge_config,
        )


class GitHubDataCache(DomainDataCache):
    domain = DataDomain.REPOSITORY
    key_prefix = "github-"

    def get_repositories(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.GITHUB_REPOSITORIES, fetcher, force_refresh, MERGE_LATEST)

    def get_members(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.GITHUB_MEMBERS, fetcher, force_refresh, MERGE_LATEST)

    def get_stats(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.GITHUB_STATS, fetcher, force_refresh)

    def get_projects(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.GITHUB_PROJECTS, fetcher, force_refresh, MERGE_LATEST)


class WordPressDataCache(DomainDataCache):
    domain = DataDomain.BLOG
    key_prefix = "blog-"

    def get_posts(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.BLOG_POSTS, fetcher, force_refresh, MERGE_STRATEGIES[DataDomain.BLOG])

    def get_authors(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.BLOG_AUTHORS, fetcher, force_refresh)

    def get_categories(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.BLOG_CATEGORIES, fetcher, force_refresh)

    def get_tags(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.BLOG_TAGS, fetcher, force_refresh)

    def get_stats(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.BLOG_STATS, fetcher, force_refresh)


class StatusDataCache(DomainDataCache):
    domain = DataDomain.STATUS
    key_prefix = "status-"

    def get_status(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.STATUS_DATA, fetcher, force_refresh)


class SEODataCache(DomainDataCache):
    domain = DataDomain.METADATA
    key_prefix = "seo-"

    def get_metadata(self, fetcher: Fetcher, force_refresh: bool = False) -> Any:
        return self._get(CacheKeys.SEO_METADATA, fetcher, force_refresh)
