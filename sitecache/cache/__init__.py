"""
Persistent site-data cache with per-domain TTL, change detection, merging,
request coalescing and health diagnostics.
"""
from .core import (
    CacheEntry,
    CacheStats,
    ChangeResult,
    ConflictResolution,
    DataDomain,
    DataSource,
    DomainConfig,
    HealthIssue,
    HealthState,
    HealthStatus,
    MergeConfig,
    MergeType,
    OperationRecord,
    OperationType,
    PerformanceMetrics,
    Severity,
)
from .exceptions import CacheError, CacheIOError, InvalidPatternError
from .ttl_policies import (
    CACHE_CONFIGS,
    DATA_SOURCES,
    DEFAULT_INVALIDATION_RULES,
    MERGE_STRATEGIES,
    PRIMARY_KEYS,
    CacheKeys,
    get_config_for_domain,
    get_config_for_key,
    get_data_source_for_key,
    get_domain_for_key,
    get_merge_strategy,
    resolve_domain,
)
from .matchers import ExactMatcher, InvalidationRule, KeyMatcher, PrefixMatcher, RegexMatcher
from .health import HealthMonitor, HealthThresholds
from .coalescer import RequestCoalescer
from .manager import CacheConfig, CacheManager
from .fetcher import (
    CacheMonitor,
    CacheWarmer,
    CachedDataFetcher,
    DomainDataCache,
    FetchResult,
    FetchSpec,
    GitHubDataCache,
    MaintenanceReport,
    SEODataCache,
    StatusDataCache,
    WordPressDataCache,
)
from .context import CacheContext

__all__ = [
    # Core types
    "CacheEntry",
    "CacheStats",
    "ChangeResult",
    "ConflictResolution",
    "DataDomain",
    "DataSource",
    "DomainConfig",
    "HealthIssue",
    "HealthState",
    "HealthStatus",
    "MergeConfig",
    "MergeType",
    "OperationRecord",
    "OperationType",
    "PerformanceMetrics",
    "Severity",
    # Errors
    "CacheError",
    "CacheIOError",
    "InvalidPatternError",
    # Domain registry
    "CACHE_CONFIGS",
    "DATA_SOURCES",
    "DEFAULT_INVALIDATION_RULES",
    "MERGE_STRATEGIES",
    "PRIMARY_KEYS",
    "CacheKeys",
    "get_config_for_domain",
    "get_config_for_key",
    "get_data_source_for_key",
    "get_domain_for_key",
    "get_merge_strategy",
    "resolve_domain",
    # Invalidation patterns
    "ExactMatcher",
    "InvalidationRule",
    "KeyMatcher",
    "PrefixMatcher",
    "RegexMatcher",
    # Health
    "HealthMonitor",
    "HealthThresholds",
    # Coalescing
    "RequestCoalescer",
    # Manager
    "CacheConfig",
    "CacheManager",
    # Orchestration
    "CacheMonitor",
    "CacheWarmer",
    "CachedDataFetcher",
    "FetchResult",
    "FetchSpec",
    "MaintenanceReport",
    "CacheContext",
    # Per-upstream helpers
    "DomainDataCache",
    "GitHubDataCache",
    "SEODataCache",
    "StatusDataCache",
    "WordPressDataCache",
]
