"""
Domain registry: cache keys, TTL policy and merge strategy per data domain.
"""
from typing import Dict, List, Optional

from .core import ConflictResolution, DataDomain, DataSource, DomainConfig, MergeConfig, MergeType
from .matchers import InvalidationRule, PrefixMatcher

MINUTE = 60
HOUR = 60 * MINUTE

# TTL/source/version by domain
CACHE_CONFIGS: Dict[DataDomain, DomainConfig] = {
    DataDomain.STATUS: DomainConfig(
        max_age_seconds=15 * MINUTE,   # Monitoring data goes stale fast
        source="status-api",
        version="1.0.0",
    ),
    DataDomain.BLOG: DomainConfig(
        max_age_seconds=2 * HOUR,
        source="wordpress-api",
        version="1.0.0",
    ),
    DataDomain.REPOSITORY: DomainConfig(
        max_age_seconds=6 * HOUR,
        source="github-api",
        version="1.0.0",
    ),
    DataDomain.AI: DomainConfig(
        max_age_seconds=24 * HOUR,     # Summaries only change with the repository
        source="gemini-api",
        version="1.0.0",
    ),
    DataDomain.METADATA: DomainConfig(
        max_age_seconds=24 * HOUR,
        source="seo-generator",
        version="1.0.0",
    ),
}

# Freshness chain: each domain must expire strictly sooner than the next
FRESHNESS_ORDER: List[DataDomain] = [
    DataDomain.STATUS,
    DataDomain.BLOG,
    DataDomain.REPOSITORY,
    DataDomain.METADATA,
]

# Merge strategy applied when a refetch replaces cached data
MERGE_STRATEGIES: Dict[DataDomain, MergeConfig] = {
    DataDomain.REPOSITORY: MergeConfig(MergeType.MERGE, ConflictResolution.LATEST),
    DataDomain.BLOG: MergeConfig(MergeType.REPLACE, ConflictResolution.LATEST),
    DataDomain.STATUS: MergeConfig(MergeType.REPLACE, ConflictResolution.LATEST),
    DataDomain.AI: MergeConfig(MergeType.MERGE, ConflictResolution.LATEST),
    DataDomain.METADATA: MergeConfig(MergeType.REPLACE, ConflictResolution.LATEST),
}

# Upstream systems and how often each is polled for new data
DATA_SOURCES: Dict[str, DataSource] = {
    "github": DataSource("GitHub Data", DataDomain.REPOSITORY, 6 * HOUR, priority="high"),
    "wordpress": DataSource("WordPress Blog", DataDomain.BLOG, 2 * HOUR, priority="medium"),
    "status": DataSource("Status Monitoring", DataDomain.STATUS, 15 * MINUTE, priority="high"),
    "seo": DataSource(
        "SEO Metadata",
        DataDomain.METADATA,
        24 * HOUR,
        priority="low",
        dependencies=("github", "wordpress"),
    ),
}

# Applied by the expiry sweep on top of each entry's own TTL
DEFAULT_INVALIDATION_RULES: List[InvalidationRule] = [
    InvalidationRule(PrefixMatcher("github-"), 6 * HOUR),
    InvalidationRule(PrefixMatcher("blog-"), 2 * HOUR),
    InvalidationRule(PrefixMatcher("status-"), 15 * MINUTE),
]

# Key prefix -> domain
KEY_PREFIXES: Dict[str, DataDomain] = {
    "github-": DataDomain.REPOSITORY,
    "blog-": DataDomain.BLOG,
    "status-": DataDomain.STATUS,
    "seo-": DataDomain.METADATA,
    "ai-": DataDomain.AI,
}


class CacheKeys:
    """Well-known cache keys."""

    # Source control
    GITHUB_REPOSITORIES = "github-repositories"
    GITHUB_MEMBERS = "github-members"
    GITHUB_STATS = "github-stats"
    GITHUB_PROJECTS = "github-projects"

    # Blog
    BLOG_POSTS = "blog-posts"
    BLOG_AUTHORS = "blog-authors"
    BLOG_CATEGORIES = "blog-categories"
    BLOG_TAGS = "blog-tags"
    BLOG_STATS = "blog-stats"

    # Status monitoring
    STATUS_DATA = "status-data"

    # AI summaries
    AI_ANALYSIS = "ai-analysis"

    # SEO metadata
    SEO_METADATA = "seo-metadata"

    @staticmethod
    def ai_repository(full_name: str) -> str:
        """Per-repository AI summary key."""
        return f"ai-analysis:{full_name}"


# The primary key warmed and batch-fetched for each domain
PRIMARY_KEYS: Dict[DataDomain, str] = {
    DataDomain.REPOSITORY: CacheKeys.GITHUB_REPOSITORIES,
    DataDomain.BLOG: CacheKeys.BLOG_POSTS,
    DataDomain.STATUS: CacheKeys.STATUS_DATA,
    DataDomain.AI: CacheKeys.AI_ANALYSIS,
    DataDomain.METADATA: CacheKeys.SEO_METADATA,
}


def get_config_for_domain(domain: DataDomain) -> DomainConfig:
    return CACHE_CONFIGS[domain]


def get_domain_for_key(key: str) -> Optional[DataDomain]:
    """
    Determine the data domain for a cache key from its prefix.

    Returns:
        The DataDomain, or None for keys outside the registry
    """
    for prefix, domain in KEY_PREFIXES.items():
        if key.startswith(prefix):
            return domain
    return None


def get_config_for_key(key: str, default_max_age: float = 24 * HOUR) -> DomainConfig:
    """
    Resolve the DomainConfig that governs a key.

    Keys outside the registry get ``default_max_age`` and a generic source.
    """
    domain = get_domain_for_key(key)
    if domain is None:
        return DomainConfig(max_age_seconds=default_max_age, source="cache-manager", version="1.0.0")
    return CACHE_CONFIGS[domain]


def get_data_source_for_key(key: str) -> Optional[DataSource]:
    """The upstream that feeds a key's domain, or None (ai and unknown keys)."""
    domain = get_domain_for_key(key)
    for source in DATA_SOURCES.values():
        if source.domain is domain:
            return source
    return None


def get_merge_strategy(key: str) -> MergeConfig:
    domain = get_domain_for_key(key)
    return MERGE_STRATEGIES.get(domain, MergeConfig(MergeType.REPLACE, ConflictResolution.LATEST))


def resolve_domain(name: str) -> DataDomain:
    """
    Look up a domain by name, accepting the source-system aliases
    (``github``, ``wordpress``, ``seo``, ``gemini``).

    Raises:
        ValueError: For unknown names
    """
    aliases = {
        "github": DataDomain.REPOSITORY,
        "wordpress": DataDomain.BLOG,
        "seo": DataDomain.METADATA,
        "gemini": DataDomain.AI,
    }
    normalized = name.strip().lower()
    if normalized in aliases:
        return aliases[normalized]
    return DataDomain(normalized)


def check_freshness_ordering(configs: Optional[Dict[DataDomain, DomainConfig]] = None) -> None:
    """
    Verify max ages increase strictly along FRESHNESS_ORDER.

    Raises:
        ValueError: Naming the first pair out of order
    """
    configs = configs or CACHE_CONFIGS
    for shorter, longer in zip(FRESHNESS_ORDER, FRESHNESS_ORDER[1:]):
        if not configs[shorter].max_age_seconds < configs[longer].max_age_seconds:
            raise ValueError(
                f"maxAge for {shorter.value} ({configs[shorter].max_age_seconds}s) must be "
                f"shorter than {longer.value} ({configs[longer].max_age_seconds}s)"
            )


check_freshness_ordering()
