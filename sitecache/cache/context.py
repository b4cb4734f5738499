"""
Explicit cache context, built once at startup and handed to consumers.
"""
import logging
from typing import Any, Optional

from .fetcher import (
    CacheMonitor,
    CacheWarmer,
    CachedDataFetcher,
    GitHubDataCache,
    SEODataCache,
    StatusDataCache,
    WordPressDataCache,
)
from .manager import CacheConfig, CacheManager
from .scheduler import PeriodicTask

logger = logging.getLogger("cache.context")


class CacheContext:
    """
    Owns one CacheManager and the services built on it.

    Cached payloads are generic JSON; read them through the typed views in
    ``sitecache.view_models``.

    Usage:
        with CacheContext.from_settings(settings) as ctx:
            repos = ctx.github.get_repositories(fetch_repositories)
    """

    def __init__(self, manager: CacheManager, maintenance_interval_seconds: Optional[float] = None):
        self.manager = manager
        self.fetcher = CachedDataFetcher(manager)
        self.monitor = CacheMonitor(manager, max_expired_ratio=manager.config.max_expired_ratio)
        self.warmer = CacheWarmer(self.fetcher)

        self.github = GitHubDataCache(self.fetcher)
        self.wordpress = WordPressDataCache(self.fetcher)
        self.status = StatusDataCache(self.fetcher)
        self.seo = SEODataCache(self.fetcher)

        self._maintenance_task: Optional[PeriodicTask] = None
        if maintenance_interval_seconds:
            self._maintenance_task = self.monitor.schedule_auto_maintenance(maintenance_interval_seconds)

    @classmethod
    def from_settings(cls, settings: Any) -> "CacheContext":
        """Build from the application Settings object."""
        manager = CacheManager(settings.cache_directory, CacheConfig.from_settings(settings))
        return cls(manager, maintenance_interval_seconds=settings.maintenance_interval_seconds)

    def close(self) -> None:
        """Stop scheduled maintenance and destroy the manager. Idempotent."""
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            self._maintenance_task = None
        self.manager.destroy()

    @property
    def closed(self) -> bool:
        return self.manager.destroyed

    def __enter__(self) -> "CacheContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
