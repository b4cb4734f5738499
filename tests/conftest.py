"""
Shared fixtures: every test gets its own temporary cache directory.
"""
import pytest
import tempfile
from pathlib import Path

from sitecache.cache import CacheConfig, CacheManager


@pytest.fixture
def cache_dir():
    """Create a temporary cache directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "cache"


@pytest.fixture
def manager(cache_dir):
    """CacheManager without the background sweep."""
    cache = CacheManager(cache_dir, CacheConfig(auto_cleanup=False))
    yield cache
    cache.destroy()
