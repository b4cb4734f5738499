"""Configuration management using pydantic-settings."""
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    cache_directory: Path = Path("./data/cache")
    cache_max_size_bytes: int = 100 * 1024 * 1024
    cache_compression_enabled: bool = False
    cache_compression_threshold_bytes: int = 10 * 1024
    cache_checksum_algorithm: str = "sha256"   # sha256 | md5

    # Expiry
    cache_default_max_age_seconds: float = 24 * 3600
    cache_auto_cleanup: bool = True
    cache_cleanup_interval_seconds: float = 3600
    cache_purge_on_destroy: bool = False
    cache_incremental_updates: bool = True

    # Diagnostics
    cache_operation_log_capacity: int = 1000
    cache_min_hit_rate: float = 0.8
    cache_max_expired_ratio: float = 0.2
    cache_max_failure_rate: float = 0.05

    # Scheduled maintenance, 0 disables it
    maintenance_interval_seconds: float = 3600

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
