"""
Cache exceptions.
"""
from typing import Any, Dict, Optional


class CacheError(Exception):
    """Base exception for cache-layer errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class CacheIOError(CacheError):
    """Raised when reading or writing the on-disk cache fails."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if key is not None:
            details["key"] = key
        if path is not None:
            details["path"] = path
        if original_error is not None:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code="CACHE_IO_ERROR", details=details)
        if original_error is not None:
            self.__cause__ = original_error


class InvalidPatternError(CacheError, ValueError):
    """Raised when an invalidation pattern is malformed."""

    def __init__(self, pattern: Any, reason: str):
        super().__init__(
            message=f"Invalid invalidation pattern {pattern!r}: {reason}",
            error_code="INVALID_PATTERN",
            details={"pattern": repr(pattern), "reason": reason},
        )
