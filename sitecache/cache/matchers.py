"""
Key matchers used to select entries for invalidation, and the time-based
rules built on them.
"""
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Pattern, Union

from .core import CacheEntry
from .exceptions import InvalidPatternError


class KeyMatcher(ABC):
    """Decides whether a cache key is selected."""

    @abstractmethod
    def matches(self, key: str) -> bool:
        ...

    def describe(self) -> str:
        return repr(self)


class ExactMatcher(KeyMatcher):
    def __init__(self, key: str):
        if not isinstance(key, str) or not key:
            raise InvalidPatternError(key, "exact key must be a non-empty string")
        self.key = key

    def matches(self, key: str) -> bool:
        return key == self.key

    def describe(self) -> str:
        return self.key

    def __repr__(self) -> str:
        return f"ExactMatcher({self.key!r})"


class PrefixMatcher(KeyMatcher):
    def __init__(self, prefix: str):
        if not isinstance(prefix, str) or not prefix:
            raise InvalidPatternError(prefix, "prefix must be a non-empty string")
        self.prefix = prefix

    def matches(self, key: str) -> bool:
        return key.startswith(self.prefix)

    def describe(self) -> str:
        return f"{self.prefix}*"

    def __repr__(self) -> str:
        return f"PrefixMatcher({self.prefix!r})"


class RegexMatcher(KeyMatcher):
    """Matches keys with ``re.search`` against a compiled pattern."""

    def __init__(self, pattern: Union[str, Pattern]):
        if isinstance(pattern, str):
            if not pattern:
                raise InvalidPatternError(pattern, "pattern must not be empty")
            try:
                pattern = re.compile(pattern)
            except re.error as e:
                raise InvalidPatternError(pattern, str(e))
        elif not isinstance(pattern, re.Pattern):
            raise InvalidPatternError(pattern, "expected a string or compiled pattern")
        self.pattern = pattern

    def matches(self, key: str) -> bool:
        return self.pattern.search(key) is not None

    def describe(self) -> str:
        return f"/{self.pattern.pattern}/"

    def __repr__(self) -> str:
        return f"RegexMatcher({self.pattern.pattern!r})"


def to_matcher(pattern: Any) -> KeyMatcher:
    """
    Coerce an invalidation pattern into a KeyMatcher.

    Strings are exact keys, compiled patterns become RegexMatchers and
    matchers pass through unchanged.

    Raises:
        InvalidPatternError: For empty strings and unsupported types
    """
    if isinstance(pattern, KeyMatcher):
        return pattern
    if isinstance(pattern, re.Pattern):
        return RegexMatcher(pattern)
    if isinstance(pattern, str):
        return ExactMatcher(pattern)
    raise InvalidPatternError(pattern, f"unsupported pattern type {type(pattern).__name__}")


@dataclass(frozen=True)
class InvalidationRule:
    """
    Drop entries whose key matches once they go ``max_age_seconds`` without
    a write, whatever TTL they were stored with.
    """
    matcher: KeyMatcher
    max_age_seconds: float

    def applies_to(self, entry: CacheEntry, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.matcher.matches(entry.key) and now - entry.updated_at > self.max_age_seconds

    def describe(self) -> str:
        return f"{self.matcher.describe()} older than {self.max_age_seconds:g}s"
