"""
Per-key fetch coalescing.

Callers that need the same key while a fetch for it is running wait for that
fetch instead of starting their own, and all of them see its value or its
exception.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightFetch:
    """A running fetch and the callers waiting on it."""
    key: str
    done: threading.Event = field(default_factory=threading.Event)
    value: Any = None
    error: Optional[Exception] = None
    started_at: float = field(default_factory=time.time)
    waiters: int = 0

    def outcome(self) -> Any:
        """The fetched value, or re-raise the fetch's exception."""
        if self.error is not None:
            raise self.error
        return self.value


class RequestCoalescer:
    """
    At most one running fetch per key; distinct keys never block each other.

    Usage:
        coalescer = RequestCoalescer()
        repos = coalescer.get_or_fetch("github-repositories", fetch_repositories)
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds a waiter blocks before giving up with
                TimeoutError. None waits for as long as the fetch takes.
        """
        self._timeout = timeout
        self._in_flight: Dict[str, InFlightFetch] = {}
        self._lock = threading.Lock()
        self.fetches = 0
        self.coalesced = 0

    def get_or_fetch(self, cache_key: str, fetch_fn: Callable[[], Any]) -> Any:
        """
        Run ``fetch_fn`` for ``cache_key`` unless a fetch for it is running,
        in which case wait for that one.

        Raises:
            TimeoutError: A configured timeout elapsed while waiting
            Exception: Whatever ``fetch_fn`` raised, for every caller
        """
        fetch, leader = self._join_or_register(cache_key)
        if leader:
            self._run(fetch, fetch_fn)
            return fetch.outcome()

        if not fetch.done.wait(timeout=self._timeout):
            logger.error(f"Gave up waiting for fetch of {cache_key} after {self._timeout}s")
            raise TimeoutError(f"Fetch for {cache_key} did not finish within {self._timeout}s")
        return fetch.outcome()

    @property
    def active_requests(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        now = time.time()
        with self._lock:
            return {
                "fetches": self.fetches,
                "coalesced": self.coalesced,
                "in_flight": {
                    key: {"waiters": f.waiters, "running_for": round(now - f.started_at, 3)}
                    for key, f in self._in_flight.items()
                },
            }

    def _join_or_register(self, cache_key: str) -> Tuple[InFlightFetch, bool]:
        with self._lock:
            fetch = self._in_flight.get(cache_key)
            if fetch is not None:
                fetch.waiters += 1
                self.coalesced += 1
                logger.debug(f"Joining fetch for {cache_key} ({fetch.waiters} waiting)")
                return fetch, False

            fetch = InFlightFetch(key=cache_key)
            self._in_flight[cache_key] = fetch
            self.fetches += 1
            return fetch, True

    def _run(self, fetch: InFlightFetch, fetch_fn: Callable[[], Any]) -> None:
        try:
            fetch.value = fetch_fn()
        except Exception as e:
            fetch.error = e
            logger.warning(f"Fetch failed for {fetch.key}: {e}")
        finally:
            # Unregister first so callers arriving after this start a new fetch
            with self._lock:
                if self._in_flight.get(fetch.key) is fetch:
                    del self._in_flight[fetch.key]
            fetch.done.set()
