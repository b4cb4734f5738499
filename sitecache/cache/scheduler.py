"""
Cancellable periodic background task.
"""
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("cache.scheduler")


class PeriodicTask:
    """
    Runs ``fn`` every ``interval`` seconds on a daemon thread until cancelled.

    Usage:
        task = PeriodicTask(60.0, sweep, name="cache-sweep").start()
        ...
        task.cancel()
    """

    def __init__(self, interval: float, fn: Callable[[], object], name: str = "periodic-task"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.name = name
        self._fn = fn
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    def start(self) -> "PeriodicTask":
        """Start the schedule. Returns self as the cancellation handle."""
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.debug(f"Scheduled {self.name} every {self.interval}s")
        return self

    def cancel(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the schedule and wait for a run in progress to finish. Idempotent."""
        self._stopped.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.debug(f"Cancelled {self.name}")

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stopped.is_set()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self._fn()
                self.runs += 1
            except Exception as e:
                logger.warning(f"{self.name} run failed: {e}")
