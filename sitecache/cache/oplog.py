"""
Bounded history of recent cache operations.
"""
import threading
from collections import deque
from typing import Deque, List, Optional

from .core import OperationRecord, OperationType


class OperationLog:
    """
    Fixed-capacity ring buffer of OperationRecords.

    The oldest record is evicted first once capacity is reached. Thread-safe.
    """

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._records: Deque[OperationRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._records.maxlen

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def record(
        self,
        op_type: OperationType,
        key: str,
        success: bool,
        duration_ms: float,
        error: Optional[str] = None,
    ) -> OperationRecord:
        record = OperationRecord(
            type=op_type,
            key=key,
            success=success,
            duration_ms=duration_ms,
            error=error,
        )
        with self._lock:
            self._records.append(record)
        return record

    def recent(self, n: int = 100) -> List[OperationRecord]:
        """Up to ``n`` most recent records, most recent first."""
        if n <= 0:
            return []
        with self._lock:
            snapshot = list(self._records)
        return snapshot[::-1][:n]

    def failure_rate(self) -> float:
        """Share of logged operations that failed."""
        with self._lock:
            total = len(self._records)
            if total == 0:
                return 0.0
            failed = sum(1 for r in self._records if not r.success)
        return failed / total

    def average_duration(self, op_type: OperationType) -> float:
        """Mean duration (ms) of successful operations of one type."""
        with self._lock:
            durations = [r.duration_ms for r in self._records if r.type == op_type and r.success]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
