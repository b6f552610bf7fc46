"""
OperationLedger: bounded in-memory audit trail of file operations.

Used for debugging only. Correctness never depends on what it holds.
"""

import threading
from collections import deque
from typing import Deque, List

from tollgate.schemas import OperationRecord


DEFAULT_LEDGER_SIZE = 1000


class OperationLedger:
    """Ring buffer of OperationRecords; the oldest entry is evicted first."""

    def __init__(self, max_entries: int = DEFAULT_LEDGER_SIZE):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._entries: Deque[OperationRecord] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def append(self, record: OperationRecord) -> None:
        with self._lock:
            self._entries.append(record)

    def records(self) -> List[OperationRecord]:
        """All retained records, oldest first."""
        with self._lock:
            return list(self._entries)

    def recent(self, n: int = 20) -> List[OperationRecord]:
        """The last n records, newest first."""
        if n <= 0:
            return []
        with self._lock:
            return list(reversed(self._entries))[:n]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
