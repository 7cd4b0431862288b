"""Bounded in-memory history of recent records for one source.

Keeps the most recent *maxlen* records so a viewer that selects a file can
be sent its recent history before live records start flowing.
"""

from __future__ import annotations

from collections import deque

from smartlog.records import LogRecord

DEFAULT_CAPACITY = 2000


class RingBuffer:
    """Fixed-capacity FIFO; appending past capacity evicts the oldest record."""

    def __init__(self, maxlen: int = DEFAULT_CAPACITY) -> None:
        if maxlen < 1:
            raise ValueError("maxlen must be at least 1")
        self._records: deque[LogRecord] = deque(maxlen=maxlen)

    @property
    def capacity(self) -> int:
        return self._records.maxlen or 0

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: LogRecord) -> None:
        self._records.append(record)

    def snapshot(self) -> list[LogRecord]:
        """Independent copy of the retained records, oldest first."""
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()
