"""
Aggregation - Batched Writer.

============================================================
RESPONSIBILITY
============================================================
Buffers time-series writes and flushes them in bounded batches.

- save() queues one value and flushes when the batch is full
- flush() writes whatever is left
- Order is first-in-first-out within a batch

============================================================
"""

import logging
from typing import List, Protocol, Sequence

from core.constants import MAX_BATCH_SIZE
from storage.timeseries import TimeSeriesItem


logger = logging.getLogger(__name__)


class BatchStore(Protocol):
    """Anything accepting a batch of time-series items."""

    def batch_put(self, items: Sequence[TimeSeriesItem]) -> None:
        ...


class BatchedWriter:
    """
    Write buffer in front of the time-series store.

    A failed batch stays queued so the caller decides whether to
    retry or abort; the error propagates unchanged.
    """

    def __init__(self, store: BatchStore, batch_size: int = MAX_BATCH_SIZE):
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")

        self._store = store
        self._batch_size = batch_size
        self._queue: List[TimeSeriesItem] = []

        self.items_written = 0
        self.batches_written = 0

    @property
    def pending(self) -> int:
        """Number of queued, unwritten items."""
        return len(self._queue)

    def save(self, key: str, timestamp: int, data: bytes) -> None:
        """Queue one value; writes a batch once batch_size is reached."""
        self._queue.append(TimeSeriesItem(key=key, timestamp=timestamp, data=data))
        if len(self._queue) >= self._batch_size:
            self.flush()

    def flush(self) -> None:
        """Write every queued value."""
        if not self._queue:
            return

        batch = list(self._queue)
        self._store.batch_put(batch)
        self._queue.clear()

        self.items_written += len(batch)
        self.batches_written += 1
        logger.debug(f"Flushed batch of {len(batch)} items")


__all__ = ["BatchStore", "BatchedWriter"]
