"""
Tests for the Batched Writer.
"""

import pytest

from aggregation.writer import BatchedWriter
from core.constants import MAX_BATCH_SIZE


class RecordingStore:
    def __init__(self, fail: bool = False):
        self.batches = []
        self.fail = fail

    def batch_put(self, items):
        if self.fail:
            raise ConnectionError("store unavailable")
        self.batches.append(list(items))


class TestBatchedWriter:
    """Tests for BatchedWriter."""

    def test_flushes_when_batch_is_full(self):
        store = RecordingStore()
        writer = BatchedWriter(store)

        for i in range(MAX_BATCH_SIZE + 1):
            writer.save("k", i, b"x")

        assert len(store.batches) == 1
        assert len(store.batches[0]) == MAX_BATCH_SIZE
        assert writer.pending == 1

        writer.flush()
        assert [len(b) for b in store.batches] == [MAX_BATCH_SIZE, 1]
        assert writer.items_written == MAX_BATCH_SIZE + 1
        assert writer.batches_written == 2
        assert writer.pending == 0

    def test_batch_order_is_fifo(self):
        store = RecordingStore()
        writer = BatchedWriter(store, batch_size=3)

        for i in range(3):
            writer.save("k", i, bytes([i]))

        assert [item.timestamp for item in store.batches[0]] == [0, 1, 2]

    def test_flush_with_nothing_queued(self):
        store = RecordingStore()
        writer = BatchedWriter(store)

        writer.flush()
        assert store.batches == []

    @pytest.mark.parametrize("size", [0, MAX_BATCH_SIZE + 1])
    def test_invalid_batch_size(self, size):
        with pytest.raises(ValueError):
            BatchedWriter(RecordingStore(), batch_size=size)

    def test_failed_batch_stays_queued(self):
        store = RecordingStore(fail=True)
        writer = BatchedWriter(store, batch_size=2)
        writer.save("k", 1, b"a")

        with pytest.raises(ConnectionError):
            writer.save("k", 2, b"b")

        assert writer.pending == 2
        assert writer.items_written == 0

    def test_writes_into_timeseries_store(self, timeseries):
        writer = BatchedWriter(timeseries, batch_size=2)
        for i in range(3):
            writer.save("acct/post", 100 + i, b"v%d" % i)
        writer.flush()

        assert timeseries.count("acct/post") == 3
        assert timeseries.query_exact("acct/post", 102) == b"v2"
