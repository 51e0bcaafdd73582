"""
Timing Ring Buffers

Bounded FIFO storage for latency samples keyed by a composite key
(dwell key, flight key or n-gram key).

Two retention policies are provided:
- KeyedTimingBuffer: every key holds at most ``limit`` samples.
- SharedTimingBuffer: all keys together hold at most ``limit`` samples;
  the globally oldest sample is evicted first and a bucket emptied by
  eviction disappears.

Both keep samples per key in arrival order and never raise on overflow.
"""

from collections import deque
from typing import Deque, Dict, Iterator, List, Tuple


class KeyedTimingBuffer:
    """Per-key bounded sample lists."""

    def __init__(self, limit: int = 50):
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        self.limit = limit
        self._buckets: Dict[str, Deque[float]] = {}

    def append(self, key: str, value: float) -> None:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = deque(maxlen=self.limit)
            self._buckets[key] = bucket
        bucket.append(value)

    def get(self, key: str) -> List[float]:
        return list(self._buckets.get(key, ()))

    def keys(self) -> List[str]:
        return list(self._buckets)

    def values(self) -> List[float]:
        """All samples flattened, bucket by bucket."""
        return [v for bucket in self._buckets.values() for v in bucket]

    def snapshot(self) -> Dict[str, List[float]]:
        """Copy of the buffer contents; callers may mutate it freely."""
        return {key: list(bucket) for key, bucket in self._buckets.items()}

    def clear(self) -> None:
        self._buckets.clear()

    def __len__(self) -> int:
        return sum(len(b) for b in self._buckets.values())

    def __contains__(self, key: str) -> bool:
        return key in self._buckets

    def __iter__(self) -> Iterator[Tuple[str, List[float]]]:
        for key, bucket in self._buckets.items():
            yield key, list(bucket)


class SharedTimingBuffer(KeyedTimingBuffer):
    """
    Buckets sharing one global capacity.

    An insertion-order queue of keys tracks which bucket owns the oldest
    sample, so eviction is O(1) per append.
    """

    def __init__(self, limit: int = 50):
        super().__init__(limit)
        self._order: Deque[str] = deque()

    def append(self, key: str, value: float) -> None:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = deque()
            self._buckets[key] = bucket
        bucket.append(value)
        self._order.append(key)

        while len(self._order) > self.limit:
            oldest_key = self._order.popleft()
            oldest_bucket = self._buckets[oldest_key]
            oldest_bucket.popleft()
            if not oldest_bucket:
                del self._buckets[oldest_key]

    def clear(self) -> None:
        super().clear()
        self._order.clear()

    def __len__(self) -> int:
        return len(self._order)
