"""
Fixed-capacity circular buffer.

O(1) push, automatic eviction of the oldest element once full, iteration in
insertion order (oldest first).
"""

from __future__ import annotations

from typing import Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Circular buffer with a fixed capacity."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._items: List[Optional[T]] = [None] * capacity
        self._start = 0
        self._size = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return self._size

    def is_full(self) -> bool:
        return self._size == self._capacity

    def push(self, item: T) -> Optional[T]:
        """Append *item*; returns the evicted oldest item when full."""
        if self._size < self._capacity:
            self._items[(self._start + self._size) % self._capacity] = item
            self._size += 1
            return None
        evicted = self._items[self._start]
        self._items[self._start] = item
        self._start = (self._start + 1) % self._capacity
        return evicted

    def oldest(self) -> Optional[T]:
        if self._size == 0:
            return None
        return self._items[self._start]

    def latest(self) -> Optional[T]:
        if self._size == 0:
            return None
        return self._items[(self._start + self._size - 1) % self._capacity]

    def clear(self) -> None:
        self._items = [None] * self._capacity
        self._start = 0
        self._size = 0

    def __iter__(self) -> Iterator[T]:
        for i in range(self._size):
            yield self._items[(self._start + i) % self._capacity]

    def to_list(self) -> List[T]:
        return list(self)
