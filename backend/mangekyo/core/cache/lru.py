"""Bounded LRU map for the memory tier."""

from collections import OrderedDict
from typing import Generic, Iterator, List, Optional, Tuple, TypeVar

V = TypeVar("V")


class LRUCache(Generic[V]):
    """Least-recently-used map with a fixed capacity.

    get() promotes the entry; put() on a full cache drops the least recently
    used entry and counts the eviction.
    """

    def __init__(self, capacity: int = 500):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.evictions = 0
        self._data: "OrderedDict[str, V]" = OrderedDict()

    def get(self, key: str) -> Optional[V]:
        value = self._data.get(key)
        if value is not None:
            self._data.move_to_end(key)
        return value

    def peek(self, key: str) -> Optional[V]:
        """Get without changing recency."""
        return self._data.get(key)

    def put(self, key: str, value: V) -> Optional[Tuple[str, V]]:
        """Insert or replace an entry.

        Returns:
            The evicted (key, value) pair, if any
        """
        if key in self._data:
            self._data.move_to_end(key)
            self._data[key] = value
            return None

        self._data[key] = value
        if len(self._data) > self.capacity:
            self.evictions += 1
            return self._data.popitem(last=False)
        return None

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> List[str]:
        """Keys from least to most recently used."""
        return list(self._data.keys())

    def values(self) -> List[V]:
        return list(self._data.values())

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data.keys()))
