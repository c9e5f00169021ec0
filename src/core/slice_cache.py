"""
Slice Cache

Bounded store of recently extracted slices keyed by (axis, slice index).
When full, inserting a new key evicts the oldest inserted entry; lookups do
not change eviction order. Hit and miss counters are kept for diagnostics.

Inputs:
    - (Axis, index) keys and Slice values

Outputs:
    - Cached Slice objects, hit/miss counts

Requirements:
    - collections.OrderedDict
"""

from collections import OrderedDict
from typing import Hashable, List, Optional, Tuple

from core.slice_extractor import Slice

DEFAULT_CACHE_CAPACITY = 10


class SliceCache:
    """FIFO-evicted cache of extracted slices."""

    def __init__(self, capacity: int = DEFAULT_CACHE_CAPACITY):
        if capacity < 1:
            raise ValueError("Slice cache capacity must be at least 1")
        self.capacity = capacity
        self._entries: "OrderedDict[Tuple[Hashable, int], Slice]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, axis, index: int) -> Optional[Slice]:
        key = (axis, index)
        slice_ = self._entries.get(key)
        if slice_ is None:
            self.misses += 1
        else:
            self.hits += 1
        return slice_

    def put(self, axis, index: int, slice_: Slice) -> None:
        """Store a slice. A new key inserted into a full cache evicts the oldest entry."""
        key = (axis, index)
        if key in self._entries:
            self._entries[key] = slice_
            return
        while len(self._entries) >= self.capacity:
            self._entries.popitem(last=False)
        self._entries[key] = slice_

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[Tuple[Hashable, int]]:
        """Keys in insertion order, oldest first."""
        return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
