from collections import OrderedDict
from typing import DefaultDict, Dict, Generic, Iterator, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")

__all__ = ["LFUCache"]


class LFUCache(Generic[K, V]):
    """
    A bounded mapping that evicts the least frequently used key.

    Keys with the same frequency are evicted in insertion order.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("Capacity must be positive")

        self.capacity = capacity
        self.cache: Dict[K, Tuple[V, int]] = {}
        self.freq_count: DefaultDict[int, "OrderedDict[K, None]"] = DefaultDict(OrderedDict)
        self.min_freq = 0

    def _unlink(self, key: K, freq: int) -> None:
        bucket = self.freq_count[freq]
        del bucket[key]
        if not bucket:
            del self.freq_count[freq]
            if freq == self.min_freq:
                self.min_freq += 1

    def _touch(self, key: K, value: V) -> None:
        _, freq = self.cache[key]
        self._unlink(key, freq)
        self.freq_count[freq + 1][key] = None
        self.cache[key] = (value, freq + 1)

    def get(self, key: K) -> V:
        if key not in self.cache:
            raise KeyError(f"Key {key} not found")
        value, _ = self.cache[key]
        self._touch(key, value)
        return value

    def peek(self, key: K) -> V:
        """Returns the value without counting it as a use."""
        return self.cache[key][0]

    def put(self, key: K, value: V) -> None:
        if key in self.cache:
            self._touch(key, value)
            return

        if len(self.cache) == self.capacity:
            if self.min_freq not in self.freq_count:
                # the least used bucket was emptied by remove_key
                self.min_freq = min(self.freq_count)
            bucket = self.freq_count[self.min_freq]
            evicted_key, _ = bucket.popitem(last=False)
            if not bucket:
                del self.freq_count[self.min_freq]
            del self.cache[evicted_key]

        self.cache[key] = (value, 1)
        self.freq_count[1][key] = None
        self.min_freq = 1

    def remove_key(self, key: K) -> None:
        if key in self.cache:
            _, freq = self.cache.pop(key)
            self._unlink(key, freq)

    def __contains__(self, key: object) -> bool:
        return key in self.cache

    def __len__(self) -> int:
        return len(self.cache)

    def __iter__(self) -> Iterator[K]:
        yield from list(self.cache)
