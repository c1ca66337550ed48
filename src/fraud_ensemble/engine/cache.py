"""Bounded prediction cache for the fast scoring path."""

import threading
from collections import OrderedDict
from typing import Generic, Optional, TypeVar

from fraud_ensemble.data.schema import Transaction

V = TypeVar('V')


def _format_amount(amount: float) -> str:
    """Whole amounts render without a decimal part ('2000', '75.5')."""
    return str(int(amount)) if float(amount).is_integer() else repr(float(amount))


def make_cache_key(transaction: Transaction) -> str:
    """Amount, type and timestamp truncated to the minute."""
    return f"{_format_amount(transaction.amount)}_{transaction.type.value}_{transaction.timestamp[:16]}"


class PredictionCache(Generic[V]):
    """
    Insertion-ordered cache with first-in-first-out eviction.

    Reads do not refresh an entry's position, and re-storing an existing key
    keeps its original position. All operations hold an internal lock.
    """

    def __init__(self, max_size: int = 100):
        self.cache: 'OrderedDict[str, V]' = OrderedDict()
        self.max_size = max_size
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[V]:
        """Get value from cache."""
        with self._lock:
            if key in self.cache:
                self.hits += 1
                return self.cache[key]
            self.misses += 1
            return None

    def set(self, key: str, value: V) -> None:
        """Store a value, evicting the oldest entries beyond max_size."""
        with self._lock:
            self.cache[key] = value
            while len(self.cache) > self.max_size:
                self.cache.popitem(last=False)

    def setdefault(self, key: str, value: V) -> V:
        """Store a value unless the key is present; return the stored value."""
        with self._lock:
            if key in self.cache:
                return self.cache[key]
            self.cache[key] = value
            while len(self.cache) > self.max_size:
                self.cache.popitem(last=False)
            return value

    def clear(self) -> None:
        """Clear cache."""
        with self._lock:
            self.cache.clear()
            self.hits = 0
            self.misses = 0

    def keys(self):
        with self._lock:
            return list(self.cache.keys())

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self.cache

    def __len__(self) -> int:
        with self._lock:
            return len(self.cache)

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0
