"""
window.py - Fixed-window counters on a striped concurrent map
=============================================================
Shared state for the rate limiter and the login-attempt tracker.

``StripedMap`` splits its keys over N independent stripes, each with its
own lock and dict. Every read-check-write on a key runs under that key's
stripe lock, so operations on one key are atomic while unrelated keys
(almost always on other stripes) proceed in parallel.

Sweeps never take more than one stripe lock at a time: they snapshot the
keys stripe by stripe, then evict each key under its own stripe lock,
re-checking the predicate at eviction time.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Generic, Hashable, Iterator, List, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

# Millisecond wall clock; injectable so tests can move time by hand.
Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


class _Stripe(Generic[K, V]):
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = Lock()
        self.entries: Dict[K, V] = {}


class StripedMap(Generic[K, V]):
    """Concurrent map with per-stripe locking and atomic compute-on-key."""

    def __init__(self, stripes: int = 64) -> None:
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._stripes: List[_Stripe[K, V]] = [_Stripe() for _ in range(stripes)]

    def _stripe(self, key: K) -> _Stripe[K, V]:
        return self._stripes[hash(key) % len(self._stripes)]

    @contextmanager
    def locked(self, key: K) -> Iterator[Dict[K, V]]:
        """
        Hold the lock guarding *key* and yield the dict that stores it.

        The caller may read, insert, mutate or delete ``entries[key]``
        freely inside the block; touching other keys is not allowed.
        """
        stripe = self._stripe(key)
        with stripe.lock:
            yield stripe.entries

    def get(self, key: K) -> Optional[V]:
        stripe = self._stripe(key)
        with stripe.lock:
            return stripe.entries.get(key)

    def put(self, key: K, value: V) -> None:
        stripe = self._stripe(key)
        with stripe.lock:
            stripe.entries[key] = value

    def pop(self, key: K) -> Optional[V]:
        stripe = self._stripe(key)
        with stripe.lock:
            return stripe.entries.pop(key, None)

    def remove_if(self, key: K, predicate: Callable[[V], bool]) -> bool:
        """Delete *key* only if it is still present and *predicate* holds."""
        stripe = self._stripe(key)
        with stripe.lock:
            value = stripe.entries.get(key)
            if value is None or not predicate(value):
                return False
            del stripe.entries[key]
            return True

    def keys(self) -> List[K]:
        """Point-in-time snapshot, one stripe lock at a time."""
        snapshot: List[K] = []
        for stripe in self._stripes:
            with stripe.lock:
                snapshot.extend(stripe.entries.keys())
        return snapshot

    def evict(self, predicate: Callable[[V], bool]) -> int:
        """Remove every entry matching *predicate*; returns how many went."""
        removed = 0
        for key in self.keys():
            if self.remove_if(key, predicate):
                removed += 1
        return removed

    def count(self, predicate: Callable[[V], bool]) -> int:
        total = 0
        for stripe in self._stripes:
            with stripe.lock:
                total += sum(1 for v in stripe.entries.values() if predicate(v))
        return total

    def clear(self) -> None:
        for stripe in self._stripes:
            with stripe.lock:
                stripe.entries.clear()

    def __len__(self) -> int:
        total = 0
        for stripe in self._stripes:
            with stripe.lock:
                total += len(stripe.entries)
        return total


@dataclass
class WindowCounter:
    """Admitted-request count for one client identity in the current window."""

    window_start_ms: int
    count: int = 0

    def expired(self, now: int, window_ms: int) -> bool:
        return now - self.window_start_ms >= window_ms

    def try_acquire(self, now: int, window_ms: int, ceiling: int) -> bool:
        """
        Reset if the window has passed, then take one slot if one is free.

        Denied calls leave ``count`` untouched, so it never exceeds
        *ceiling*. Must be called under the owning stripe lock.
        """
        if self.expired(now, window_ms):
            self.window_start_ms = now
            self.count = 0
        if self.count >= ceiling:
            return False
        self.count += 1
        return True

    def retry_after_ms(self, now: int, window_ms: int) -> int:
        return max(0, self.window_start_ms + window_ms - now)

    def stale(self, now: int, window_ms: int) -> bool:
        """True once the window start is more than two windows old."""
        return now - self.window_start_ms > 2 * window_ms
