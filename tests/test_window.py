"""
Tests for the striped concurrent map and the fixed-window counter that
the rate limiter and lockout tracker are built on.

Run with: pytest tests/test_window.py -v
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from gatekeeper.security.window import StripedMap, WindowCounter


# ---------------------------------------------------------------------------
# StripedMap
# ---------------------------------------------------------------------------

def test_put_get_pop():
    m: StripedMap[str, int] = StripedMap(stripes=4)
    m.put("a", 1)
    assert m.get("a") == 1
    assert m.pop("a") == 1
    assert m.get("a") is None
    assert m.pop("a") is None


def test_rejects_zero_stripes():
    with pytest.raises(ValueError):
        StripedMap(stripes=0)


def test_remove_if_rechecks_predicate():
    m: StripedMap[str, int] = StripedMap()
    m.put("k", 5)
    assert m.remove_if("k", lambda v: v > 10) is False
    assert m.get("k") == 5
    assert m.remove_if("k", lambda v: v == 5) is True
    assert m.remove_if("k", lambda v: True) is False


def test_evict_and_len_span_all_stripes():
    m: StripedMap[int, int] = StripedMap(stripes=8)
    for i in range(100):
        m.put(i, i)
    assert len(m) == 100
    removed = m.evict(lambda v: v % 2 == 0)
    assert removed == 50
    assert len(m) == 50
    assert sorted(m.keys()) == list(range(1, 100, 2))
    assert m.count(lambda v: v > 90) == 4


def test_locked_block_is_atomic_per_key():
    m: StripedMap[str, int] = StripedMap(stripes=2)

    def bump(_):
        with m.locked("hits") as entries:
            entries["hits"] = entries.get("hits", 0) + 1

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(bump, range(2000)))
    assert m.get("hits") == 2000


# ---------------------------------------------------------------------------
# WindowCounter
# ---------------------------------------------------------------------------

def test_counter_admits_up_to_ceiling_then_denies():
    c = WindowCounter(window_start_ms=0)
    assert [c.try_acquire(10, 60_000, 3) for _ in range(4)] == [True, True, True, False]
    assert c.count == 3


def test_counter_resets_at_window_boundary():
    c = WindowCounter(window_start_ms=0)
    for _ in range(3):
        c.try_acquire(0, 60_000, 3)
    assert c.try_acquire(59_999, 60_000, 3) is False
    assert c.try_acquire(60_000, 60_000, 3) is True
    assert c.window_start_ms == 60_000
    assert c.count == 1


def test_counter_retry_after_and_staleness():
    c = WindowCounter(window_start_ms=1_000)
    assert c.retry_after_ms(21_000, 60_000) == 40_000
    assert c.stale(121_000, 60_000) is False
    assert c.stale(121_001, 60_000) is True
