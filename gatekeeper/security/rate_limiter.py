"""
rate_limiter.py - Per-client fixed-window rate limiting
=======================================================
Every inbound request is classed as ``standard`` or ``sensitive``
(login, registration, password reset) and counted against a single
per-client window. Sensitive routes get a much lower ceiling so
credential stuffing is throttled long before it reaches bcrypt.

Denied requests are not counted: a client hammering past the ceiling
does not extend its own penalty beyond the current window.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional

from .window import Clock, StripedMap, WindowCounter, now_ms

logger = logging.getLogger("gatekeeper.ratelimit")


class RouteClass(str, Enum):
    STANDARD = "standard"
    SENSITIVE = "sensitive"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: int


# ---------------------------------------------------------------------------
# Client identity & route classification
# ---------------------------------------------------------------------------

def _usable(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() != "unknown"


def resolve_client_identity(headers: Mapping[str, str], client_host: Optional[str]) -> str:
    """
    First usable value of X-Forwarded-For, X-Real-IP, then the socket
    address. A multi-hop X-Forwarded-For contributes only its first hop.
    """
    ip = headers.get("x-forwarded-for")
    if not _usable(ip):
        ip = headers.get("x-real-ip")
    if not _usable(ip):
        ip = client_host
    if not ip:
        return "unknown"
    if "," in ip:
        ip = ip.split(",")[0]
    return ip.strip()


def classify_route(path: str, sensitive_fragments: Iterable[str]) -> RouteClass:
    for fragment in sensitive_fragments:
        if fragment in path:
            return RouteClass.SENSITIVE
    return RouteClass.STANDARD


# ---------------------------------------------------------------------------
# Limiter
# ---------------------------------------------------------------------------

class RateLimiter:
    """Fixed-window limiter keyed by client identity."""

    def __init__(
        self,
        standard_limit: int = 60,
        sensitive_limit: int = 5,
        window_seconds: int = 60,
        *,
        clock: Clock = now_ms,
        stripes: int = 64,
    ) -> None:
        self._ceilings = {
            RouteClass.STANDARD: standard_limit,
            RouteClass.SENSITIVE: sensitive_limit,
        }
        self._window_ms = window_seconds * 1000
        self._clock = clock
        self._counters: StripedMap[str, WindowCounter] = StripedMap(stripes)

    def ceiling(self, route_class: RouteClass) -> int:
        return self._ceilings[RouteClass(route_class)]

    def check(self, client_identity: str, route_class: RouteClass) -> RateLimitDecision:
        ceiling = self.ceiling(route_class)
        now = self._clock()
        with self._counters.locked(client_identity) as entries:
            counter = entries.get(client_identity)
            if counter is None:
                counter = WindowCounter(window_start_ms=now)
                entries[client_identity] = counter
            allowed = counter.try_acquire(now, self._window_ms, ceiling)
            remaining = max(0, ceiling - counter.count)
            retry_ms = 0 if allowed else counter.retry_after_ms(now, self._window_ms)

        if not allowed:
            logger.debug(
                "Rate limit exceeded for client %s (%s ceiling %d)",
                client_identity, RouteClass(route_class).value, ceiling,
            )
        return RateLimitDecision(
            allowed=allowed,
            remaining=remaining,
            retry_after_seconds=math.ceil(retry_ms / 1000),
        )

    def allow(self, client_identity: str, route_class: RouteClass) -> bool:
        return self.check(client_identity, route_class).allowed

    def sweep(self) -> int:
        """Drop counters idle for more than two windows."""
        now = self._clock()
        removed = self._counters.evict(lambda c: c.stale(now, self._window_ms))
        if removed:
            logger.debug(
                "Evicted %d stale rate-limit counters; %d remain",
                removed, len(self._counters),
            )
        return removed

    def tracked_clients(self) -> int:
        return len(self._counters)

    def reset(self) -> None:
        self._counters.clear()
