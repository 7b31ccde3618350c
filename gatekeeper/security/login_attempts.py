"""
login_attempts.py - Per-account brute-force lockout
===================================================
Counts consecutive failed logins per account (case-folded email). The
failure that reaches the threshold stamps the lockout start; further
failures while locked never move it, so the lockout always ends a fixed
duration after it began.

Expiry is lazy: ``is_locked`` purges a record whose lockout has elapsed.
``purge_expired`` does the same in bulk from the background sweep, and
also drops below-threshold records that have seen no failure for a full
lockout duration, so failures spread over many addresses cannot grow the
map without bound. A failure on such an idle record starts a fresh count.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .masking import mask_email
from .window import Clock, StripedMap, now_ms

logger = logging.getLogger("gatekeeper.lockout")


@dataclass
class LoginAttemptRecord:
    failure_count: int = 0
    locked_since_ms: Optional[int] = None
    last_failure_ms: int = 0

    def lockout_elapsed(self, now: int, duration_ms: int) -> bool:
        return self.locked_since_ms is not None and now - self.locked_since_ms >= duration_ms

    def stale(self, now: int, duration_ms: int) -> bool:
        """Lockout over, or never locked and idle for *duration_ms*."""
        if self.locked_since_ms is not None:
            return self.lockout_elapsed(now, duration_ms)
        return now - self.last_failure_ms >= duration_ms


def normalize_identity(identity: str) -> str:
    return identity.strip().casefold()


class LoginAttemptTracker:
    def __init__(
        self,
        max_attempts: int = 5,
        lockout_minutes: int = 15,
        *,
        clock: Clock = now_ms,
        stripes: int = 64,
    ) -> None:
        self._max_attempts = max_attempts
        self._lockout_ms = lockout_minutes * 60 * 1000
        self._clock = clock
        self._records: StripedMap[str, LoginAttemptRecord] = StripedMap(stripes)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def record_success(self, identity: str) -> None:
        key = normalize_identity(identity)
        self._records.pop(key)
        logger.info("Successful login for %s", mask_email(key))

    def record_failure(self, identity: str) -> None:
        key = normalize_identity(identity)
        now = self._clock()
        with self._records.locked(key) as entries:
            record = entries.get(key)
            if record is None or record.stale(now, self._lockout_ms):
                record = LoginAttemptRecord()
                entries[key] = record
            record.failure_count += 1
            record.last_failure_ms = now
            newly_locked = record.failure_count >= self._max_attempts and record.locked_since_ms is None
            if newly_locked:
                record.locked_since_ms = now
            attempts = record.failure_count

        if newly_locked:
            logger.warning(
                "Account locked after %d failed attempts: %s",
                attempts, mask_email(key),
            )
        else:
            logger.warning(
                "Failed login attempt for %s. Attempts: %d/%d",
                mask_email(key), attempts, self._max_attempts,
            )

    def is_locked(self, identity: str) -> bool:
        key = normalize_identity(identity)
        now = self._clock()
        with self._records.locked(key) as entries:
            record = entries.get(key)
            if record is None or record.locked_since_ms is None:
                return False
            if not record.lockout_elapsed(now, self._lockout_ms):
                return True
            del entries[key]
        logger.info("Account lockout expired for %s", mask_email(key))
        return False

    def remaining_lockout_seconds(self, identity: str) -> int:
        key = normalize_identity(identity)
        now = self._clock()
        record = self._records.get(key)
        if record is None or record.locked_since_ms is None:
            return 0
        remaining_ms = record.locked_since_ms + self._lockout_ms - now
        return max(0, math.ceil(remaining_ms / 1000))

    def unlock(self, identity: str) -> bool:
        """Administrative reset. Returns True if a record was cleared."""
        key = normalize_identity(identity)
        cleared = self._records.pop(key) is not None
        if cleared:
            logger.info("Lockout cleared by administrator for %s", mask_email(key))
        return cleared

    def purge_expired(self) -> int:
        now = self._clock()
        removed = self._records.evict(lambda r: r.stale(now, self._lockout_ms))
        if removed:
            logger.debug("Purged %d expired lockout records", removed)
        return removed

    def locked_count(self) -> int:
        now = self._clock()
        return self._records.count(
            lambda r: r.locked_since_ms is not None and not r.lockout_elapsed(now, self._lockout_ms)
        )

    def tracked_count(self) -> int:
        return len(self._records)
