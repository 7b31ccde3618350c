"""
revocation.py - Revoked-token registry
======================================
Holds the ids (``jti``) of tokens that were explicitly revoked before
their natural expiry: logout, password change, account deletion. An
entry is only useful until the token would have expired anyway, so
lookups drop expired entries on sight and a periodic sweep clears the
rest.

Revoking every token of one account is not supported: that needs an
index from account to token ids which this registry does not keep.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from .masking import mask_token_id
from .window import Clock, StripedMap, now_ms

logger = logging.getLogger("gatekeeper.revocation")


class TokenRevocationRegistry:
    def __init__(self, *, clock: Clock = now_ms, stripes: int = 64) -> None:
        self._clock = clock
        self._revoked: StripedMap[str, int] = StripedMap(stripes)

    def revoke(self, token_id: str, expires_at_ms: int) -> None:
        self._revoked.put(token_id, expires_at_ms)
        logger.info(
            "Token revoked: %s (expires at %s)",
            mask_token_id(token_id),
            datetime.fromtimestamp(expires_at_ms / 1000, tz=timezone.utc).isoformat(),
        )

    def is_revoked(self, token_id: str) -> bool:
        now = self._clock()
        with self._revoked.locked(token_id) as entries:
            expires_at = entries.get(token_id)
            if expires_at is None:
                return False
            if expires_at < now:
                del entries[token_id]
                return False
            return True

    def sweep(self) -> int:
        now = self._clock()
        before = len(self._revoked)
        removed = self._revoked.evict(lambda expires_at: expires_at < now)
        if removed:
            logger.info(
                "Cleaned up %d expired tokens from revocation registry. Remaining: %d",
                removed, max(0, before - removed),
            )
        return removed

    def size(self) -> int:
        return len(self._revoked)
