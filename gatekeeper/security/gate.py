"""
gate.py - Per-request gate pipeline
===================================
Decides, from in-memory state only, whether a request may reach its
handler.

Evaluation order (short-circuit on first rejection):
  1. Rate limiter        → RATE_LIMITED (429)
  2. Token validation    → UNAUTHORIZED (401)   [protected routes only]
  3. Revocation registry → UNAUTHORIZED (401)   [protected routes only]
  otherwise              → ADMITTED

Rate limiting always runs first so unauthenticated floods are throttled
before any signature verification is spent on them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, Mapping, Optional

from ..auth.core import TokenClaims
from .errors import GateError, RateLimitExceeded, TokenInvalid, TokenRevoked
from .rate_limiter import RateLimiter, RouteClass, classify_route, resolve_client_identity
from .revocation import TokenRevocationRegistry

logger = logging.getLogger("gatekeeper.gate")

TokenValidator = Callable[[str], TokenClaims]


class GateOutcome(str, Enum):
    ADMITTED = "admitted"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"


@dataclass
class GateDecision:
    outcome: GateOutcome
    client_identity: str
    route_class: RouteClass
    status_code: int = 200
    claims: Optional[TokenClaims] = None
    error: Optional[GateError] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def admitted(self) -> bool:
        return self.outcome is GateOutcome.ADMITTED

    def body(self) -> Dict[str, object]:
        return self.error.body() if self.error else {"status": "ok"}


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


class GatePipeline:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        revocations: TokenRevocationRegistry,
        validate_token: TokenValidator,
        *,
        sensitive_fragments: Iterable[str],
        public_paths: Iterable[str],
    ) -> None:
        self._rate_limiter = rate_limiter
        self._revocations = revocations
        self._validate_token = validate_token
        self._sensitive_fragments = tuple(sensitive_fragments)
        self._public_paths = frozenset(p.rstrip("/") or "/" for p in public_paths)

    def route_class(self, path: str) -> RouteClass:
        return classify_route(path, self._sensitive_fragments)

    def requires_auth(self, path: str, method: str = "GET") -> bool:
        if method.upper() == "OPTIONS":
            return False
        return (path.rstrip("/") or "/") not in self._public_paths

    def authenticate(self, authorization: Optional[str]) -> TokenClaims:
        """Steps 2 and 3: validate the bearer token, then check revocation."""
        token = extract_bearer(authorization)
        if token is None:
            raise TokenInvalid("Authentication required.")
        claims = self._validate_token(token)
        if self._revocations.is_revoked(claims.token_id):
            raise TokenRevoked()
        return claims

    def evaluate(
        self,
        path: str,
        method: str,
        headers: Mapping[str, str],
        client_host: Optional[str],
    ) -> GateDecision:
        lowered = {k.lower(): v for k, v in headers.items()}
        identity = resolve_client_identity(lowered, client_host)
        route_class = self.route_class(path)

        # ── Step 1: Rate limit ────────────────────────────────────────
        verdict = self._rate_limiter.check(identity, route_class)
        if not verdict.allowed:
            error = RateLimitExceeded(verdict.retry_after_seconds)
            logger.warning("Rate limited %s %s from %s", method, path, identity)
            return GateDecision(
                outcome=GateOutcome.RATE_LIMITED,
                client_identity=identity,
                route_class=route_class,
                status_code=error.status_code,
                error=error,
                headers=dict(error.headers),
            )

        if not self.requires_auth(path, method):
            return GateDecision(GateOutcome.ADMITTED, identity, route_class)

        # ── Steps 2-3: Token validation + revocation ─────────────────
        try:
            claims = self.authenticate(lowered.get("authorization"))
        except TokenInvalid as exc:
            logger.warning("Unauthorized %s %s from %s", method, path, identity)
            return GateDecision(
                outcome=GateOutcome.UNAUTHORIZED,
                client_identity=identity,
                route_class=route_class,
                status_code=exc.status_code,
                error=exc,
                headers=dict(exc.headers),
            )

        return GateDecision(GateOutcome.ADMITTED, identity, route_class, claims=claims)
