from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import bcrypt
from jose import JWTError, jwt

from ..security.errors import TokenInvalid

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password(uuid.uuid4().hex)


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt verification when there is no account to check against."""
    verify_password(plain, _dummy_hash())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    """What the gate needs from a validated token."""

    subject: str          # account email
    token_id: str         # jti, the revocation key
    expires_at_ms: int
    role: str = "user"


def create_access_token(
    subject: str,
    role: str,
    secret: str,
    expires_minutes: int,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "jti": uuid.uuid4().hex,
        "exp": now + timedelta(minutes=expires_minutes),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


class JwtTokenValidator:
    """Signature + expiry check; raises TokenInvalid on any failure."""

    def __init__(self, secret: str, algorithm: str = ALGORITHM) -> None:
        self._secret = secret
        self._algorithm = algorithm

    def __call__(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError:
            raise TokenInvalid()

        subject = payload.get("sub")
        token_id = payload.get("jti")
        exp = payload.get("exp")
        if not subject or not token_id or not isinstance(exp, (int, float)):
            raise TokenInvalid()
        return TokenClaims(
            subject=subject,
            token_id=token_id,
            expires_at_ms=int(exp * 1000),
            role=payload.get("role", "user"),
        )
