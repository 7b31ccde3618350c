"""
errors.py - Rejection taxonomy for the request gate
====================================================
Every error here is terminal for the request that raised it: nothing is
retried internally. Each one maps onto a fixed-shape JSON body
``{"status": "error", "message": ...}`` and an HTTP status code.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Optional


class GateError(Exception):
    """Base class for every rejection the gate or the auth endpoints emit."""

    status_code: int = 400
    message: str = "Request rejected."

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None) -> None:
        self.message = message or self.message
        self.headers = headers or {}
        super().__init__(self.message)

    def body(self) -> Dict[str, Any]:
        return {"status": "error", "message": self.message}


class RateLimitExceeded(GateError):
    status_code = 429
    message = "Too many requests. Please try again later."

    def __init__(self, retry_after_seconds: int = 0) -> None:
        headers = {"Retry-After": str(retry_after_seconds)} if retry_after_seconds > 0 else None
        super().__init__(headers=headers)
        self.retry_after_seconds = retry_after_seconds


class AccountLocked(GateError):
    status_code = 401

    def __init__(self, remaining_seconds: int) -> None:
        self.remaining_seconds = max(0, remaining_seconds)
        self.remaining_minutes = max(1, math.ceil(self.remaining_seconds / 60))
        super().__init__(
            "Account temporarily locked due to too many failed login attempts. "
            f"Please try again in {self.remaining_minutes} minute(s)."
        )

    def body(self) -> Dict[str, Any]:
        data = super().body()
        data["retry_after_minutes"] = self.remaining_minutes
        return data


class TokenInvalid(GateError):
    status_code = 401
    message = "Invalid or expired token."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class TokenRevoked(TokenInvalid):
    """Reported exactly like TokenInvalid so callers cannot tell the two apart."""

    def __init__(self) -> None:
        super().__init__(TokenInvalid.message)


class InvalidCredentials(GateError):
    status_code = 401
    message = "Invalid credentials."

    def __init__(self) -> None:
        super().__init__(headers={"WWW-Authenticate": "Bearer"})
