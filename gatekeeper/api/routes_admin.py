from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..auth.dependencies import get_security, require_admin
from ..models import Account
from ..security.services import SecurityServices

router = APIRouter(prefix="/admin", tags=["admin"])


class SecurityStatus(BaseModel):
    tracked_clients: int
    tracked_accounts: int
    locked_accounts: int
    revoked_tokens: int
    standard_rate_limit: int
    sensitive_rate_limit: int
    rate_limit_window_seconds: int
    lockout_threshold: int
    lockout_duration_minutes: int


class UnlockResult(BaseModel):
    unlocked: bool


@router.get("/security", response_model=SecurityStatus)
def security_status(
    _admin: Account = Depends(require_admin),
    security: SecurityServices = Depends(get_security),
) -> SecurityStatus:
    """Sizes of the in-memory registries plus the limits they enforce."""
    settings = security.settings
    return SecurityStatus(
        tracked_clients=security.rate_limiter.tracked_clients(),
        tracked_accounts=security.login_attempts.tracked_count(),
        locked_accounts=security.login_attempts.locked_count(),
        revoked_tokens=security.revocations.size(),
        standard_rate_limit=settings.standard_rate_limit,
        sensitive_rate_limit=settings.sensitive_rate_limit,
        rate_limit_window_seconds=settings.rate_limit_window_seconds,
        lockout_threshold=settings.lockout_threshold,
        lockout_duration_minutes=settings.lockout_duration_minutes,
    )


@router.post("/accounts/{email}/unlock", response_model=UnlockResult)
def unlock_account(
    email: str,
    _admin: Account = Depends(require_admin),
    security: SecurityServices = Depends(get_security),
) -> UnlockResult:
    """Clear an account's failure count and any active lockout."""
    if not security.login_attempts.unlock(email):
        raise HTTPException(status_code=404, detail="No failed attempts recorded for this account.")
    return UnlockResult(unlocked=True)
