from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import AfterValidator, BaseModel, Field
from sqlalchemy import select

from .core import (
    TokenClaims,
    burn_password_check,
    create_access_token,
    hash_password,
    verify_password,
)
from .dependencies import get_current_account, get_principal, get_security
from ..database import db_session
from ..models import Account, LoginHistory
from ..security.errors import AccountLocked, InvalidCredentials
from ..security.login_attempts import normalize_identity
from ..security.masking import mask_email
from ..security.services import SecurityServices

logger = logging.getLogger("gatekeeper.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


# ---------------------------------------------------------------------------
# Password strength
# ---------------------------------------------------------------------------

MIN_PASSWORD_LENGTH = 12
_SPECIAL_CHARS = re.compile(r"[@#$%^&+=!*()_\-.]")
_COMMON_PASSWORDS = {
    "password", "password123", "123456", "12345678", "123456789",
    "admin", "admin123", "qwerty", "letmein", "welcome",
    "monkey", "dragon", "master", "sunshine", "princess",
    "football", "iloveyou", "trustno1", "abc123", "starwars",
}


def _has_sequence(password: str) -> bool:
    """Three ascending consecutive digits or letters, e.g. 123 or abc."""
    lowered = password.lower()
    for a, b, c in zip(lowered, lowered[1:], lowered[2:]):
        same_kind = (a.isdigit() and b.isdigit() and c.isdigit()) or (
            a.isalpha() and b.isalpha() and c.isalpha()
        )
        if same_kind and ord(b) == ord(a) + 1 and ord(c) == ord(b) + 1:
            return True
    return False


def password_problem(password: str) -> Optional[str]:
    """Return why *password* is too weak, or None if it is acceptable."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
    if not re.search(r"[A-Z]", password):
        return "Password must contain an uppercase letter."
    if not re.search(r"[a-z]", password):
        return "Password must contain a lowercase letter."
    if not re.search(r"\d", password):
        return "Password must contain a digit."
    if not _SPECIAL_CHARS.search(password):
        return "Password must contain a special character (@#$%^&+=!*()_-.)."
    if password.lower() in _COMMON_PASSWORDS:
        return "Password is too common."
    if _has_sequence(password):
        return "Password must not contain simple sequences such as 123 or abc."
    return None


def _strong_password(v: str) -> str:
    problem = password_problem(v)
    if problem:
        raise ValueError(problem)
    return v


StrongPassword = Annotated[str, AfterValidator(_strong_password)]


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=256)
    password: str


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., min_length=3, max_length=256, pattern=r"^[^@\s]+@[^@\s]+$")
    password: StrongPassword


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: StrongPassword


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: str
    email: str
    name: str


class MeResponse(BaseModel):
    email: str
    name: str
    role: str
    last_login_at: Optional[datetime] = None
    login_count: int = 0


class StatusResponse(BaseModel):
    status: str = "ok"
    message: str


def _issue_token(security: SecurityServices, account: Account) -> TokenResponse:
    settings = security.settings
    token = create_access_token(
        subject=account.email,
        role=account.role,
        secret=settings.jwt_secret,
        expires_minutes=settings.jwt_expire_minutes,
    )
    return TokenResponse(
        access_token=token,
        expires_in=settings.jwt_expire_minutes * 60,
        role=account.role,
        email=account.email,
        name=account.name,
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@router.post("/register", response_model=TokenResponse, status_code=201)
def register(body: RegisterRequest, security: SecurityServices = Depends(get_security)) -> TokenResponse:
    if not security.settings.registration_enabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Public registration is disabled. Contact an administrator.",
        )
    email = normalize_identity(body.email)
    with db_session() as session:
        existing = session.execute(
            select(Account).where(Account.email == email)
        ).scalar_one_or_none()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="An account with this email already exists.",
            )
        account = Account(
            email=email,
            name=body.name,
            password_hash=hash_password(body.password),
            role="user",
            is_active=True,
        )
        session.add(account)
        session.flush()
        session.refresh(account)

    logger.info("Registered account %s", mask_email(email))
    return _issue_token(security, account)


# ---------------------------------------------------------------------------
# Login - lockout is consulted before credentials are checked
# ---------------------------------------------------------------------------

@router.post("/login", response_model=TokenResponse)
def login(
    request: Request,
    body: LoginRequest,
    security: SecurityServices = Depends(get_security),
) -> TokenResponse:
    email = normalize_identity(body.email)
    attempts = security.login_attempts

    if attempts.is_locked(email):
        raise AccountLocked(attempts.remaining_lockout_seconds(email))

    with db_session() as session:
        account = session.execute(
            select(Account).where(Account.email == email)
        ).scalar_one_or_none()

    # Unknown emails cost the same bcrypt work as real ones
    if account is None:
        burn_password_check(body.password)
        password_ok = False
    else:
        password_ok = verify_password(body.password, account.password_hash)

    if not password_ok or not account.is_active:
        attempts.record_failure(email)
        raise InvalidCredentials()

    attempts.record_success(email)

    with db_session() as session:
        row = session.get(Account, account.id)
        if row:
            row.last_login_at = datetime.now(timezone.utc)
            row.login_count = (row.login_count or 0) + 1
        session.add(LoginHistory(
            account_id=account.id,
            email=account.email,
            ip_address=getattr(request.state, "client_identity", None),
            user_agent=request.headers.get("user-agent", "")[:512],
        ))

    return _issue_token(security, account)


# ---------------------------------------------------------------------------
# Authenticated account operations
# ---------------------------------------------------------------------------

@router.post("/logout", response_model=StatusResponse)
def logout(
    claims: TokenClaims = Depends(get_principal),
    security: SecurityServices = Depends(get_security),
) -> StatusResponse:
    security.revocations.revoke(claims.token_id, claims.expires_at_ms)
    return StatusResponse(message="Logged out.")


@router.get("/me", response_model=MeResponse)
def me(current: Account = Depends(get_current_account)) -> MeResponse:
    return MeResponse(
        email=current.email,
        name=current.name,
        role=current.role,
        last_login_at=current.last_login_at,
        login_count=current.login_count,
    )


@router.post("/change-password", response_model=StatusResponse)
def change_password(
    body: ChangePasswordRequest,
    current: Account = Depends(get_current_account),
    claims: TokenClaims = Depends(get_principal),
    security: SecurityServices = Depends(get_security),
) -> StatusResponse:
    if not verify_password(body.current_password, current.password_hash):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail="Current password is incorrect.")
    with db_session() as session:
        row = session.get(Account, current.id)
        if row:
            row.password_hash = hash_password(body.new_password)

    # Only the presenting token is revoked; other tokens of this account
    # stay valid until they expire.
    security.revocations.revoke(claims.token_id, claims.expires_at_ms)
    logger.info("Password changed for %s", mask_email(current.email))
    return StatusResponse(message="Password changed. Please log in again.")


@router.delete("/me", status_code=204)
def delete_account(
    current: Account = Depends(get_current_account),
    claims: TokenClaims = Depends(get_principal),
    security: SecurityServices = Depends(get_security),
) -> Response:
    with db_session() as session:
        row = session.get(Account, current.id)
        if row:
            # Soft delete keeps the login history intact
            row.is_active = False
    security.revocations.revoke(claims.token_id, claims.expires_at_ms)
    logger.info("Account deactivated: %s", mask_email(current.email))
    return Response(status_code=204)
