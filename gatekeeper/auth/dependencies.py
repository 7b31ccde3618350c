from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select

from .core import TokenClaims
from ..database import db_session
from ..models import Account
from ..security.errors import TokenInvalid
from ..security.services import SecurityServices


def get_security(request: Request) -> SecurityServices:
    return request.app.state.security


# ---------------------------------------------------------------------------
# Resolve the caller from the claims the gate attached
# ---------------------------------------------------------------------------

def get_principal(request: Request) -> TokenClaims:
    """
    Token claims validated by GateMiddleware. Public routes have none, so
    a handler that depends on this on a public path still gets a 401.
    """
    claims = getattr(request.state, "principal", None)
    if claims is None:
        raise TokenInvalid("Authentication required.")
    return claims


def get_current_account(claims: TokenClaims = Depends(get_principal)) -> Account:
    with db_session() as session:
        account = session.execute(
            select(Account).where(Account.email == claims.subject)
        ).scalar_one_or_none()
    if not account or not account.is_active:
        raise TokenInvalid("Account not found or inactive.")
    return account


# ---------------------------------------------------------------------------
# Role guards
# ---------------------------------------------------------------------------

def require_admin(current: Account = Depends(get_current_account)) -> Account:
    if current.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Admin access required.")
    return current
