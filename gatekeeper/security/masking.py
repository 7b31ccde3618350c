"""Masking helpers for anything that identifies an account or a token in logs."""
from __future__ import annotations

from typing import Optional


def mask_email(email: Optional[str]) -> str:
    """
    Keep the first three characters of the local part plus the domain.

    ``john.doe@example.com`` -> ``joh***@example.com``
    ``al@example.com``       -> ``a***@example.com``
    """
    if not email or len(email) < 3:
        return "***"
    local, sep, domain = email.partition("@")
    if not sep or not local:
        return email[:3] + "***"
    prefix = local[:3] if len(local) > 3 else local[:1]
    return f"{prefix}***@{domain}"


def mask_token_id(token_id: Optional[str], keep: int = 8) -> str:
    if not token_id:
        return "***"
    return token_id[:keep] + "***"
