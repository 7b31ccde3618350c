from __future__ import annotations

import logging
import os

from sqlalchemy import select

from .core import hash_password
from ..database import db_session
from ..models import Account
from ..security.masking import mask_email

logger = logging.getLogger("gatekeeper.seed")

_DEFAULT_PASSWORD = "Ch4nge-Me-Now!"


def seed_admin(environment: str = "development") -> None:
    """
    Create a default admin account on first startup if no accounts exist.
    Credentials are read from environment variables so they can be
    overridden before deployment.

    Defaults (for local dev only - change before production):
      GATEKEEPER_ADMIN_EMAIL    = admin@gatekeeper.local
      GATEKEEPER_ADMIN_PASSWORD = Ch4nge-Me-Now!
      GATEKEEPER_ADMIN_NAME     = Gatekeeper Admin
    """
    email    = os.getenv("GATEKEEPER_ADMIN_EMAIL",    "admin@gatekeeper.local").strip().casefold()
    password = os.getenv("GATEKEEPER_ADMIN_PASSWORD", _DEFAULT_PASSWORD)
    name     = os.getenv("GATEKEEPER_ADMIN_NAME",     "Gatekeeper Admin")

    with db_session() as session:
        existing = session.execute(select(Account).limit(1)).scalar_one_or_none()
        if existing:
            return  # Accounts already seeded - don't overwrite

        if password == _DEFAULT_PASSWORD:
            logger.warning(
                "Seeding admin with the DEFAULT password. "
                "Set GATEKEEPER_ADMIN_PASSWORD before deploying to production."
            )
            if environment != "development":
                logger.error(
                    "Refusing to seed default password in non-development environment (%s).",
                    environment,
                )
                return

        session.add(Account(
            email=email,
            name=name,
            password_hash=hash_password(password),
            role="admin",
            is_active=True,
        ))
        logger.info("Default admin created: %s", mask_email(email))
