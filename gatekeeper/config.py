from __future__ import annotations

import json
import sys
from functools import lru_cache
from typing import Annotated, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


_DEFAULT_JWT_SECRET = "change-me-in-production-use-long-random-string"

_DEFAULT_SENSITIVE_FRAGMENTS = ["/auth/login", "/auth/register", "/auth/reset-password"]
_DEFAULT_PUBLIC_PATHS = [
    "/",
    "/health",
    "/healthz",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/auth/login",
    "/auth/register",
    "/auth/forgot-password",
    "/auth/reset-password",
]


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./gatekeeper.db"
    log_sql: bool = False

    # Server
    environment: str = "development"
    log_level: str = "info"
    log_format: str = "json"  # json | text

    # Auth
    jwt_secret: str = _DEFAULT_JWT_SECRET
    jwt_expire_minutes: int = 480  # 8 hours
    registration_enabled: bool = True

    # Rate limiting (fixed window, per client identity)
    rate_limit_window_seconds: int = 60
    standard_rate_limit: int = 60
    sensitive_rate_limit: int = 5
    rate_limit_sweep_interval_seconds: int = 300
    sensitive_path_fragments: Annotated[List[str], NoDecode] = list(_DEFAULT_SENSITIVE_FRAGMENTS)
    public_paths: Annotated[List[str], NoDecode] = list(_DEFAULT_PUBLIC_PATHS)

    # Account lockout
    lockout_threshold: int = 5
    lockout_duration_minutes: int = 15

    # Token revocation
    revocation_sweep_interval_seconds: int = 3600

    # Concurrency
    lock_stripes: int = 64

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str, info) -> str:
        """Refuse to start in production with the default JWT secret."""
        env = info.data.get("environment", "development")
        if env != "development" and v == _DEFAULT_JWT_SECRET:
            print(
                "\nFATAL: GATEKEEPER_JWT_SECRET is set to the default value.\n"
                "   Set GATEKEEPER_JWT_SECRET to a strong random string before "
                "running in production.\n"
                "   Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\"\n",
                file=sys.stderr,
            )
            raise ValueError(
                "JWT secret must be changed from default in non-development environments. "
                "Set GATEKEEPER_JWT_SECRET env var."
            )
        return v

    @field_validator(
        "rate_limit_window_seconds",
        "standard_rate_limit",
        "sensitive_rate_limit",
        "rate_limit_sweep_interval_seconds",
        "lockout_threshold",
        "lockout_duration_minutes",
        "revocation_sweep_interval_seconds",
        "lock_stripes",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer, got {v}.")
        return v

    @field_validator("sensitive_path_fragments", "public_paths", mode="before")
    @classmethod
    def split_csv(cls, v):
        """Accept ``a,b,c`` as well as a JSON list from the environment."""
        if isinstance(v, str):
            text = v.strip()
            if text.startswith("["):
                return json.loads(text)
            return [part.strip() for part in text.split(",") if part.strip()]
        return v

    class Config:
        env_prefix = "GATEKEEPER_"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# Module-level singleton for convenience
settings = get_settings()
