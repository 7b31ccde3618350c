"""
Tests for environment-driven settings.

Run with: pytest tests/test_config.py -v
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from gatekeeper.config import Settings


def test_defaults_match_documented_limits():
    s = Settings()
    assert s.rate_limit_window_seconds == 60
    assert s.standard_rate_limit == 60
    assert s.sensitive_rate_limit == 5
    assert s.lockout_threshold == 5
    assert s.lockout_duration_minutes == 15
    assert s.revocation_sweep_interval_seconds == 3600
    assert "/auth/login" in s.sensitive_path_fragments


def test_production_refuses_default_jwt_secret():
    with pytest.raises(ValidationError):
        Settings(environment="production")


def test_production_accepts_custom_secret():
    s = Settings(environment="production", jwt_secret="a-long-random-production-secret")
    assert s.environment == "production"


@pytest.mark.parametrize("field", [
    "standard_rate_limit",
    "sensitive_rate_limit",
    "rate_limit_window_seconds",
    "lockout_threshold",
    "lock_stripes",
])
def test_limits_must_be_positive(field):
    with pytest.raises(ValidationError):
        Settings(**{field: 0})


def test_path_lists_from_comma_separated_env(monkeypatch):
    monkeypatch.setenv("GATEKEEPER_SENSITIVE_PATH_FRAGMENTS", "/auth/login, /auth/otp ,")
    s = Settings()
    assert s.sensitive_path_fragments == ["/auth/login", "/auth/otp"]


def test_path_lists_from_json_env(monkeypatch):
    monkeypatch.setenv("GATEKEEPER_PUBLIC_PATHS", '["/", "/status"]')
    s = Settings()
    assert s.public_paths == ["/", "/status"]


def test_env_overrides_limits(monkeypatch):
    monkeypatch.setenv("GATEKEEPER_SENSITIVE_RATE_LIMIT", "3")
    assert Settings().sensitive_rate_limit == 3
