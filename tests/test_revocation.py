"""
Tests for the revoked-token registry and the background job runner that
sweeps it.

Run with: pytest tests/test_revocation.py -v
"""
from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from gatekeeper.config import Settings
from gatekeeper.security.rate_limiter import RouteClass
from gatekeeper.security.revocation import TokenRevocationRegistry
from gatekeeper.security.scheduler import logged_job
from gatekeeper.security.services import build_security


@pytest.fixture
def registry(clock) -> TokenRevocationRegistry:
    return TokenRevocationRegistry(clock=clock)


# ---------------------------------------------------------------------------
# Revocation
# ---------------------------------------------------------------------------

def test_revoked_token_is_reported(registry, clock):
    registry.revoke("t1", clock() + 3_600_000)
    assert registry.is_revoked("t1") is True


def test_unknown_token_is_not_revoked(registry):
    assert registry.is_revoked("never-seen") is False


def test_already_expired_revocation_is_ignored(registry, clock):
    registry.revoke("t1", clock() - 1_000)
    assert registry.is_revoked("t1") is False
    assert registry.size() == 0


def test_lookup_drops_entry_once_expired(registry, clock):
    registry.revoke("t1", clock() + 10_000)
    assert registry.is_revoked("t1")
    clock.advance(seconds=11)
    assert registry.is_revoked("t1") is False
    assert registry.size() == 0


def test_revoke_is_idempotent_last_write_wins(registry, clock):
    registry.revoke("t1", clock() + 1_000)
    registry.revoke("t1", clock() + 60_000)
    assert registry.size() == 1
    clock.advance(seconds=5)
    assert registry.is_revoked("t1") is True


def test_sweep_removes_only_expired(registry, clock):
    registry.revoke("short", clock() + 1_000)
    registry.revoke("long", clock() + 3_600_000)
    clock.advance(seconds=2)
    assert registry.sweep() == 1
    assert registry.size() == 1
    assert registry.is_revoked("long")


def test_revoke_log_masks_token_id(registry, clock, caplog):
    with caplog.at_level(logging.INFO, logger="gatekeeper.revocation"):
        registry.revoke("abcdef0123456789deadbeef", clock() + 1_000)
    assert "abcdef0123456789deadbeef" not in caplog.text
    assert "abcdef01***" in caplog.text


# ---------------------------------------------------------------------------
# Sweep jobs
# ---------------------------------------------------------------------------

def test_failing_job_is_logged_not_raised(caplog):
    def boom():
        raise RuntimeError("sweep exploded")

    job = logged_job("boom", boom)
    with caplog.at_level(logging.ERROR, logger="gatekeeper.scheduler"):
        job()
    assert "boom" in caplog.text
    assert "sweep exploded" in caplog.text


def test_sweeps_are_interval_jobs(clock):
    security = build_security(
        Settings(rate_limit_sweep_interval_seconds=300, revocation_sweep_interval_seconds=3600),
        clock=clock,
    )
    jobs = {job.id: job for job in security.scheduler.get_jobs()}
    assert set(jobs) == {"rate-limit-sweep", "revocation-sweep"}
    assert jobs["rate-limit-sweep"].trigger.interval == timedelta(seconds=300)
    assert jobs["revocation-sweep"].trigger.interval == timedelta(hours=1)


def test_revocation_job_clears_expired_entries(clock):
    security = build_security(Settings(), clock=clock)
    security.revocations.revoke("short", clock() + 1_000)
    security.revocations.revoke("long", clock() + 3_600_000)
    clock.advance(seconds=2)

    security.scheduler.get_job("revocation-sweep").func()
    assert security.revocations.size() == 1


def test_rate_limit_job_purges_limiter_and_lockouts(clock):
    security = build_security(Settings(), clock=clock)
    security.rate_limiter.allow("10.0.0.1", RouteClass.STANDARD)
    for _ in range(5):
        security.login_attempts.record_failure("a@b.com")
    clock.advance(seconds=16 * 60)

    security.scheduler.get_job("rate-limit-sweep").func()
    assert security.rate_limiter.tracked_clients() == 0
    assert security.login_attempts.tracked_count() == 0


def test_start_and_stop_scheduler(clock):
    security = build_security(Settings(), clock=clock)
    security.start()
    try:
        assert security.scheduler.running
    finally:
        security.stop()
    assert not security.scheduler.running
    security.stop()  # second stop is a no-op
