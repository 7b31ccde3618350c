"""
services.py - Process-lifetime security state
=============================================
Builds the rate limiter, lockout tracker, revocation registry and gate
pipeline once per application and owns their background sweeps.

Everything here is in memory only. A restart forgives every rate-limit
counter, every lockout and every revocation; revoked tokens become usable
again until their own expiry.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from ..auth.core import JwtTokenValidator
from ..config import Settings
from .gate import GatePipeline, TokenValidator
from .login_attempts import LoginAttemptTracker
from .rate_limiter import RateLimiter
from .revocation import TokenRevocationRegistry
from .scheduler import add_interval_job, build_scheduler
from .window import Clock, now_ms

logger = logging.getLogger("gatekeeper.security")


@dataclass
class SecurityServices:
    settings: Settings
    rate_limiter: RateLimiter
    login_attempts: LoginAttemptTracker
    revocations: TokenRevocationRegistry
    gate: GatePipeline
    scheduler: BackgroundScheduler = field(default_factory=build_scheduler)

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Started sweeps: %s", ", ".join(job.id for job in self.scheduler.get_jobs()))

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Stopped sweeps")

    def sweep_rate_state(self) -> None:
        self.rate_limiter.sweep()
        self.login_attempts.purge_expired()


def build_security(
    settings: Settings,
    *,
    clock: Clock = now_ms,
    validate_token: Optional[TokenValidator] = None,
) -> SecurityServices:
    """Construct a fresh, isolated set of registries for one app instance."""
    rate_limiter = RateLimiter(
        standard_limit=settings.standard_rate_limit,
        sensitive_limit=settings.sensitive_rate_limit,
        window_seconds=settings.rate_limit_window_seconds,
        clock=clock,
        stripes=settings.lock_stripes,
    )
    login_attempts = LoginAttemptTracker(
        max_attempts=settings.lockout_threshold,
        lockout_minutes=settings.lockout_duration_minutes,
        clock=clock,
        stripes=settings.lock_stripes,
    )
    revocations = TokenRevocationRegistry(clock=clock, stripes=settings.lock_stripes)
    gate = GatePipeline(
        rate_limiter,
        revocations,
        validate_token or JwtTokenValidator(settings.jwt_secret),
        sensitive_fragments=settings.sensitive_path_fragments,
        public_paths=settings.public_paths,
    )
    services = SecurityServices(
        settings=settings,
        rate_limiter=rate_limiter,
        login_attempts=login_attempts,
        revocations=revocations,
        gate=gate,
    )
    add_interval_job(
        services.scheduler,
        "rate-limit-sweep",
        settings.rate_limit_sweep_interval_seconds,
        services.sweep_rate_state,
    )
    add_interval_job(
        services.scheduler,
        "revocation-sweep",
        settings.revocation_sweep_interval_seconds,
        revocations.sweep,
    )
    logger.info(
        "Security services ready (standard=%d/%ds, sensitive=%d/%ds, lockout=%d fails/%d min)",
        settings.standard_rate_limit, settings.rate_limit_window_seconds,
        settings.sensitive_rate_limit, settings.rate_limit_window_seconds,
        settings.lockout_threshold, settings.lockout_duration_minutes,
    )
    return services
