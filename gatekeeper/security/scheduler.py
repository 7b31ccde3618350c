"""
scheduler.py - Interval background jobs
=======================================
Housekeeping sweeps (counter eviction, lockout purge, revocation cleanup)
run as APScheduler interval jobs on a background thread. A failing run is
logged and the job simply waits for its next turn; it never propagates
into request handling.
"""
from __future__ import annotations

import logging
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger("gatekeeper.scheduler")


def logged_job(name: str, fn: Callable[[], object]) -> Callable[[], None]:
    """Wrap *fn* so an exception is logged instead of killing the job."""

    def run() -> None:
        try:
            fn()
        except Exception:
            logger.exception("Background task %s failed; retrying next interval", name)

    run.__name__ = f"{name}-job"
    return run


def build_scheduler() -> BackgroundScheduler:
    return BackgroundScheduler(
        timezone="UTC",
        job_defaults={"coalesce": True, "max_instances": 1},
    )


def add_interval_job(
    scheduler: BackgroundScheduler,
    name: str,
    interval_seconds: int,
    fn: Callable[[], object],
) -> None:
    scheduler.add_job(
        logged_job(name, fn),
        "interval",
        seconds=interval_seconds,
        id=name,
        name=name,
        replace_existing=True,
    )
    logger.debug("Scheduled %s every %ss", name, interval_seconds)
