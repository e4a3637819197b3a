"""
viwo.services.scheduler — Periodic Jobs
========================================

Every periodic job is a plain function of the wired
:class:`~viwo.wiring.Services`, listed once in :data:`SCHEDULE` as a
``(crontab, job_name)`` pair and registered on an APScheduler scheduler.
Jobs stay callable without the scheduler through :func:`run_job` (tests,
CLI, admin endpoints).

Schedule (UTC):

- ``0 0 * * *``   — daily reward distribution for the previous day
- ``0 */6 * * *`` — content quality refresh
- ``0 2 * * *``   — reputation refresh
- ``0 * * * *``   — stake unlock sweep
- ``30 0 * * *``  — stake yield accrual
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

if TYPE_CHECKING:
    from apscheduler.schedulers.base import BaseScheduler

    from viwo.wiring import Services

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------
def distribute_rewards_job(services: Services) -> dict[str, Any]:
    return services.distributor.run_daily_distribution().as_dict()


def refresh_quality_job(services: Services) -> dict[str, int]:
    return services.quality.refresh_recent()


def refresh_reputation_job(services: Services) -> dict[str, int]:
    return services.reputation.refresh_all()


def process_unlocks_job(services: Services) -> dict[str, int]:
    return services.staking.process_unlocks()


def accrue_stakes_job(services: Services) -> dict[str, int]:
    return services.staking.accrue_rewards()


JOBS: dict[str, Callable[[Services], Any]] = {
    "distribute_rewards": distribute_rewards_job,
    "refresh_quality": refresh_quality_job,
    "refresh_reputation": refresh_reputation_job,
    "process_unlocks": process_unlocks_job,
    "accrue_stakes": accrue_stakes_job,
}

SCHEDULE: list[tuple[str, str]] = [
    ("0 0 * * *", "distribute_rewards"),
    ("0 */6 * * *", "refresh_quality"),
    ("0 2 * * *", "refresh_reputation"),
    ("0 * * * *", "process_unlocks"),
    ("30 0 * * *", "accrue_stakes"),
]


def run_job(name: str, services: Services) -> Any:
    """Run one job by name and return its result.  Errors propagate."""
    try:
        job = JOBS[name]
    except KeyError:
        raise KeyError(f"Unknown job {name!r}; expected one of {sorted(JOBS)}") from None
    logger.info("Running job %s", name)
    result = job(services)
    logger.info("Job %s finished: %s", name, result)
    return result


def _run_guarded(name: str, services: Services) -> None:
    """Scheduler entry point: a failing run is logged, the schedule continues."""
    try:
        run_job(name, services)
    except Exception:
        logger.exception("Scheduled job %s failed", name, extra={"task": name})


# ---------------------------------------------------------------------------
# Scheduler construction
# ---------------------------------------------------------------------------
def build_scheduler(
    services: Services,
    *,
    blocking: bool = False,
    schedule: list[tuple[str, str]] | None = None,
) -> BaseScheduler:
    """Create (but do not start) a scheduler with every job registered."""
    scheduler: BaseScheduler = (
        BlockingScheduler(timezone="UTC") if blocking else BackgroundScheduler(timezone="UTC")
    )
    for expr, name in schedule or SCHEDULE:
        if name not in JOBS:
            raise KeyError(f"Unknown job {name!r} in schedule")
        scheduler.add_job(
            func=_run_guarded,
            trigger=CronTrigger.from_crontab(expr, timezone="UTC"),
            args=(name, services),
            id=name,
            name=name.replace("_", " ").title(),
            replace_existing=True,
            misfire_grace_time=300,
            coalesce=True,
            max_instances=1,
        )
    return scheduler


def get_scheduler_status(scheduler: BaseScheduler) -> dict[str, Any]:
    return {
        "running": scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": (
                    job.next_run_time.isoformat()
                    if getattr(job, "next_run_time", None) else None
                ),
                "trigger": str(job.trigger),
            }
            for job in scheduler.get_jobs()
        ],
    }
