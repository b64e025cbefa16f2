"""Background scheduling for the refresh-token retention sweep (APScheduler)."""

from __future__ import annotations

import atexit
import logging

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import Flask

from tokenvault.services._shared.errors import ConfigurationError
from tokenvault.services.sessions import SweepReport, build_sweeper

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "refresh-token-sweep"
SCHEDULER_KEY = "token_scheduler"


def run_sweep_job(app: Flask) -> SweepReport:
    """Run one retention sweep inside ``app``'s context.

    The sweeper already swallows and logs its own failures; this wrapper only
    provides the application context the SQL store needs.
    """
    with app.app_context():
        return build_sweeper(app).run()


def _on_job_error(event: JobExecutionEvent) -> None:
    logger.error(
        "scheduled job crashed: %s",
        event.exception,
        extra={"job_id": event.job_id},
    )


def build_trigger(cron: str) -> CronTrigger:
    """Parse a five-field crontab expression in UTC.

    :raises ConfigurationError: When the expression is malformed.
    """
    try:
        return CronTrigger.from_crontab(cron, timezone="UTC")
    except ValueError as exc:
        raise ConfigurationError(f"Invalid TOKEN_SWEEP_CRON {cron!r}: {exc}") from exc


def init_scheduler(app: Flask) -> BackgroundScheduler | None:
    """Register the periodic sweep and start a background scheduler.

    Parameters
    ----------
    app: flask.Flask
        Application whose config drives the schedule.

    Returns
    -------
    BackgroundScheduler | None
        The running scheduler, or ``None`` when ``TOKEN_SWEEP_ENABLED`` is off
        or the app is in testing mode.

    Notes
    -----
    ``coalesce`` folds missed runs into one and ``max_instances=1`` keeps two
    sweeps from overlapping. Each worker process gets its own scheduler; the
    sweep is idempotent so duplicate runs only cost a query.
    """
    if app.config.get("TESTING") or not app.config.get("TOKEN_SWEEP_ENABLED", True):
        logger.info("token sweep scheduler disabled")
        return None

    trigger = build_trigger(str(app.config.get("TOKEN_SWEEP_CRON", "0 3 * * *")))

    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60 * 60,  # 1 hour grace period
        },
    )
    scheduler.add_job(
        run_sweep_job,
        trigger=trigger,
        args=[app],
        id=SWEEP_JOB_ID,
        name="Refresh token retention sweep",
        replace_existing=True,
    )
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.start()
    app.extensions[SCHEDULER_KEY] = scheduler
    atexit.register(shutdown_scheduler, app)

    job = scheduler.get_job(SWEEP_JOB_ID)
    logger.info("token sweep scheduled for %s", getattr(job, "next_run_time", None))
    return scheduler


def shutdown_scheduler(app: Flask) -> None:
    """Stop the scheduler registered on ``app`` (no-op when absent)."""
    scheduler: BackgroundScheduler | None = app.extensions.pop(SCHEDULER_KEY, None)
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)


__all__ = ["init_scheduler", "shutdown_scheduler", "run_sweep_job", "build_trigger"]
