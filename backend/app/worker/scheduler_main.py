"""Dedicated APScheduler worker process running the event-bus sweep."""
from __future__ import annotations

import logging
import signal
import threading

from apscheduler.schedulers.background import BackgroundScheduler

from app.core.config import settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.services.job_runner import run_event_sweep


logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "event_sweep_job"


def main() -> None:
    configure_logging(log_level=settings.log_level, log_format=settings.log_format)
    logger.info("Scheduler worker starting (enabled=%s)", settings.scheduler_enabled)

    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)

    if settings.scheduler_enabled:
        register_jobs(scheduler)
        scheduler.start()
    else:
        logger.warning("Scheduler disabled via config; worker will idle")

    stop_event = threading.Event()

    def shutdown(signum, frame):  # pragma: no cover - signal handler
        logger.info("Scheduler worker shutting down (signal=%s)", signum)
        if scheduler.running:
            scheduler.shutdown(wait=False)
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        stop_event.wait()
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        shutdown(signal.SIGINT, None)


def register_jobs(scheduler: BackgroundScheduler) -> None:
    scheduler.add_job(
        _run_sweep_job,
        trigger="interval",
        seconds=settings.event_sweep_interval_seconds,
        id=SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        "Registered event sweep every %ss (batch=%s, lease=%ss)",
        settings.event_sweep_interval_seconds,
        settings.event_sweep_batch_size,
        settings.event_lease_seconds,
    )


def _run_sweep_job() -> None:
    session = SessionLocal()
    try:
        run_event_sweep(session)
    except Exception:  # pragma: no cover - keep the scheduler alive
        logger.exception("Event sweep job failed")
    finally:
        session.close()


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
