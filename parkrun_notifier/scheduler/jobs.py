"""
parkrun_notifier/scheduler/jobs.py

APScheduler-based trigger for the results scan and the events catalogue sync.

Schedule (configured timezone, ``TZ``)
--------------------------------------
  results_scan            every 5 minutes 09:00-23:55 on
                          ``SCHEDULER_RESULTS_DAY_OF_WEEK`` (default every day)
  results_scan_christmas  same window on 25 December
  results_scan_new_year   same window on 1 January
  event_sync              08:00 every Saturday

The holiday jobs are only registered when the standard job does not already
run every day. Every job is single-instance and coalesced; overlapping
results scans are still safe because cursor advancement is conditional.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
It is started and shut down by the FastAPI ``lifespan`` in main.py.
"""

from __future__ import annotations

import logging

import requests
from apscheduler.schedulers.background import BackgroundScheduler

from db.session import get_session_factory
from parkrun_notifier.config import NotifierSettings, get_settings
from parkrun_notifier.pipeline import build_pipeline
from parkrun_notifier.services import EventCatalogSync
from parkrun_notifier.stores import SQLAlchemyEventCursorStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: results scan
# ---------------------------------------------------------------------------


def run_results_scan() -> None:
    """
    One pipeline pass over all due events. Never raises.
    """
    logger.info("Scheduler: results_scan starting")
    try:
        with requests.Session() as http_session:
            pipeline = build_pipeline(
                get_settings(),
                session_factory=get_session_factory(),
                http_session=http_session,
            )
            summary = pipeline.run()
    except Exception as exc:  # noqa: BLE001
        logger.error("Scheduler: results_scan failed: %s", exc, exc_info=True)
        return

    logger.info(
        "Scheduler: results_scan complete events=%d no_due_events=%s error=%s",
        len(summary.events),
        summary.no_due_events,
        summary.error,
    )


# ---------------------------------------------------------------------------
# Job: events catalogue sync
# ---------------------------------------------------------------------------


def run_event_sync() -> None:
    """
    Register newly listed events. Never raises.
    """
    logger.info("Scheduler: event_sync starting")
    try:
        settings = get_settings()
        with requests.Session() as http_session:
            sync = EventCatalogSync(
                store=SQLAlchemyEventCursorStore(session_factory=get_session_factory()),
                settings=settings.event_sync,
                site=settings.results_site,
                session=http_session,
            )
            summary = sync.sync()
    except Exception as exc:  # noqa: BLE001
        logger.error("Scheduler: event_sync failed: %s", exc, exc_info=True)
        return

    logger.info(
        "Scheduler: event_sync complete discovered=%d added=%d skipped=%d error=%s",
        summary.discovered,
        len(summary.added),
        summary.skipped,
        summary.error,
    )


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(settings: NotifierSettings | None = None) -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    settings = settings or get_settings()
    window = settings.scheduler
    scheduler = BackgroundScheduler(timezone=settings.pipeline.timezone)
    common = {
        "replace_existing": True,
        "max_instances": 1,
        "coalesce": True,
    }

    scheduler.add_job(
        run_results_scan,
        trigger="cron",
        day_of_week=window.results_day_of_week,
        hour=window.results_hours,
        minute=window.results_minute,
        id="results_scan",
        name="Results scan",
        misfire_grace_time=240,
        **common,
    )

    if window.results_day_of_week.strip() != "*":
        for job_id, name, month, day in (
            ("results_scan_christmas", "Results scan (Christmas Day)", 12, 25),
            ("results_scan_new_year", "Results scan (New Year's Day)", 1, 1),
        ):
            scheduler.add_job(
                run_results_scan,
                trigger="cron",
                month=month,
                day=day,
                hour=window.results_hours,
                minute=window.results_minute,
                id=job_id,
                name=name,
                misfire_grace_time=240,
                **common,
            )

    scheduler.add_job(
        run_event_sync,
        trigger="cron",
        day_of_week="sat",
        hour=8,
        minute=0,
        id="event_sync",
        name="Events catalogue sync",
        misfire_grace_time=3600,
        **common,
    )

    return scheduler
