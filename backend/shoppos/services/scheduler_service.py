# Overview: Persisted monthly report job and the background thread that polls it.

"""
Monthly report scheduler

WHY: The report for a month must go out once, even if the process is busy at
the trigger hour or restarts around it.

HOW: A run is claimed by inserting (job_name, period) into
scheduled_job_runs, which has a unique constraint. The claim is committed
before anything is sent, so delivery is at-most-once: a crash after the claim
skips that month rather than sending it twice. The job is due from the
configured day/hour of the month onward, so a late poll still fires.
"""

from __future__ import annotations

import atexit
import logging
import threading
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ScheduledJobRun
from .notification_service import notify_now
from .reporting_service import build_monthly_report, format_monthly_report, previous_month
from shoppos.time_utils import get_timezone, to_local, utcnow

log = logging.getLogger(__name__)

MONTHLY_REPORT_JOB = "monthly_report"


def is_due(now_local: datetime, *, day: int, hour: int) -> bool:
    return (now_local.day, now_local.hour) >= (day, hour)


def claim_run(job_name: str, period: str) -> ScheduledJobRun | None:
    """Insert and commit the claim row. None when the period is already claimed."""
    run = ScheduledJobRun(job_name=job_name, period=period, status="RUNNING", started_at=utcnow())
    db.session.add(run)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return None
    return run


def send_monthly_report(year: int, month: int) -> list[str]:
    chunks = format_monthly_report(build_monthly_report(year, month))
    for chunk in chunks:
        notify_now(chunk)
    return chunks


def run_monthly_report(period: str) -> bool:
    """
    Claim and send the report for period ('YYYY-MM').
    Returns False when the period was already claimed.
    """
    year, month = (int(part) for part in period.split("-"))
    run = claim_run(MONTHLY_REPORT_JOB, period)
    if run is None:
        log.info("Monthly report for %s already claimed, skipping", period)
        return False

    try:
        send_monthly_report(year, month)
    except Exception as exc:
        db.session.rollback()
        run.status = "FAILED"
        run.error = str(exc)[:2000]
        run.completed_at = utcnow()
        db.session.commit()
        log.exception("Monthly report for %s failed", period)
        return True

    run.status = "DONE"
    run.completed_at = utcnow()
    db.session.commit()
    log.info("Monthly report for %s sent", period)
    return True


def run_monthly_report_if_due(now: datetime | None = None) -> bool:
    """
    Fire the previous month's report if the trigger time has passed this month
    and that period has not been claimed yet. now is UTC-naive.
    """
    config = current_app.config
    now_local = to_local(now or utcnow(), get_timezone(config.get("BUSINESS_TIMEZONE")))
    if not is_due(now_local, day=config["MONTHLY_REPORT_DAY"], hour=config["MONTHLY_REPORT_HOUR"]):
        return False

    year, month = previous_month(now_local.date())
    period = f"{year}-{month:02d}"
    if db.session.query(ScheduledJobRun.id).filter_by(job_name=MONTHLY_REPORT_JOB, period=period).first():
        return False
    return run_monthly_report(period)


class MonthlyReportScheduler:
    """Daemon thread polling run_monthly_report_if_due inside an app context."""

    def __init__(self, app, interval_seconds: int):
        self.app = app
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="monthly-report", daemon=True)
        self._thread.start()
        log.info("Monthly report scheduler started (every %ss)", self.interval_seconds)

    def stop(self) -> None:
        self._stop.set()

    def _loop(self) -> None:
        while not self._stop.is_set():
            with self.app.app_context():
                try:
                    run_monthly_report_if_due()
                except Exception:
                    log.exception("Scheduler tick failed")
                finally:
                    db.session.remove()
            self._stop.wait(self.interval_seconds)


def init_scheduler(app) -> None:
    if not app.config.get("SCHEDULER_ENABLED"):
        return
    scheduler = MonthlyReportScheduler(app, app.config["SCHEDULER_INTERVAL_SECONDS"])
    app.extensions["monthly_report_scheduler"] = scheduler
    atexit.register(scheduler.stop)
    scheduler.start()
