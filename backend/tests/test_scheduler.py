"""
Monthly report scheduler: claims are persisted so a period is sent at most once.
"""

from datetime import datetime

import pytest

from shoppos.models import Sale, ScheduledJobRun
from shoppos.services import scheduler_service
from shoppos.services.scheduler_service import MONTHLY_REPORT_JOB


@pytest.fixture
def schedule(app, monkeypatch):
    monkeypatch.setitem(app.config, "MONTHLY_REPORT_DAY", 1)
    monkeypatch.setitem(app.config, "MONTHLY_REPORT_HOUR", 9)


class TestMonthlyReportJob:

    def test_period_sent_once(self, db_session, notifier, staff_user):
        db_session.add(Sale(
            user_id=staff_user.id, total_cents=2500, payment_method="cash",
            created_at=datetime(2026, 9, 14, 10, 0),
        ))
        db_session.commit()

        assert scheduler_service.run_monthly_report("2026-09") is True
        assert len(notifier.messages) == 1
        assert notifier.messages[0].startswith("Monthly report 2026-09")
        assert "Revenue: 25.00" in notifier.messages[0]

        assert scheduler_service.run_monthly_report("2026-09") is False
        assert len(notifier.messages) == 1

        run = db_session.query(ScheduledJobRun).one()
        assert run.job_name == MONTHLY_REPORT_JOB
        assert run.status == "DONE"
        assert run.completed_at is not None

    def test_not_due_before_trigger_hour(self, db_session, notifier, schedule):
        assert scheduler_service.run_monthly_report_if_due(datetime(2026, 10, 1, 8, 59)) is False
        assert notifier.messages == []
        assert db_session.query(ScheduledJobRun).count() == 0

    def test_due_fires_previous_month_once(self, db_session, notifier, schedule):
        assert scheduler_service.run_monthly_report_if_due(datetime(2026, 10, 1, 9, 0)) is True
        # A later poll in the same month, or after a restart, finds the claim
        assert scheduler_service.run_monthly_report_if_due(datetime(2026, 10, 3, 12, 0)) is False

        assert len(notifier.messages) == 1
        assert db_session.query(ScheduledJobRun).one().period == "2026-09"

    def test_january_reports_december(self, db_session, notifier, schedule):
        scheduler_service.run_monthly_report_if_due(datetime(2027, 1, 2, 0, 0))
        assert db_session.query(ScheduledJobRun).one().period == "2026-12"

    def test_failed_delivery_is_recorded_and_not_retried(self, db_session, notifier, monkeypatch):
        def boom(year, month):
            raise RuntimeError("report exploded")

        monkeypatch.setattr(scheduler_service, "send_monthly_report", boom)

        assert scheduler_service.run_monthly_report("2026-08") is True
        run = db_session.query(ScheduledJobRun).one()
        assert run.status == "FAILED"
        assert "report exploded" in run.error

        assert scheduler_service.run_monthly_report("2026-08") is False

    def test_is_due(self):
        assert scheduler_service.is_due(datetime(2026, 5, 1, 9, 0), day=1, hour=9)
        assert scheduler_service.is_due(datetime(2026, 5, 20, 0, 0), day=1, hour=9)
        assert not scheduler_service.is_due(datetime(2026, 5, 1, 8, 0), day=1, hour=9)
        assert not scheduler_service.is_due(datetime(2026, 5, 1, 23, 0), day=2, hour=9)
