from __future__ import annotations

from ..extensions import db
from shoppos.time_utils import to_utc_z


class ScheduledJobRun(db.Model):
    """
    One row per (job, period) that has been claimed.

    The unique constraint is the at-most-once guarantee: a second process (or
    a restart inside the trigger window) fails to insert and skips the run.
    """
    __tablename__ = "scheduled_job_runs"
    __table_args__ = (
        db.UniqueConstraint("job_name", "period", name="uq_scheduled_job_runs_job_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(64), nullable=False)
    period = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="RUNNING")
    error = db.Column(db.Text, nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_name": self.job_name,
            "period": self.period,
            "status": self.status,
            "error": self.error,
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
