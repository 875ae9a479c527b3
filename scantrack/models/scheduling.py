"""
Background job registry.

One ``scheduled_jobs`` row per registered job: the schedule its ticker runs
on, the enabled flag toggled from the operations API, and run bookkeeping.
"""

from scantrack.models import db
from scantrack.utils.helpers import isoformat, utcnow

SCHEDULE_TYPES = {"interval", "daily"}
RUN_STATUSES = {"success", "failed", "skipped"}


class ScheduledJob(db.Model):
    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="production_sync, tracking_retention")
    description = db.Column(db.String(500), default="")
    schedule_type = db.Column(db.String(30), default="interval", comment="interval, daily")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment='{"type": "interval", "seconds": N} or {"type": "daily", "hour": H}')
    is_enabled = db.Column(db.Boolean, default=True)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True, comment="success, failed, skipped")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True)
    last_error = db.Column(db.Text, nullable=True)
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    skipped_count = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    _PLAIN_FIELDS = (
        "id", "job_name", "description", "schedule_type", "schedule_config", "is_enabled",
        "last_run_status", "last_run_duration_ms", "last_run_result", "last_error",
        "run_count", "error_count", "skipped_count",
    )

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        """Book one execution outcome.

        A skipped run (the previous one still in flight) bumps
        ``skipped_count`` only; last_run_at keeps pointing at real work.
        """
        if status not in RUN_STATUSES:
            raise ValueError(f"Unknown run status: {status!r}")
        self.last_run_status = status
        if status == "skipped":
            self.skipped_count = (self.skipped_count or 0) + 1
            return

        self.run_count = (self.run_count or 0) + 1
        self.last_run_at = utcnow()
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        data = {name: getattr(self, name) for name in self._PLAIN_FIELDS}
        data.update(
            last_run_at=isoformat(self.last_run_at),
            created_at=isoformat(self.created_at),
            updated_at=isoformat(self.updated_at),
        )
        return data

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} {'on' if self.is_enabled else 'off'}>"
