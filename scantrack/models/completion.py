"""
ScanTrack — Production Scan Reconciliation
Persisted completion state per work order.

Models:
    - CompletionSnapshot: the reconciled view of one work order's scan log
    - InvalidScanFingerprint: invalid scans already counted for a work order

Only the snapshot writer mutates these rows. The snapshot is created by
the first sync that finds scans for the order and is never deleted while
the work order exists.
"""

from datetime import datetime, timezone

from scantrack.models import db
from scantrack.utils.helpers import isoformat


class CompletionSnapshot(db.Model):
    """
    Completion counters, operator metrics and invalid-scan audit for one order.

    ``overall_completed_quantity`` is a high-water mark: later syncs only
    raise it. ``invalid_scans`` keeps the latest entries only, while
    ``invalid_scans_count`` is the exact running total.
    """

    __tablename__ = "completion_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(
        db.Integer, db.ForeignKey("work_orders.id", ondelete="CASCADE"),
        nullable=False, unique=True, index=True,
    )

    overall_completed_quantity = db.Column(db.Integer, default=0)
    overall_completion_percentage = db.Column(db.Float, default=0.0)

    operation_completion = db.Column(db.JSON, default=list)
    operator_details = db.Column(db.JSON, default=list)
    efficiency_metrics = db.Column(db.JSON, default=list)
    time_metrics = db.Column(db.JSON, default=list)

    invalid_scans = db.Column(db.JSON, default=list, comment="Latest invalid scans, newest first")
    invalid_scans_count = db.Column(db.Integer, default=0)

    last_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    work_order = db.relationship("WorkOrder", back_populates="completion")

    def to_dict(self, include_details=True):
        d = {
            "id": self.id,
            "work_order_id": self.work_order_id,
            "overall_completed_quantity": self.overall_completed_quantity or 0,
            "overall_completion_percentage": self.overall_completion_percentage or 0.0,
            "invalid_scans_count": self.invalid_scans_count or 0,
            "last_synced_at": isoformat(self.last_synced_at),
        }
        if include_details:
            d.update({
                "operation_completion": self.operation_completion or [],
                "operator_details": self.operator_details or [],
                "efficiency_metrics": self.efficiency_metrics or [],
                "time_metrics": self.time_metrics or [],
                "invalid_scans": self.invalid_scans or [],
            })
        return d

    def __repr__(self):
        return (
            f"<CompletionSnapshot wo={self.work_order_id} "
            f"{self.overall_completed_quantity} ({self.overall_completion_percentage}%)>"
        )


class InvalidScanFingerprint(db.Model):
    """One invalid scan that has been added to a work order's running count."""

    __tablename__ = "invalid_scan_fingerprints"
    __table_args__ = (
        db.UniqueConstraint("work_order_id", "barcode_id", "scanned_at", name="uq_invalid_scan_fingerprint"),
    )

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(
        db.Integer, db.ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    barcode_id = db.Column(db.String(120), nullable=False)
    scanned_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    reason = db.Column(db.String(30), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<InvalidScanFingerprint wo={self.work_order_id} {self.barcode_id} [{self.reason}]>"
