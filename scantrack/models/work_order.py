"""
ScanTrack — Production Scan Reconciliation
Work order domain model.

Models:
    - WorkOrder: a manufacturing job for N units through ordered operations
    - WorkOrderOperation: one production step with its assigned machines
    - work_order_operation_machines: secondary machine assignments

Work orders are authored upstream; the sync engine reads quantity,
operations and status, and writes status, timeline and the completion
snapshot.
"""

from datetime import datetime, timezone

from scantrack.models import db


# ── Constants ────────────────────────────────────────────────────────────────

WORK_ORDER_STATUSES = {
    "pending", "planned", "ready", "scheduled", "in_progress",
    "paused", "completed", "cancelled", "delayed",
}
# Orders the sync tick reconciles
SYNC_ELIGIBLE_STATUSES = ("ready", "scheduled", "in_progress", "paused")
# Orders whose status the sync never changes
FINAL_STATUSES = {"completed", "cancelled"}

OPERATION_STATUSES = ("pending", "in_progress", "completed")

PRIORITIES = {"low", "medium", "high", "urgent"}


work_order_operation_machines = db.Table(
    "work_order_operation_machines",
    db.Column("operation_id", db.Integer,
              db.ForeignKey("work_order_operations.id", ondelete="CASCADE"), primary_key=True),
    db.Column("machine_id", db.Integer,
              db.ForeignKey("machines.id", ondelete="CASCADE"), primary_key=True),
)


class WorkOrder(db.Model):
    """
    Manufacturing job for ``quantity`` units of one product.

    ``barcode_key`` is the short identifier printed into every unit barcode
    (``<barcode_key>-UUU-OO-CCCC``); ``work_order_number`` is the full
    business number shown to people.
    """

    __tablename__ = "work_orders"

    id = db.Column(db.Integer, primary_key=True)
    work_order_number = db.Column(db.String(60), nullable=False, unique=True)
    barcode_key = db.Column(db.String(40), nullable=False, unique=True, index=True,
                            comment="Key embedded in unit barcodes, [A-Z0-9-]+")
    product_name = db.Column(db.String(200), default="")
    quantity = db.Column(db.Integer, nullable=False)
    priority = db.Column(db.String(20), default="medium")
    status = db.Column(db.String(30), default="pending", index=True)

    # Timeline
    planned_start_at = db.Column(db.DateTime(timezone=True), nullable=True)
    planned_end_at = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_start_at = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    operations = db.relationship(
        "WorkOrderOperation", back_populates="work_order",
        order_by="WorkOrderOperation.sequence",
        cascade="all, delete-orphan",
    )
    completion = db.relationship(
        "CompletionSnapshot", back_populates="work_order",
        uselist=False, cascade="all, delete-orphan",
    )

    def to_dict(self, include_operations=False):
        d = {
            "id": self.id,
            "work_order_number": self.work_order_number,
            "barcode_key": self.barcode_key,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "priority": self.priority,
            "status": self.status,
            "timeline": {
                "planned_start_at": self.planned_start_at.isoformat() if self.planned_start_at else None,
                "planned_end_at": self.planned_end_at.isoformat() if self.planned_end_at else None,
                "actual_start_at": self.actual_start_at.isoformat() if self.actual_start_at else None,
                "actual_end_at": self.actual_end_at.isoformat() if self.actual_end_at else None,
            },
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_operations:
            d["operations"] = [op.to_dict() for op in self.operations]
        return d

    def __repr__(self):
        return f"<WorkOrder {self.work_order_number} [{self.status}]>"


class WorkOrderOperation(db.Model):
    """One production step of a work order (1-based ``sequence``)."""

    __tablename__ = "work_order_operations"
    __table_args__ = (
        db.UniqueConstraint("work_order_id", "sequence", name="uq_wo_operation_sequence"),
    )

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(
        db.Integer, db.ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    sequence = db.Column(db.Integer, nullable=False, comment="1-based position, matches OO in barcodes")
    operation_type = db.Column(db.String(100), default="")
    machine_type = db.Column(db.String(100), default="")
    primary_machine_id = db.Column(
        db.Integer, db.ForeignKey("machines.id", ondelete="SET NULL"), nullable=True,
    )
    estimated_time_seconds = db.Column(db.Float, default=0)
    planned_time_seconds = db.Column(db.Float, default=0)
    status = db.Column(db.String(20), default="pending")
    notes = db.Column(db.Text, default="")

    work_order = db.relationship("WorkOrder", back_populates="operations")
    primary_machine = db.relationship("Machine", foreign_keys=[primary_machine_id])
    secondary_machines = db.relationship("Machine", secondary=work_order_operation_machines)

    @property
    def assigned_machines(self):
        """Primary machine first, then secondary machines, without duplicates."""
        machines = []
        if self.primary_machine is not None:
            machines.append(self.primary_machine)
        for m in self.secondary_machines:
            if m not in machines:
                machines.append(m)
        return machines

    def to_dict(self):
        return {
            "id": self.id,
            "sequence": self.sequence,
            "operation_type": self.operation_type,
            "machine_type": self.machine_type,
            "primary_machine_id": self.primary_machine_id,
            "assigned_machines": [
                {"machine_id": m.id, "machine_name": m.name, "machine_serial": m.serial_number}
                for m in self.assigned_machines
            ],
            "estimated_time_seconds": self.estimated_time_seconds,
            "planned_time_seconds": self.planned_time_seconds,
            "status": self.status,
        }

    def __repr__(self):
        return f"<WorkOrderOperation {self.work_order_id}#{self.sequence} {self.operation_type}>"
