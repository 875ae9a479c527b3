"""
ScanTrack — Production Scan Reconciliation
Shop-floor scan log.

Models:
    - ProductionDay: one calendar day of terminal activity
    - MachineDay: one machine's activity on a production day
    - OperatorSession: an operator signed in at a machine
    - ScanEvent: one barcode read during a session

Rows are appended by the scanner terminals and never updated. The only
deletion path is the retention sweep, which removes whole production days;
the ORM cascade takes the machine days, sessions and scans with them.
"""

from datetime import datetime, timezone

from scantrack.models import db


class ProductionDay(db.Model):
    __tablename__ = "production_days"

    id = db.Column(db.Integer, primary_key=True)
    production_date = db.Column(db.Date, nullable=False, unique=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    machine_days = db.relationship(
        "MachineDay", back_populates="production_day", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "production_date": self.production_date.isoformat() if self.production_date else None,
            "machine_count": len(self.machine_days),
        }

    def __repr__(self):
        return f"<ProductionDay {self.production_date}>"


class MachineDay(db.Model):
    __tablename__ = "machine_days"
    __table_args__ = (
        db.UniqueConstraint("production_day_id", "machine_id", name="uq_machine_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    production_day_id = db.Column(
        db.Integer, db.ForeignKey("production_days.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    machine_id = db.Column(
        db.Integer, db.ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    production_day = db.relationship("ProductionDay", back_populates="machine_days")
    machine = db.relationship("Machine")
    sessions = db.relationship(
        "OperatorSession", back_populates="machine_day",
        order_by="OperatorSession.signed_in_at",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<MachineDay day={self.production_day_id} machine={self.machine_id}>"


class OperatorSession(db.Model):
    """An operator working a machine from sign-in to sign-out (open while signed_out_at is null)."""

    __tablename__ = "operator_sessions"

    id = db.Column(db.Integer, primary_key=True)
    machine_day_id = db.Column(
        db.Integer, db.ForeignKey("machine_days.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    operator_id = db.Column(db.String(64), nullable=False, index=True)
    operator_name = db.Column(db.String(150), default="")
    signed_in_at = db.Column(db.DateTime(timezone=True), nullable=False)
    signed_out_at = db.Column(db.DateTime(timezone=True), nullable=True)

    machine_day = db.relationship("MachineDay", back_populates="sessions")
    scans = db.relationship(
        "ScanEvent", back_populates="session",
        order_by="ScanEvent.scanned_at",
        cascade="all, delete-orphan",
    )

    @property
    def is_open(self):
        return self.signed_out_at is None

    def to_dict(self):
        return {
            "id": self.id,
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "signed_in_at": self.signed_in_at.isoformat() if self.signed_in_at else None,
            "signed_out_at": self.signed_out_at.isoformat() if self.signed_out_at else None,
            "scan_count": len(self.scans),
        }

    def __repr__(self):
        return f"<OperatorSession {self.operator_id} machine_day={self.machine_day_id}>"


class ScanEvent(db.Model):
    __tablename__ = "scan_events"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.Integer, db.ForeignKey("operator_sessions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    barcode_id = db.Column(db.String(120), nullable=False, index=True)
    scanned_at = db.Column(db.DateTime(timezone=True), nullable=False)

    session = db.relationship("OperatorSession", back_populates="scans")

    def to_dict(self):
        return {
            "id": self.id,
            "barcode_id": self.barcode_id,
            "scanned_at": self.scanned_at.isoformat() if self.scanned_at else None,
            "session_id": self.session_id,
        }

    def __repr__(self):
        return f"<ScanEvent {self.barcode_id} @ {self.scanned_at}>"
