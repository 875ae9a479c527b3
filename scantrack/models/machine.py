"""
ScanTrack — Production Scan Reconciliation
Machine master data.

Models:
    - Machine: a shop-floor station with a scanner terminal attached
"""

from datetime import datetime, timezone

from scantrack.models import db


class Machine(db.Model):
    """Shop-floor machine. Referenced by operations and by the scan log."""

    __tablename__ = "machines"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    serial_number = db.Column(db.String(100), nullable=True, unique=True)
    machine_type = db.Column(db.String(100), nullable=True, comment="e.g. overlock, flatlock, single_needle")
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "serial_number": self.serial_number,
            "machine_type": self.machine_type,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Machine {self.id}: {self.name}>"
