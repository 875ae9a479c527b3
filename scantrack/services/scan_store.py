"""
ScanTrack — Production Scan Reconciliation
Scan Store access.

Read side (used by the sync engine):
    - scans_for_key(key): every scan whose barcode starts with ``<key>-``,
      flattened into immutable ScanRecord rows with machine/operator/session
      context attached and timestamps normalised to UTC.

Terminal side (used by terminals, seeding and tests):
    - sign_in / record_scan / sign_out

Retention side:
    - delete_days_before(cutoff): drop whole production days
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from scantrack.models import db
from scantrack.models.machine import Machine
from scantrack.models.tracking import MachineDay, OperatorSession, ProductionDay, ScanEvent
from scantrack.utils.helpers import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanRecord:
    """One scan event as seen by the sync engine."""
    scan_id: int
    barcode_id: str
    scanned_at: datetime
    machine_id: int
    machine_name: str
    operator_id: str
    operator_name: str
    session_id: int
    session_signed_in_at: datetime
    session_signed_out_at: datetime | None
    production_date: date


# ═════════════════════════════════════════════════════════════════════════════
# Read side
# ═════════════════════════════════════════════════════════════════════════════


def scans_for_key(key: str) -> list[ScanRecord]:
    """Return every scan whose barcode starts with ``<key>-``, oldest first.

    Barcodes belonging to a longer hyphenated key (``WO1-A-...`` for key
    ``WO1``) are included; the validator drops them after parsing.
    """
    prefix = f"{key}-"
    rows = (
        db.session.query(
            ScanEvent.id,
            ScanEvent.barcode_id,
            ScanEvent.scanned_at,
            OperatorSession.id.label("session_id"),
            OperatorSession.operator_id,
            OperatorSession.operator_name,
            OperatorSession.signed_in_at,
            OperatorSession.signed_out_at,
            Machine.id.label("machine_id"),
            Machine.name.label("machine_name"),
            ProductionDay.production_date,
        )
        .join(OperatorSession, ScanEvent.session_id == OperatorSession.id)
        .join(MachineDay, OperatorSession.machine_day_id == MachineDay.id)
        .join(Machine, MachineDay.machine_id == Machine.id)
        .join(ProductionDay, MachineDay.production_day_id == ProductionDay.id)
        .filter(ScanEvent.barcode_id.like(f"{prefix}%"))
        .order_by(ScanEvent.scanned_at, ScanEvent.id)
        .all()
    )
    records = []
    for r in rows:
        # LIKE is case-insensitive on SQLite
        if not r.barcode_id.startswith(prefix):
            continue
        records.append(ScanRecord(
            scan_id=r.id,
            barcode_id=r.barcode_id,
            scanned_at=as_utc(r.scanned_at),
            machine_id=r.machine_id,
            machine_name=r.machine_name or "",
            operator_id=r.operator_id,
            operator_name=r.operator_name or "",
            session_id=r.session_id,
            session_signed_in_at=as_utc(r.signed_in_at),
            session_signed_out_at=as_utc(r.signed_out_at),
            production_date=r.production_date,
        ))
    return records


# ═════════════════════════════════════════════════════════════════════════════
# Terminal side
# ═════════════════════════════════════════════════════════════════════════════


def _get_or_create_machine_day(machine_id: int, production_date: date) -> MachineDay:
    day = ProductionDay.query.filter_by(production_date=production_date).first()
    if day is None:
        day = ProductionDay(production_date=production_date)
        db.session.add(day)
        db.session.flush()
    machine_day = MachineDay.query.filter_by(production_day_id=day.id, machine_id=machine_id).first()
    if machine_day is None:
        machine_day = MachineDay(production_day_id=day.id, machine_id=machine_id)
        db.session.add(machine_day)
        db.session.flush()
    return machine_day


def sign_in(machine_id: int, operator_id: str, signed_in_at: datetime, operator_name: str = "") -> OperatorSession:
    """Open an operator session on ``machine_id``; the production day is the sign-in date."""
    machine_day = _get_or_create_machine_day(machine_id, signed_in_at.date())
    session = OperatorSession(
        machine_day_id=machine_day.id,
        operator_id=operator_id,
        operator_name=operator_name,
        signed_in_at=signed_in_at,
    )
    db.session.add(session)
    db.session.flush()
    return session


def record_scan(session: OperatorSession, barcode_id: str, scanned_at: datetime) -> ScanEvent:
    scan = ScanEvent(session_id=session.id, barcode_id=barcode_id, scanned_at=scanned_at)
    db.session.add(scan)
    db.session.flush()
    return scan


def sign_out(session: OperatorSession, signed_out_at: datetime) -> OperatorSession:
    session.signed_out_at = signed_out_at
    db.session.flush()
    return session


# ═════════════════════════════════════════════════════════════════════════════
# Retention side
# ═════════════════════════════════════════════════════════════════════════════


def delete_days_before(cutoff: date) -> dict:
    """Delete production days strictly older than ``cutoff`` with everything under them.

    Caller commits.
    """
    days = ProductionDay.query.filter(ProductionDay.production_date < cutoff).all()
    counts = {"production_days": 0, "machine_days": 0, "sessions": 0, "scans": 0}
    for day in days:
        counts["production_days"] += 1
        for machine_day in day.machine_days:
            counts["machine_days"] += 1
            for session in machine_day.sessions:
                counts["sessions"] += 1
                counts["scans"] += len(session.scans)
        db.session.delete(day)
    db.session.flush()
    return counts
