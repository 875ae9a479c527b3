"""
ScanTrack — Production Scan Reconciliation
Scan Extractor & Validator.

Classifies the raw scans of one work order into valid scans, grouped
operation → machine → operator → session, and a flat list of invalid scans.

Classification order, per scan:
    1. not ``<key>-UUU-OO-CCCC``              → invalid_format
    2. parsed key differs from the order key  → ignored (longer hyphenated key)
    3. unit outside [1, quantity]             → exceeds_quantity
    4. checksum mismatch                      → invalid_format
    5. operation outside [1, M]               → invalid_format
    6. machine not assigned to the operation  → ignored
Duplicate deliveries of (barcode, timestamp, machine, operator) count once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from scantrack.core.exceptions import BarcodeDecodeError, QuantityError
from scantrack.services import barcode_codec
from scantrack.services.scan_store import ScanRecord
from scantrack.services.work_order_store import WorkOrderPlan
from scantrack.utils.helpers import isoformat

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Enums & Data Classes
# ═════════════════════════════════════════════════════════════════════════════

class InvalidReason(str, Enum):
    INVALID_FORMAT = "invalid_format"
    EXCEEDS_QUANTITY = "exceeds_quantity"


@dataclass(frozen=True)
class ValidScan:
    barcode_id: str
    unit: int
    operation: int
    scanned_at: datetime
    machine_id: int
    machine_name: str
    operator_id: str
    operator_name: str
    session_id: int


@dataclass(frozen=True)
class InvalidScan:
    barcode_id: str
    scanned_at: datetime
    reason: InvalidReason
    detail: str
    unit: int | None = None
    operator_id: str | None = None
    operator_name: str | None = None
    machine_id: int | None = None
    machine_name: str | None = None

    def to_dict(self) -> dict:
        return {
            "barcode_id": self.barcode_id,
            "scanned_at": isoformat(self.scanned_at),
            "unit": self.unit,
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "machine_id": self.machine_id,
            "machine_name": self.machine_name,
            "reason": self.reason.value,
            "detail": self.detail,
        }


@dataclass
class SessionScans:
    """Valid scans one operator made in one session, for one operation on one machine."""
    session_id: int
    operator_id: str
    operator_name: str
    signed_in_at: datetime
    signed_out_at: datetime | None
    scans: list[ValidScan] = field(default_factory=list)

    @property
    def ended_at(self) -> datetime:
        """Sign-out time, or the latest recorded scan while the session is open."""
        if self.signed_out_at is not None:
            return self.signed_out_at
        latest = max((s.scanned_at for s in self.scans), default=self.signed_in_at)
        return max(latest, self.signed_in_at)

    @property
    def duration_seconds(self) -> float:
        return max((self.ended_at - self.signed_in_at).total_seconds(), 0.0)


# operation -> machine_id -> operator_id -> session_id -> SessionScans
ScanTree = dict[int, dict[int, dict[str, dict[int, SessionScans]]]]


@dataclass
class ValidationResult:
    work_order_id: int
    valid: ScanTree = field(default_factory=dict)
    invalid: list[InvalidScan] = field(default_factory=list)
    machine_names: dict[int, str] = field(default_factory=dict)
    considered: int = 0
    duplicates: int = 0
    foreign: int = 0
    unassigned: int = 0

    @property
    def valid_count(self) -> int:
        return sum(1 for _ in self.iter_valid())

    @property
    def has_scans(self) -> bool:
        return bool(self.valid) or bool(self.invalid)

    def iter_valid(self) -> Iterator[ValidScan]:
        for machines in self.valid.values():
            for operators in machines.values():
                for sessions in operators.values():
                    for session in sessions.values():
                        yield from session.scans

    def iter_sessions(self) -> Iterator[tuple[int, int, str, SessionScans]]:
        """Yield (operation, machine_id, operator_id, SessionScans)."""
        for op_seq, machines in sorted(self.valid.items()):
            for machine_id, operators in machines.items():
                for operator_id, sessions in operators.items():
                    for session in sessions.values():
                        yield op_seq, machine_id, operator_id, session


# ═════════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════════


def _classify(record: ScanRecord, plan: WorkOrderPlan):
    """Return ``(parts, None)``, ``(None, InvalidScan)`` or ``(None, None)`` for a foreign scan."""

    def invalid(reason, detail, unit=None):
        return None, InvalidScan(
            barcode_id=record.barcode_id,
            scanned_at=record.scanned_at,
            reason=reason,
            detail=detail,
            unit=unit,
            operator_id=record.operator_id,
            operator_name=record.operator_name,
            machine_id=record.machine_id,
            machine_name=record.machine_name,
        )

    try:
        parts = barcode_codec.parse(record.barcode_id)
    except BarcodeDecodeError as exc:
        return invalid(InvalidReason.INVALID_FORMAT, str(exc))

    if parts.work_order_key != plan.barcode_key:
        return None, None

    if not 1 <= parts.unit <= plan.quantity:
        err = QuantityError(parts.unit, plan.quantity)
        return invalid(InvalidReason.EXCEEDS_QUANTITY, str(err), unit=parts.unit)

    try:
        barcode_codec.verify(parts, record.barcode_id)
    except BarcodeDecodeError as exc:
        return invalid(InvalidReason.INVALID_FORMAT, str(exc), unit=parts.unit)

    if plan.operation(parts.operation) is None:
        return invalid(
            InvalidReason.INVALID_FORMAT,
            f"Operation {parts.operation} not defined (work order has {plan.operation_count})",
            unit=parts.unit,
        )

    return parts, None


def validate_scans(records: Iterable[ScanRecord], plan: WorkOrderPlan) -> ValidationResult:
    """Classify ``records`` against ``plan``."""
    result = ValidationResult(work_order_id=plan.work_order_id)
    seen = set()

    for record in records:
        fingerprint = (record.barcode_id, record.scanned_at, record.machine_id, record.operator_id)
        if fingerprint in seen:
            result.duplicates += 1
            continue
        seen.add(fingerprint)

        parts, invalid = _classify(record, plan)
        if invalid is not None:
            result.considered += 1
            result.invalid.append(invalid)
            continue
        if parts is None:
            result.foreign += 1
            continue
        result.considered += 1

        operation = plan.operation(parts.operation)
        if record.machine_id not in operation.machine_ids:
            result.unassigned += 1
            continue

        scan = ValidScan(
            barcode_id=record.barcode_id,
            unit=parts.unit,
            operation=parts.operation,
            scanned_at=record.scanned_at,
            machine_id=record.machine_id,
            machine_name=record.machine_name,
            operator_id=record.operator_id,
            operator_name=record.operator_name,
            session_id=record.session_id,
        )
        sessions = (
            result.valid
            .setdefault(parts.operation, {})
            .setdefault(record.machine_id, {})
            .setdefault(record.operator_id, {})
        )
        session = sessions.get(record.session_id)
        if session is None:
            session = sessions[record.session_id] = SessionScans(
                session_id=record.session_id,
                operator_id=record.operator_id,
                operator_name=record.operator_name,
                signed_in_at=record.session_signed_in_at,
                signed_out_at=record.session_signed_out_at,
            )
        session.scans.append(scan)
        result.machine_names[record.machine_id] = record.machine_name

    for _op, _machine, _operator, session in result.iter_sessions():
        session.scans.sort(key=lambda s: s.scanned_at)

    if result.invalid or result.unassigned:
        logger.debug(
            "Validated scans for work order %s: %d invalid, %d on unassigned machines, %d duplicates",
            plan.work_order_id, len(result.invalid), result.unassigned, result.duplicates,
            extra={"work_order_id": plan.work_order_id},
        )
    return result
